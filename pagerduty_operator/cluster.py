"""ClusterDeployment parsing and cluster identity."""

from dataclasses import dataclass, field
from typing import Any, Dict

from .config import RH_INFRA_LABEL


@dataclass
class ClusterDeployment:
    """The fields of a Hive ClusterDeployment this operator reads."""
    name: str
    namespace: str
    cluster_name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    deleting: bool = False

    @classmethod
    def from_crd(cls, crd_object: Dict[str, Any]) -> "ClusterDeployment":
        """Create ClusterDeployment from the API object."""
        metadata = crd_object.get("metadata", {})
        spec = crd_object.get("spec", {})

        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            cluster_name=spec.get("clusterName", ""),
            labels=metadata.get("labels") or {},
            deleting=bool(metadata.get("deletionTimestamp")),
        )


def get_cluster_id(cd: ClusterDeployment, fedramp: bool) -> str:
    """
    Derive the external cluster identifier.

    In fedramp mode the namespace ends with the real cluster id
    (e.g. ``acme-prod-xyz123`` -> ``xyz123``); otherwise the declared
    cluster name is used as-is.
    """
    if fedramp:
        return cd.namespace.split("-")[-1]
    return cd.cluster_name


def is_red_hat_infrastructure(cd: ClusterDeployment) -> bool:
    """Return True if the cluster is labelled as Red Hat infrastructure."""
    return cd.labels.get(RH_INFRA_LABEL) == "true"
