"""In-memory index of PagerDutyIntegrations by the ClusterDeployment they target."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrationRef:
    """Just enough of an integration to route events and filter noise."""
    namespace: str
    name: str
    cluster_deployment_key: str
    generation: int
    deleting: bool

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_crd(cls, crd_object: Dict[str, Any]) -> "IntegrationRef":
        metadata = crd_object.get("metadata", {})
        cd_ref = (crd_object.get("spec") or {}).get("clusterDeploymentRef") or {}
        return cls(
            namespace=metadata.get("namespace", ""),
            name=metadata.get("name", ""),
            cluster_deployment_key=f"{cd_ref.get('namespace', '')}/{cd_ref.get('name', '')}",
            generation=metadata.get("generation", 0),
            deleting=bool(metadata.get("deletionTimestamp")),
        )


class IntegrationIndex:
    """Thread-safe index of PagerDutyIntegration objects."""

    def __init__(self):
        """Initialize the index."""
        self._refs: Dict[str, IntegrationRef] = {}
        self._lock = threading.RLock()

    def add_or_update(self, crd_object: Dict[str, Any]) -> bool:
        """
        Add or update an integration.

        Returns:
            True if the spec generation or deletion state changed, i.e. the
            event needs a reconcile. Status-only and finalizer-only updates
            return False.
        """
        ref = IntegrationRef.from_crd(crd_object)

        with self._lock:
            previous = self._refs.get(ref.key)
            self._refs[ref.key] = ref

        if previous is None:
            logger.debug(f"Indexed integration {ref.key} -> {ref.cluster_deployment_key}")
            return True
        return (
            previous.generation != ref.generation
            or previous.deleting != ref.deleting
            or previous.cluster_deployment_key != ref.cluster_deployment_key
        )

    def remove(self, namespace: str, name: str) -> Optional[IntegrationRef]:
        key = f"{namespace}/{name}"

        with self._lock:
            ref = self._refs.pop(key, None)
            if ref:
                logger.debug(f"Removed integration from index: {key}")
            return ref

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._refs)

    def integrations_for_cluster(self, namespace: str, name: str) -> List[str]:
        """Keys of all integrations targeting the given ClusterDeployment."""
        cd_key = f"{namespace}/{name}"

        with self._lock:
            return [ref.key for ref in self._refs.values() if ref.cluster_deployment_key == cd_key]
