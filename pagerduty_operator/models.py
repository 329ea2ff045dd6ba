"""Parsed PagerDutyIntegration objects and the last-applied record."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import (
    CONFIG_MAP_SUFFIX,
    DEFAULT_ACKNOWLEDGE_TIMEOUT,
    DEFAULT_RESOLVE_TIMEOUT,
    DEFAULT_SERVICE_PREFIX,
    DEFAULT_TARGET_SECRET_NAME,
    DEFAULT_TARGET_SECRET_NAMESPACE,
    SECRET_SUFFIX,
    SYNCSET_SUFFIX,
)
from .errors import ConfigurationError


@dataclass
class IntegrationSpec:
    """Parsed PagerDutyIntegration specification."""
    name: str
    namespace: str
    cluster_deployment_name: str
    cluster_deployment_namespace: str
    escalation_policy: str
    acknowledge_timeout: int = DEFAULT_ACKNOWLEDGE_TIMEOUT
    resolve_timeout: int = DEFAULT_RESOLVE_TIMEOUT
    service_prefix: str = DEFAULT_SERVICE_PREFIX
    target_secret_name: str = DEFAULT_TARGET_SECRET_NAME
    target_secret_namespace: str = DEFAULT_TARGET_SECRET_NAMESPACE
    deleting: bool = False

    @classmethod
    def from_crd(cls, crd_object: Dict[str, Any]) -> "IntegrationSpec":
        """
        Create IntegrationSpec from the CRD object.

        An object that is being deleted only needs its cluster reference and
        names for cleanup, so a missing escalation policy or a malformed
        timeout falls back to the defaults instead of failing.

        Raises:
            ConfigurationError: if the cluster reference is missing, or (for
                live objects) the escalation policy is missing or a timeout
                is not an integer
        """
        metadata = crd_object.get("metadata", {})
        spec = crd_object.get("spec", {})
        cd_ref = spec.get("clusterDeploymentRef") or {}
        target = spec.get("targetSecretRef") or {}

        name = metadata.get("name", "")
        namespace = metadata.get("namespace", "")
        deleting = bool(metadata.get("deletionTimestamp"))

        if not cd_ref.get("name") or not cd_ref.get("namespace"):
            raise ConfigurationError(
                f"{namespace}/{name}: spec.clusterDeploymentRef needs name and namespace"
            )
        if not spec.get("escalationPolicy") and not deleting:
            raise ConfigurationError(f"{namespace}/{name}: spec.escalationPolicy is required")

        try:
            acknowledge_timeout = int(spec.get("acknowledgeTimeout", DEFAULT_ACKNOWLEDGE_TIMEOUT))
            resolve_timeout = int(spec.get("resolveTimeout", DEFAULT_RESOLVE_TIMEOUT))
        except (TypeError, ValueError):
            if not deleting:
                raise ConfigurationError(f"{namespace}/{name}: timeouts must be integers")
            acknowledge_timeout, resolve_timeout = DEFAULT_ACKNOWLEDGE_TIMEOUT, DEFAULT_RESOLVE_TIMEOUT

        return cls(
            name=name,
            namespace=namespace,
            cluster_deployment_name=cd_ref["name"],
            cluster_deployment_namespace=cd_ref["namespace"],
            escalation_policy=spec.get("escalationPolicy") or "",
            acknowledge_timeout=acknowledge_timeout,
            resolve_timeout=resolve_timeout,
            service_prefix=spec.get("servicePrefix") or DEFAULT_SERVICE_PREFIX,
            target_secret_name=target.get("name") or DEFAULT_TARGET_SECRET_NAME,
            target_secret_namespace=target.get("namespace") or DEFAULT_TARGET_SECRET_NAMESPACE,
            deleting=deleting,
        )

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def cluster_deployment_key(self) -> str:
        return f"{self.cluster_deployment_namespace}/{self.cluster_deployment_name}"

    def _dependent_name(self, suffix: str) -> str:
        return f"{self.cluster_deployment_name}-{self.name}{suffix}"

    @property
    def config_map_name(self) -> str:
        return self._dependent_name(CONFIG_MAP_SUFFIX)

    @property
    def secret_name(self) -> str:
        return self._dependent_name(SECRET_SUFFIX)

    @property
    def syncset_name(self) -> str:
        return self._dependent_name(SYNCSET_SUFFIX)


@dataclass(frozen=True)
class DesiredService:
    """What the PagerDuty service for one cluster should look like."""
    cluster_id: str
    service_name: str
    escalation_policy: str
    acknowledge_timeout: int
    resolve_timeout: int

    @classmethod
    def for_cluster(cls, spec: IntegrationSpec, cluster_id: str) -> "DesiredService":
        return cls(
            cluster_id=cluster_id,
            service_name=f"{spec.service_prefix}-{cluster_id}",
            escalation_policy=spec.escalation_policy,
            acknowledge_timeout=spec.acknowledge_timeout,
            resolve_timeout=spec.resolve_timeout,
        )


@dataclass(frozen=True)
class AppliedRecord:
    """Last-applied PagerDuty state, stored in the pd-config ConfigMap."""
    service_id: str
    integration_id: str
    cluster_id: str
    service_name: str
    escalation_policy: str
    acknowledge_timeout: int
    resolve_timeout: int

    def to_data(self) -> Dict[str, str]:
        return {
            "SERVICE_ID": self.service_id,
            "INTEGRATION_ID": self.integration_id,
            "CLUSTER_ID": self.cluster_id,
            "SERVICE_NAME": self.service_name,
            "ESCALATION_POLICY_ID": self.escalation_policy,
            "ACKNOWLEDGE_TIMEOUT": str(self.acknowledge_timeout),
            "RESOLVE_TIMEOUT": str(self.resolve_timeout),
        }

    @classmethod
    def from_data(cls, data: Optional[Dict[str, str]]) -> Optional["AppliedRecord"]:
        """Parse ConfigMap data; returns None if it is unusable."""
        if not data or not data.get("SERVICE_ID"):
            return None
        try:
            return cls(
                service_id=data["SERVICE_ID"],
                integration_id=data.get("INTEGRATION_ID", ""),
                cluster_id=data.get("CLUSTER_ID", ""),
                service_name=data.get("SERVICE_NAME", ""),
                escalation_policy=data.get("ESCALATION_POLICY_ID", ""),
                acknowledge_timeout=int(data.get("ACKNOWLEDGE_TIMEOUT", "0")),
                resolve_timeout=int(data.get("RESOLVE_TIMEOUT", "0")),
            )
        except ValueError:
            return None

    @classmethod
    def from_desired(cls, desired: DesiredService, service_id: str, integration_id: str) -> "AppliedRecord":
        return cls(
            service_id=service_id,
            integration_id=integration_id,
            cluster_id=desired.cluster_id,
            service_name=desired.service_name,
            escalation_policy=desired.escalation_policy,
            acknowledge_timeout=desired.acknowledge_timeout,
            resolve_timeout=desired.resolve_timeout,
        )

    def matches(self, desired: DesiredService) -> bool:
        return (
            self.service_name == desired.service_name
            and self.escalation_policy == desired.escalation_policy
            and self.acknowledge_timeout == desired.acknowledge_timeout
            and self.resolve_timeout == desired.resolve_timeout
        )
