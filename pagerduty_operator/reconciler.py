"""Reconciliation logic for PagerDutyIntegration resources.

Every attempt re-reads the integration, its ClusterDeployment and the
last-applied record, classifies the resource into an IntegrationState and
drives it one step towards the desired state. Nothing here retries: errors
propagate to the work queue, which requeues the key with backoff.
"""

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from .cleanup import delete_config_map, delete_secret, delete_sync_set
from .cluster import ClusterDeployment, get_cluster_id, is_red_hat_infrastructure
from .config import FINALIZER, OperatorConfig
from .credentials import read_api_key
from .crd_client import PagerDutyIntegrationClient
from .errors import ConfigurationError, ConflictError, OperatorError, ReconcileTimeoutError
from .finalizers import add_finalizer, delete_finalizer, has_finalizer
from .metrics import pagerduty_create_failure, pagerduty_delete_failure
from .models import AppliedRecord, DesiredService, IntegrationSpec
from .pagerduty_client import PagerDutyClient, ServiceNotFoundError
from .resources import (
    build_config_map,
    build_secret,
    build_sync_set,
    now_iso,
    read_integration_key,
)

logger = logging.getLogger(__name__)


class IntegrationState(Enum):
    ABSENT = "Absent"
    PENDING_CREATE = "PendingCreate"
    ACTIVE = "Active"
    PENDING_UPDATE = "PendingUpdate"
    PENDING_DELETE = "PendingDelete"
    DELETED = "Deleted"
    SKIPPED = "Skipped"


def classify_state(
    obj: Optional[Dict[str, Any]],
    record: Optional[AppliedRecord] = None,
    desired: Optional[DesiredService] = None,
    skip: bool = False,
) -> IntegrationState:
    """
    Derive the lifecycle state from the resource, its finalizer and the
    last-applied record.

    A finalized resource without a record is PENDING_CREATE again: the
    record may have been lost after the finalizer was written, and the
    create path looks the service up before creating it.
    """
    if obj is None:
        return IntegrationState.ABSENT

    finalized = has_finalizer(obj, FINALIZER)
    if obj.get("metadata", {}).get("deletionTimestamp"):
        return IntegrationState.PENDING_DELETE if finalized else IntegrationState.DELETED

    if skip:
        return IntegrationState.SKIPPED
    if not finalized or record is None:
        return IntegrationState.PENDING_CREATE
    if desired is not None and not record.matches(desired):
        return IntegrationState.PENDING_UPDATE
    return IntegrationState.ACTIVE


class Deadline:
    """Time budget for one reconcile attempt."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires = clock() + seconds

    def remaining(self) -> float:
        return max(self._expires - self._clock(), 0.0)

    def check(self, step: str) -> None:
        if self.remaining() <= 0:
            raise ReconcileTimeoutError(f"deadline exceeded before {step}")

    def timeout(self) -> float:
        """Remaining budget as a request timeout; raises once it is spent."""
        self.check("API call")
        return self.remaining()


@dataclass
class ReconcileResult:
    state: IntegrationState


def _service_matches(service: Dict[str, Any], desired: DesiredService) -> bool:
    policy = (service.get("escalation_policy") or {}).get("id")
    return (
        policy == desired.escalation_policy
        and (service.get("acknowledgement_timeout") or 0) == desired.acknowledge_timeout
        and (service.get("auto_resolve_timeout") or 0) == desired.resolve_timeout
    )


class IntegrationReconciler:
    """Drives PagerDutyIntegration resources to their desired state."""

    def __init__(
        self,
        config: OperatorConfig,
        crd_client: Optional[PagerDutyIntegrationClient] = None,
        core_api=None,
        pagerduty_factory: Callable[[str], PagerDutyClient] = PagerDutyClient,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the reconciler.

        Args:
            config: Process-wide operator settings (fedramp mode, timeouts)
            crd_client: Client for the integration, ClusterDeployment and SyncSet objects
            core_api: CoreV1Api used for ConfigMaps and Secrets
            pagerduty_factory: Builds a PagerDuty client from an API key
            clock: Monotonic clock for reconcile deadlines
        """
        self.config = config
        self.crd_client = crd_client or PagerDutyIntegrationClient()
        self.v1 = core_api or client.CoreV1Api()
        self._pagerduty_factory = pagerduty_factory
        self._clock = clock

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """
        Run one reconcile attempt for a PagerDutyIntegration.

        Raises:
            OperatorError: for conflicts, PagerDuty failures, missing
                configuration or an exceeded deadline
            ApiException: for unexpected Kubernetes API errors
        """
        deadline = Deadline(self.config.reconcile_timeout, self._clock)
        obj = self.crd_client.get_integration(name, namespace, request_timeout=deadline.timeout())
        if obj is None:
            logger.debug(f"PagerDutyIntegration {namespace}/{name} is gone")
            return ReconcileResult(IntegrationState.ABSENT)

        try:
            spec = IntegrationSpec.from_crd(obj)
            return self._reconcile(obj, spec, deadline)
        except (OperatorError, ApiException) as e:
            reason = getattr(e, "reason", None) if isinstance(e, OperatorError) else "KubernetesAPIError"
            self._write_status(obj, False, reason or "Error", str(e))
            raise

    def _reconcile(self, obj: Dict[str, Any], spec: IntegrationSpec, deadline: Deadline) -> ReconcileResult:
        record = self._read_record(spec, deadline)
        previous = self._previous_target(obj, spec)

        if spec.deleting:
            state = classify_state(obj)
            if state == IntegrationState.PENDING_DELETE:
                logger.info(f"PagerDutyIntegration {spec.key} is being deleted, cleaning up")
                if previous is not None:
                    self._cleanup(obj, previous, self._read_record(previous, deadline), deadline)
                else:
                    self._cleanup(obj, spec, record, deadline)
            return ReconcileResult(IntegrationState.DELETED)

        if previous is not None:
            logger.info(
                f"PagerDutyIntegration {spec.key} moved from {previous.cluster_deployment_key} "
                f"to {spec.cluster_deployment_key}, cleaning up the old integration"
            )
            obj = self._cleanup(obj, previous, self._read_record(previous, deadline), deadline)

        cd_obj = self.crd_client.get_cluster_deployment(
            spec.cluster_deployment_name,
            spec.cluster_deployment_namespace,
            request_timeout=deadline.timeout(),
        )
        if cd_obj is None:
            if has_finalizer(obj, FINALIZER):
                self._cleanup(obj, spec, record, deadline)
            raise ConfigurationError(f"ClusterDeployment {spec.cluster_deployment_key} not found")

        cd = ClusterDeployment.from_crd(cd_obj)
        skip_reason = None
        if cd.deleting:
            skip_reason = "ClusterDeploymentDeleting"
        elif is_red_hat_infrastructure(cd):
            skip_reason = "RedHatInfrastructure"

        if skip_reason:
            if has_finalizer(obj, FINALIZER):
                logger.info(f"Removing PagerDuty integration for {spec.cluster_deployment_key}: {skip_reason}")
                obj = self._cleanup(obj, spec, record, deadline)
            self._write_status(obj, True, skip_reason, "PagerDuty integration skipped")
            return ReconcileResult(IntegrationState.SKIPPED)

        cluster_id = get_cluster_id(cd, self.config.fedramp)
        if not cluster_id:
            raise ConfigurationError(f"cannot derive a cluster id from {cd.namespace}/{cd.name}")

        desired = DesiredService.for_cluster(spec, cluster_id)
        state = classify_state(obj, record, desired)
        logger.debug(f"PagerDutyIntegration {spec.key} is {state.value}")

        if state == IntegrationState.PENDING_CREATE:
            record = self._create(obj, spec, desired, deadline)
        elif state == IntegrationState.PENDING_UPDATE:
            record = self._update(spec, record, desired, deadline)
        else:
            self._ensure_delivery(spec, record, deadline)

        self._write_status(
            obj, True, "Reconciled", f"PagerDuty service {record.service_name} is configured",
            service_id=record.service_id, cluster_id=record.cluster_id,
            cluster_deployment_ref=_ref(spec),
        )
        return ReconcileResult(state)

    def _previous_target(self, obj: Dict[str, Any], spec: IntegrationSpec) -> Optional[IntegrationSpec]:
        """The spec as last applied, if clusterDeploymentRef has changed since."""
        if not has_finalizer(obj, FINALIZER):
            return None
        applied = (obj.get("status") or {}).get("clusterDeploymentRef") or {}
        name, namespace = applied.get("name"), applied.get("namespace")
        if not name or not namespace:
            return None
        if (name, namespace) == (spec.cluster_deployment_name, spec.cluster_deployment_namespace):
            return None
        return replace(spec, cluster_deployment_name=name, cluster_deployment_namespace=namespace)

    def _pagerduty(self, deadline: Deadline) -> PagerDutyClient:
        token = read_api_key(self.v1, self.config.operator_namespace, request_timeout=deadline.timeout())
        return self._pagerduty_factory(token)

    def _create(self, obj: Dict[str, Any], spec: IntegrationSpec,
                desired: DesiredService, deadline: Deadline) -> AppliedRecord:
        labels = (spec.cluster_deployment_name, spec.name)
        pd = self._pagerduty(deadline)
        try:
            deadline.check("looking up PagerDuty service")
            service = pd.find_service(desired.service_name)
            if service is None:
                deadline.check("creating PagerDuty service")
                service = pd.create_service(desired)
            else:
                logger.info(f"Found existing PagerDuty service {service['id']} for {desired.service_name}")
                if not _service_matches(service, desired):
                    service = pd.update_service(service["id"], desired)

            deadline.check("creating PagerDuty integration")
            integration = pd.find_integration(service["id"]) or pd.create_integration(service["id"])
        except OperatorError:
            pagerduty_create_failure.labels(*labels).set(1)
            raise
        pagerduty_create_failure.labels(*labels).set(0)

        # Cleanup must be able to find the service once the finalizer is set
        self._record_service(obj, service["id"], desired.cluster_id, _ref(spec))
        if not has_finalizer(obj, FINALIZER):
            add_finalizer(obj, FINALIZER)
            self.crd_client.replace_integration(obj, request_timeout=deadline.timeout())

        record = AppliedRecord.from_desired(desired, service["id"], integration.id)
        self._apply_config_map(build_config_map(spec, record), deadline)
        self._apply_secret(build_secret(spec, integration.key), deadline)
        self.crd_client.apply_sync_set(build_sync_set(spec), request_timeout=deadline.timeout())
        logger.info(f"PagerDuty integration for {spec.cluster_deployment_key} created ({service['id']})")
        return record

    def _update(self, spec: IntegrationSpec, record: AppliedRecord,
                desired: DesiredService, deadline: Deadline) -> AppliedRecord:
        labels = (spec.cluster_deployment_name, spec.name)
        pd = self._pagerduty(deadline)
        deadline.check("updating PagerDuty service")
        try:
            pd.update_service(record.service_id, desired)
        except ServiceNotFoundError:
            # Forget the stale record so the next attempt recreates the service
            logger.warning(f"PagerDuty service {record.service_id} vanished, dropping record")
            delete_config_map(spec.config_map_name, spec.cluster_deployment_namespace, self.v1,
                              request_timeout=deadline.timeout())
            pagerduty_create_failure.labels(*labels).set(1)
            raise
        except OperatorError:
            pagerduty_create_failure.labels(*labels).set(1)
            raise
        pagerduty_create_failure.labels(*labels).set(0)

        record = replace(
            record,
            cluster_id=desired.cluster_id,
            service_name=desired.service_name,
            escalation_policy=desired.escalation_policy,
            acknowledge_timeout=desired.acknowledge_timeout,
            resolve_timeout=desired.resolve_timeout,
        )
        self._apply_config_map(build_config_map(spec, record), deadline)
        self._ensure_delivery(spec, record, deadline)
        return record

    def _ensure_delivery(self, spec: IntegrationSpec, record: AppliedRecord, deadline: Deadline) -> None:
        """Make sure the key Secret and its SyncSet exist; no PagerDuty writes."""
        key = ""
        try:
            secret = self.v1.read_namespaced_secret(
                name=spec.secret_name,
                namespace=spec.cluster_deployment_namespace,
                _request_timeout=deadline.timeout(),
            )
            key = read_integration_key(secret)
        except ApiException as e:
            if e.status != 404:
                raise

        if not key:
            pd = self._pagerduty(deadline)
            key = pd.get_integration_key(record.service_id, record.integration_id)
            self._apply_secret(build_secret(spec, key), deadline)

        self.crd_client.apply_sync_set(build_sync_set(spec), request_timeout=deadline.timeout())

    def _cleanup(self, obj: Dict[str, Any], spec: IntegrationSpec,
                 record: Optional[AppliedRecord], deadline: Deadline) -> Dict[str, Any]:
        """
        Remove every dependent object, then the finalizer.

        All deletions are attempted even if one fails; the finalizer is only
        dropped once all of them succeeded. Without a recorded service id the
        service is looked up by its deterministic name.
        """
        labels = (spec.cluster_deployment_name, spec.name)
        namespace = spec.cluster_deployment_namespace
        service_id = record.service_id if record else (obj.get("status") or {}).get("serviceId", "")
        errors = []

        def attempt(step: str, fn: Callable[[], None]) -> None:
            try:
                deadline.check(step)
                fn()
            except (OperatorError, ApiException) as e:
                logger.error(f"Cleanup of {spec.key} failed while {step}: {e}")
                errors.append(e)

        def delete_service() -> None:
            pd = self._pagerduty(deadline)
            target = service_id or self._find_service_id(pd, obj, spec, deadline)
            if not target:
                logger.warning(f"No PagerDuty service found for {spec.key}, nothing to delete")
                return
            pd.delete_service(target)

        attempt("deleting SyncSet", lambda: delete_sync_set(
            spec.syncset_name, namespace, self.crd_client.custom_api, request_timeout=deadline.timeout()))
        attempt("deleting Secret", lambda: delete_secret(
            spec.secret_name, namespace, self.v1, request_timeout=deadline.timeout()))
        attempt("deleting PagerDuty service", delete_service)
        attempt("deleting ConfigMap", lambda: delete_config_map(
            spec.config_map_name, namespace, self.v1, request_timeout=deadline.timeout()))

        if errors:
            pagerduty_delete_failure.labels(*labels).set(1)
            raise errors[0]
        pagerduty_delete_failure.labels(*labels).set(0)

        delete_finalizer(obj, FINALIZER)
        updated = self.crd_client.replace_integration(obj, request_timeout=deadline.timeout())
        obj["metadata"] = updated["metadata"]
        logger.info(f"PagerDuty integration for {spec.key} cleaned up")
        if not spec.deleting:
            self._record_service(obj, "", "", {"name": "", "namespace": ""})
        return obj

    def _find_service_id(self, pd: PagerDutyClient, obj: Dict[str, Any],
                         spec: IntegrationSpec, deadline: Deadline) -> str:
        cluster_id = (obj.get("status") or {}).get("clusterId", "")
        if not cluster_id:
            cd_obj = self.crd_client.get_cluster_deployment(
                spec.cluster_deployment_name,
                spec.cluster_deployment_namespace,
                request_timeout=deadline.timeout(),
            )
            if cd_obj is not None:
                cluster_id = get_cluster_id(ClusterDeployment.from_crd(cd_obj), self.config.fedramp)
        if not cluster_id:
            return ""
        service = pd.find_service(DesiredService.for_cluster(spec, cluster_id).service_name)
        return service["id"] if service else ""

    def _read_record(self, spec: IntegrationSpec, deadline: Deadline) -> Optional[AppliedRecord]:
        try:
            cm = self.v1.read_namespaced_config_map(
                name=spec.config_map_name,
                namespace=spec.cluster_deployment_namespace,
                _request_timeout=deadline.timeout(),
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return AppliedRecord.from_data(cm.data)

    def _apply_config_map(self, body: client.V1ConfigMap, deadline: Deadline) -> None:
        name, namespace = body.metadata.name, body.metadata.namespace
        try:
            current = self.v1.read_namespaced_config_map(
                name=name, namespace=namespace, _request_timeout=deadline.timeout())
        except ApiException as e:
            if e.status != 404:
                raise
            logger.info(f"Creating ConfigMap {namespace}/{name}")
            self.v1.create_namespaced_config_map(
                namespace=namespace, body=body, _request_timeout=deadline.timeout())
            return

        if current.data == body.data:
            return
        body.metadata.resource_version = current.metadata.resource_version
        try:
            self.v1.replace_namespaced_config_map(
                name=name, namespace=namespace, body=body, _request_timeout=deadline.timeout())
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(f"ConfigMap {namespace}/{name} was modified concurrently") from e
            raise

    def _apply_secret(self, body: client.V1Secret, deadline: Deadline) -> None:
        name, namespace = body.metadata.name, body.metadata.namespace
        try:
            current = self.v1.read_namespaced_secret(
                name=name, namespace=namespace, _request_timeout=deadline.timeout())
        except ApiException as e:
            if e.status != 404:
                raise
            logger.info(f"Creating Secret {namespace}/{name}")
            self.v1.create_namespaced_secret(
                namespace=namespace, body=body, _request_timeout=deadline.timeout())
            return

        if current.data == body.data:
            return
        body.metadata.resource_version = current.metadata.resource_version
        try:
            self.v1.replace_namespaced_secret(
                name=name, namespace=namespace, body=body, _request_timeout=deadline.timeout())
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(f"Secret {namespace}/{name} was modified concurrently") from e
            raise

    def _write_status(
        self,
        obj: Dict[str, Any],
        ready: bool,
        reason: str,
        message: str,
        service_id: Optional[str] = None,
        cluster_id: Optional[str] = None,
        cluster_deployment_ref: Optional[Dict[str, str]] = None,
    ) -> None:
        """Patch status, skipping the write when nothing changed."""
        metadata = obj.get("metadata", {})
        current = obj.get("status") or {}
        condition = {
            "type": "Ready",
            "status": "True" if ready else "False",
            "reason": reason,
            "message": message,
        }
        previous = next(
            (c for c in current.get("conditions", []) if c.get("type") == "Ready"), None
        )
        # lastTransitionTime only moves when the condition status flips
        if previous and previous.get("status") == condition["status"]:
            condition["lastTransitionTime"] = previous.get("lastTransitionTime")
        else:
            condition["lastTransitionTime"] = now_iso()

        status = {
            "observedGeneration": metadata.get("generation", 0),
            "serviceId": service_id if service_id is not None else current.get("serviceId", ""),
            "clusterId": cluster_id if cluster_id is not None else current.get("clusterId", ""),
            "conditions": [condition],
        }
        ref = cluster_deployment_ref if cluster_deployment_ref is not None else current.get("clusterDeploymentRef")
        if ref is not None:
            status["clusterDeploymentRef"] = ref
        self._patch_status(obj, status)

    def _record_service(self, obj: Dict[str, Any], service_id: str, cluster_id: str,
                        cluster_deployment_ref: Dict[str, str]) -> None:
        """Store which service and cluster the resource owns, leaving the condition alone."""
        status = dict(obj.get("status") or {})
        status.update(
            serviceId=service_id,
            clusterId=cluster_id,
            clusterDeploymentRef=cluster_deployment_ref,
        )
        self._patch_status(obj, status)

    def _patch_status(self, obj: Dict[str, Any], status: Dict[str, Any]) -> None:
        if status == (obj.get("status") or {}):
            return
        metadata = obj.get("metadata", {})
        updated = self.crd_client.update_status(metadata.get("name"), metadata.get("namespace"), status)
        if updated:
            obj["status"] = status
            # keep later optimistic writes of this object current
            metadata["resourceVersion"] = updated.get("metadata", {}).get("resourceVersion")


def _ref(spec: IntegrationSpec) -> Dict[str, str]:
    return {"name": spec.cluster_deployment_name, "namespace": spec.cluster_deployment_namespace}
