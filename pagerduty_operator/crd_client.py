"""Client for the PagerDutyIntegration CRD and the Hive objects it touches."""

import logging
from typing import Any, Dict, List, Optional

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .config import (
    CLUSTER_DEPLOYMENT_PLURAL,
    CRD_GROUP,
    CRD_PLURAL,
    CRD_VERSION,
    HIVE_GROUP,
    HIVE_VERSION,
    SYNCSET_PLURAL,
)
from .errors import ConflictError

logger = logging.getLogger(__name__)


class PagerDutyIntegrationClient:
    """Client for PagerDutyIntegration, ClusterDeployment and SyncSet objects."""

    def __init__(self, custom_api=None):
        """Initialize the CRD client."""
        self.custom_api = custom_api or client.CustomObjectsApi()

    def list_integrations(self, namespace: str = "") -> List[Dict[str, Any]]:
        """
        List all PagerDutyIntegration objects.

        Args:
            namespace: Namespace to list from ("" for all namespaces)

        Returns:
            List of integration objects
        """
        try:
            if namespace:
                response = self.custom_api.list_namespaced_custom_object(
                    group=CRD_GROUP,
                    version=CRD_VERSION,
                    namespace=namespace,
                    plural=CRD_PLURAL
                )
            else:
                response = self.custom_api.list_cluster_custom_object(
                    group=CRD_GROUP,
                    version=CRD_VERSION,
                    plural=CRD_PLURAL
                )
            return response.get("items", [])
        except ApiException as e:
            if e.status == 404:
                logger.warning("CRD not found. Please install the CRD first.")
            else:
                logger.error(f"Error listing integrations: {e}")
            return []

    def get_integration(self, name: str, namespace: str,
                        request_timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Get a specific PagerDutyIntegration.

        Returns:
            Integration object or None if not found

        Raises:
            ApiException: for any error other than 404
        """
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=namespace,
                plural=CRD_PLURAL,
                name=name,
                _request_timeout=request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def replace_integration(self, obj: Dict[str, Any],
                            request_timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Write back a PagerDutyIntegration (used for finalizer changes).

        The object's resourceVersion makes this an optimistic write.

        Raises:
            ConflictError: if the object changed since it was read
        """
        metadata = obj.get("metadata", {})
        try:
            return self.custom_api.replace_namespaced_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=metadata.get("namespace"),
                plural=CRD_PLURAL,
                name=metadata.get("name"),
                body=obj,
                _request_timeout=request_timeout,
            )
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"PagerDutyIntegration {metadata.get('namespace')}/{metadata.get('name')} "
                    f"was modified concurrently"
                ) from e
            raise

    def update_status(
        self,
        name: str,
        namespace: str,
        status: Dict[str, Any],
        request_timeout: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Patch the status subresource of a PagerDutyIntegration.

        Returns:
            The updated object, or None if the patch failed
        """
        try:
            updated = self.custom_api.patch_namespaced_custom_object_status(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=namespace,
                plural=CRD_PLURAL,
                name=name,
                body={"status": status},
                _request_timeout=request_timeout,
            )
            logger.debug(f"Updated status for integration {namespace}/{name}")
            return updated
        except ApiException as e:
            if e.status != 404:
                logger.error(f"Error updating integration status {namespace}/{name}: {e}")
            return None

    def get_cluster_deployment(self, name: str, namespace: str,
                               request_timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Get a ClusterDeployment, or None if it does not exist."""
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=HIVE_GROUP,
                version=HIVE_VERSION,
                namespace=namespace,
                plural=CLUSTER_DEPLOYMENT_PLURAL,
                name=name,
                _request_timeout=request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def apply_sync_set(self, body: Dict[str, Any],
                       request_timeout: Optional[float] = None) -> None:
        """Create the SyncSet, or replace it if it already exists."""
        metadata = body["metadata"]
        namespace, name = metadata["namespace"], metadata["name"]
        try:
            current = self.custom_api.get_namespaced_custom_object(
                group=HIVE_GROUP,
                version=HIVE_VERSION,
                namespace=namespace,
                plural=SYNCSET_PLURAL,
                name=name,
                _request_timeout=request_timeout,
            )
        except ApiException as e:
            if e.status != 404:
                raise
            logger.info(f"Creating SyncSet {namespace}/{name}")
            self.custom_api.create_namespaced_custom_object(
                group=HIVE_GROUP,
                version=HIVE_VERSION,
                namespace=namespace,
                plural=SYNCSET_PLURAL,
                body=body,
                _request_timeout=request_timeout,
            )
            return

        if current.get("spec") == body["spec"]:
            return

        logger.info(f"Updating SyncSet {namespace}/{name}")
        body["metadata"]["resourceVersion"] = current.get("metadata", {}).get("resourceVersion")
        try:
            self.custom_api.replace_namespaced_custom_object(
                group=HIVE_GROUP,
                version=HIVE_VERSION,
                namespace=namespace,
                plural=SYNCSET_PLURAL,
                name=name,
                body=body,
                _request_timeout=request_timeout,
            )
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(f"SyncSet {namespace}/{name} was modified concurrently") from e
            raise

    def _watch(self, group: str, version: str, plural: str, namespace: str, timeout: int):
        w = watch.Watch()

        try:
            if namespace:
                stream = w.stream(
                    self.custom_api.list_namespaced_custom_object,
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    timeout_seconds=timeout
                )
            else:
                stream = w.stream(
                    self.custom_api.list_cluster_custom_object,
                    group=group,
                    version=version,
                    plural=plural,
                    timeout_seconds=timeout
                )

            for event in stream:
                yield event

        except ApiException as e:
            logger.error(f"Watch error on {plural}: {e}")
            raise

    def watch_integrations(self, namespace: str = "", timeout: int = 300):
        """
        Create a watch stream for PagerDutyIntegration objects.

        Yields:
            Watch events
        """
        yield from self._watch(CRD_GROUP, CRD_VERSION, CRD_PLURAL, namespace, timeout)

    def watch_cluster_deployments(self, timeout: int = 300):
        """Create a watch stream for ClusterDeployments in all namespaces."""
        yield from self._watch(HIVE_GROUP, HIVE_VERSION, CLUSTER_DEPLOYMENT_PLURAL, "", timeout)
