"""Idempotent deletion of the objects the reconciler owns.

Each helper treats "not found" (on read or on delete) as success, so they can
be called repeatedly and in any order. Any other ApiException is raised
unchanged for the caller to requeue.
"""

import logging
from typing import Optional

from kubernetes.client.rest import ApiException

from .config import HIVE_GROUP, HIVE_VERSION, SYNCSET_PLURAL

logger = logging.getLogger(__name__)


def delete_config_map(name: str, namespace: str, core_api, request_timeout: Optional[float] = None) -> None:
    """Delete a ConfigMap if it exists."""
    try:
        core_api.read_namespaced_config_map(
            name=name, namespace=namespace, _request_timeout=request_timeout
        )
    except ApiException as e:
        if e.status == 404:
            return
        raise

    logger.info(f"Deleting ConfigMap {namespace}/{name}")
    try:
        core_api.delete_namespaced_config_map(
            name=name, namespace=namespace, _request_timeout=request_timeout
        )
    except ApiException as e:
        # Lost a race with another deleter
        if e.status != 404:
            raise


def delete_sync_set(name: str, namespace: str, custom_api, request_timeout: Optional[float] = None) -> None:
    """Delete a Hive SyncSet if it exists.

    Only the SyncSet is removed here; Hive takes care of the synced secret
    on the managed cluster.
    """
    try:
        custom_api.get_namespaced_custom_object(
            group=HIVE_GROUP,
            version=HIVE_VERSION,
            namespace=namespace,
            plural=SYNCSET_PLURAL,
            name=name,
            _request_timeout=request_timeout,
        )
    except ApiException as e:
        if e.status == 404:
            return
        raise

    logger.info(f"Deleting SyncSet {namespace}/{name}")
    try:
        custom_api.delete_namespaced_custom_object(
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


def delete_secret(name: str, namespace: str, core_api, request_timeout: Optional[float] = None) -> None:
    """Delete a Secret if it exists."""
    try:
        core_api.read_namespaced_secret(
            name=name, namespace=namespace, _request_timeout=request_timeout
        )
    except ApiException as e:
        if e.status == 404:
            return
        raise

    logger.info(f"Deleting Secret {namespace}/{name}")
    try:
        core_api.delete_namespaced_secret(
            name=name, namespace=namespace, _request_timeout=request_timeout
        )
    except ApiException as e:
        if e.status != 404:
            raise
