"""Builders for the objects the reconciler writes."""

import base64
from datetime import datetime, timezone
from typing import Any, Dict

from kubernetes import client

from .config import (
    HIVE_GROUP,
    HIVE_VERSION,
    MANAGED_BY_LABEL,
    PAGERDUTY_KEY,
    SYNCSET_KIND,
)
from .models import AppliedRecord, IntegrationSpec


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _labels(spec: IntegrationSpec) -> Dict[str, str]:
    return {MANAGED_BY_LABEL: spec.name}


def build_config_map(spec: IntegrationSpec, record: AppliedRecord) -> client.V1ConfigMap:
    """ConfigMap holding the last-applied PagerDuty record."""
    return client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=client.V1ObjectMeta(
            name=spec.config_map_name,
            namespace=spec.cluster_deployment_namespace,
            labels=_labels(spec),
        ),
        data=record.to_data(),
    )


def build_secret(spec: IntegrationSpec, integration_key: str) -> client.V1Secret:
    """Secret carrying the integration key, source of the SyncSet mapping."""
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        type="Opaque",
        metadata=client.V1ObjectMeta(
            name=spec.secret_name,
            namespace=spec.cluster_deployment_namespace,
            labels=_labels(spec),
        ),
        data={PAGERDUTY_KEY: base64.b64encode(integration_key.encode()).decode()},
    )


def read_integration_key(secret: client.V1Secret) -> str:
    """Decode the integration key from a Secret built by build_secret."""
    encoded = (secret.data or {}).get(PAGERDUTY_KEY, "")
    return base64.b64decode(encoded).decode() if encoded else ""


def build_sync_set(spec: IntegrationSpec) -> Dict[str, Any]:
    """SyncSet copying the integration key Secret onto the managed cluster."""
    return {
        "apiVersion": f"{HIVE_GROUP}/{HIVE_VERSION}",
        "kind": SYNCSET_KIND,
        "metadata": {
            "name": spec.syncset_name,
            "namespace": spec.cluster_deployment_namespace,
            "labels": _labels(spec),
        },
        "spec": {
            "clusterDeploymentRefs": [{"name": spec.cluster_deployment_name}],
            "resourceApplyMode": "Sync",
            "secretMappings": [
                {
                    "sourceRef": {
                        "name": spec.secret_name,
                        "namespace": spec.cluster_deployment_namespace,
                    },
                    "targetRef": {
                        "name": spec.target_secret_name,
                        "namespace": spec.target_secret_namespace,
                    },
                }
            ],
        },
    }
