import base64

import pytest
from kubernetes import client

from pagerduty_operator.config import (
    CLUSTER_DEPLOYMENT_PLURAL,
    CRD_GROUP,
    CRD_PLURAL,
    DEFAULT_OPERATOR_NAMESPACE,
    HIVE_GROUP,
    PAGERDUTY_API_SECRET_KEY,
    PAGERDUTY_API_SECRET_NAME,
    OperatorConfig,
)
from pagerduty_operator.crd_client import PagerDutyIntegrationClient
from pagerduty_operator.reconciler import IntegrationReconciler

from .fakes import FakeCoreV1Api, FakeCustomObjectsApi, FakePagerDuty

CD_NAMESPACE = "uhc-production-abc123"
CD_NAME = "cluster-a"
PDI_NAMESPACE = DEFAULT_OPERATOR_NAMESPACE
PDI_NAME = "osd"


def make_cluster_deployment(name=CD_NAME, namespace=CD_NAMESPACE, cluster_name=CD_NAME, labels=None):
    return {
        "apiVersion": "hive.openshift.io/v1",
        "kind": "ClusterDeployment",
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
        "spec": {"clusterName": cluster_name},
    }


def make_integration(name=PDI_NAME, namespace=PDI_NAMESPACE, **spec_overrides):
    spec = {
        "clusterDeploymentRef": {"name": CD_NAME, "namespace": CD_NAMESPACE},
        "escalationPolicy": "PESC001",
        "acknowledgeTimeout": 1800,
        "resolveTimeout": 0,
    }
    spec.update(spec_overrides)
    return {
        "apiVersion": "pagerduty.openshift.io/v1alpha1",
        "kind": "PagerDutyIntegration",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


class World:
    """Fake cluster state shared by a test."""

    def __init__(self):
        self.custom = FakeCustomObjectsApi()
        self.core = FakeCoreV1Api()
        self.pd = FakePagerDuty()
        self.tokens = []
        self.config = OperatorConfig()
        self.crd_client = PagerDutyIntegrationClient(custom_api=self.custom)

        self.core.secrets[(DEFAULT_OPERATOR_NAMESPACE, PAGERDUTY_API_SECRET_NAME)] = client.V1Secret(
            metadata=client.V1ObjectMeta(name=PAGERDUTY_API_SECRET_NAME, namespace=DEFAULT_OPERATOR_NAMESPACE),
            data={PAGERDUTY_API_SECRET_KEY: base64.b64encode(b"pd-token").decode()},
        )

    def pagerduty_factory(self, token):
        self.tokens.append(token)
        return self.pd

    def reconciler(self, config=None, **kwargs):
        return IntegrationReconciler(
            config or self.config,
            crd_client=self.crd_client,
            core_api=self.core,
            pagerduty_factory=self.pagerduty_factory,
            **kwargs,
        )

    def add_cluster_deployment(self, **kwargs):
        self.custom.seed(HIVE_GROUP, CLUSTER_DEPLOYMENT_PLURAL, make_cluster_deployment(**kwargs))

    def add_integration(self, **kwargs):
        self.custom.seed(CRD_GROUP, CRD_PLURAL, make_integration(**kwargs))

    def integration(self, name=PDI_NAME, namespace=PDI_NAMESPACE):
        return self.custom.stored(CRD_GROUP, CRD_PLURAL, namespace, name)

    def update_integration_spec(self, **changes):
        obj = self.integration()
        obj["spec"].update(changes)
        obj["metadata"]["generation"] += 1

    def delete_integration(self, name=PDI_NAME, namespace=PDI_NAMESPACE):
        self.custom.delete_namespaced_custom_object(CRD_GROUP, "v1alpha1", namespace, CRD_PLURAL, name)


@pytest.fixture
def world():
    w = World()
    w.add_cluster_deployment()
    w.add_integration()
    return w
