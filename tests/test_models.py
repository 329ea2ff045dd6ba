"""Tests for PagerDutyIntegration parsing and the applied record."""

import pytest

from pagerduty_operator.config import DEFAULT_ACKNOWLEDGE_TIMEOUT
from pagerduty_operator.errors import ConfigurationError
from pagerduty_operator.models import AppliedRecord, DesiredService, IntegrationSpec
from pagerduty_operator.resources import build_secret, build_sync_set, read_integration_key

from .conftest import CD_NAME, PDI_NAME, make_integration


def test_from_crd_defaults():
    obj = make_integration()
    del obj["spec"]["acknowledgeTimeout"]
    spec = IntegrationSpec.from_crd(obj)

    assert spec.key == "pagerduty-operator/osd"
    assert spec.cluster_deployment_key == "uhc-production-abc123/cluster-a"
    assert spec.acknowledge_timeout == 21600
    assert spec.service_prefix == "osd"
    assert spec.target_secret_name == "pd-secret"
    assert spec.target_secret_namespace == "openshift-monitoring"
    assert spec.config_map_name == "cluster-a-osd-pd-config"
    assert spec.secret_name == "cluster-a-osd-pd-secret"
    assert spec.syncset_name == "cluster-a-osd-pd-sync"
    assert not spec.deleting


@pytest.mark.parametrize(
    "overrides",
    [
        {"clusterDeploymentRef": {"name": "cluster-a"}},
        {"clusterDeploymentRef": None},
        {"escalationPolicy": ""},
        {"resolveTimeout": "soon"},
    ],
)
def test_from_crd_rejects_malformed(overrides):
    with pytest.raises(ConfigurationError):
        IntegrationSpec.from_crd(make_integration(**overrides))


def test_deleting_object_tolerates_invalid_fields():
    obj = make_integration(escalationPolicy="", acknowledgeTimeout="soon")
    obj["metadata"]["deletionTimestamp"] = "2026-10-18T00:00:00Z"

    spec = IntegrationSpec.from_crd(obj)

    assert spec.deleting
    assert spec.escalation_policy == ""
    assert spec.acknowledge_timeout == DEFAULT_ACKNOWLEDGE_TIMEOUT
    assert spec.config_map_name == f"{CD_NAME}-{PDI_NAME}-pd-config"


def test_deleting_object_still_needs_cluster_ref():
    obj = make_integration(clusterDeploymentRef=None)
    obj["metadata"]["deletionTimestamp"] = "2026-10-18T00:00:00Z"

    with pytest.raises(ConfigurationError):
        IntegrationSpec.from_crd(obj)


def test_record_round_trips_through_config_map_data():
    record = AppliedRecord("PSVC1", "PINT1", "cluster-a", "osd-cluster-a", "PESC001", 1800, 0)
    assert AppliedRecord.from_data(record.to_data()) == record


@pytest.mark.parametrize("data", [None, {}, {"SERVICE_ID": ""}, {"SERVICE_ID": "S", "RESOLVE_TIMEOUT": "x"}])
def test_unusable_record_data(data):
    assert AppliedRecord.from_data(data) is None


def test_record_matches_desired():
    desired = DesiredService("cluster-a", "osd-cluster-a", "PESC001", 1800, 0)
    record = AppliedRecord.from_desired(desired, "PSVC1", "PINT1")

    assert record.matches(desired)
    assert not record.matches(DesiredService("cluster-a", "osd-cluster-a", "PESC001", 1800, 300))
    assert not record.matches(DesiredService("cluster-b", "osd-cluster-b", "PESC001", 1800, 0))


def test_secret_and_sync_set_builders():
    spec = IntegrationSpec.from_crd(make_integration())

    secret = build_secret(spec, "integration-key")
    assert secret.metadata.namespace == "uhc-production-abc123"
    assert read_integration_key(secret) == "integration-key"

    ss = build_sync_set(spec)
    assert ss["metadata"]["name"] == "cluster-a-osd-pd-sync"
    assert ss["spec"]["resourceApplyMode"] == "Sync"
