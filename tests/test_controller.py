"""Tests for event routing and the worker loop."""

from unittest.mock import MagicMock

import pytest

from pagerduty_operator.config import OperatorConfig
from pagerduty_operator.controller import PagerDutyIntegrationController
from pagerduty_operator.errors import ConflictError, ExternalServiceError
from pagerduty_operator.reconciler import IntegrationState, ReconcileResult
from pagerduty_operator.workqueue import RateLimitingQueue

from .conftest import CD_NAMESPACE, PDI_NAME, PDI_NAMESPACE, make_cluster_deployment, make_integration

KEY = f"{PDI_NAMESPACE}/{PDI_NAME}"


@pytest.fixture
def controller(world):
    return PagerDutyIntegrationController(
        OperatorConfig(),
        crd_client=world.crd_client,
        core_api=world.core,
        reconciler=world.reconciler(),
        heartbeat=MagicMock(),
    )


def stub_controller(reconciler):
    return PagerDutyIntegrationController(
        OperatorConfig(),
        crd_client=MagicMock(),
        core_api=MagicMock(),
        reconciler=reconciler,
        heartbeat=MagicMock(),
    )


def with_generation(obj, generation):
    obj["metadata"]["generation"] = generation
    return obj


def test_load_existing_integrations(controller):
    assert controller.load_existing_integrations() == 1
    assert controller.queue.get(timeout=0) == KEY
    assert controller.index.keys() == [KEY]


def test_added_event_enqueues(controller):
    controller.handle_integration_event("ADDED", with_generation(make_integration(), 1))
    assert controller.queue.get(timeout=0) == KEY


def test_status_only_update_is_ignored(controller):
    controller.handle_integration_event("ADDED", with_generation(make_integration(), 1))
    controller.queue.done(controller.queue.get(timeout=0))

    controller.handle_integration_event("MODIFIED", with_generation(make_integration(), 1))

    assert controller.queue.get(timeout=0) is None


def test_spec_change_enqueues(controller):
    controller.handle_integration_event("ADDED", with_generation(make_integration(), 1))
    controller.queue.done(controller.queue.get(timeout=0))

    controller.handle_integration_event("MODIFIED", with_generation(make_integration(), 2))

    assert controller.queue.get(timeout=0) == KEY


def test_deletion_timestamp_enqueues(controller):
    controller.handle_integration_event("ADDED", with_generation(make_integration(), 1))
    controller.queue.done(controller.queue.get(timeout=0))

    obj = with_generation(make_integration(), 1)
    obj["metadata"]["deletionTimestamp"] = "2026-10-18T00:00:00Z"
    controller.handle_integration_event("MODIFIED", obj)

    assert controller.queue.get(timeout=0) == KEY


def test_deleted_event_drops_from_index(controller):
    controller.handle_integration_event("ADDED", make_integration())
    controller.handle_integration_event("DELETED", make_integration())

    assert controller.index.keys() == []


def test_cluster_deployment_event_enqueues_referencing_integrations(controller):
    controller.handle_integration_event("ADDED", make_integration())
    controller.handle_integration_event("ADDED", make_integration(
        name="other", clusterDeploymentRef={"name": "cluster-b", "namespace": CD_NAMESPACE}))
    for _ in range(2):
        controller.queue.done(controller.queue.get(timeout=0))

    controller.handle_cluster_deployment_event("MODIFIED", make_cluster_deployment())

    assert controller.queue.get(timeout=0) == KEY
    assert controller.queue.get(timeout=0) is None


def test_process_next_item_reconciles(controller, world):
    controller.queue.add(KEY)

    assert controller.process_next_item()

    assert len(world.pd.services) == 1
    assert controller.queue.num_requeues(KEY) == 0


@pytest.mark.parametrize(
    "error",
    [ExternalServiceError("503"), ConflictError("conflict"), RuntimeError("boom")],
)
def test_failures_are_requeued_with_backoff(error):
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = error
    controller = stub_controller(reconciler)
    controller.queue.add(KEY)

    assert controller.process_next_item()

    reconciler.reconcile.assert_called_once_with(PDI_NAMESPACE, PDI_NAME)
    assert controller.queue.num_requeues(KEY) == 1


def test_success_resets_backoff():
    reconciler = MagicMock()
    reconciler.reconcile.side_effect = [
        ExternalServiceError("503"),
        ReconcileResult(IntegrationState.ACTIVE),
    ]
    controller = stub_controller(reconciler)
    now = [0.0]
    controller.queue = RateLimitingQueue(base_delay=1, clock=lambda: now[0])
    controller.queue.add(KEY)

    controller.process_next_item()
    assert controller.queue.num_requeues(KEY) == 1

    now[0] = 1
    controller.process_next_item()
    assert controller.queue.num_requeues(KEY) == 0
    assert controller.queue.get(timeout=0) is None


def test_process_next_item_stops_on_shutdown(controller):
    controller.queue.shut_down()
    assert controller.process_next_item() is False


def test_stop(controller):
    controller.stop()
    assert controller.process_next_item() is False
