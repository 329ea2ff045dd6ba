"""PagerDuty REST API wrapper.

Thin layer over ``pagerduty.RestApiV2Client`` exposing the service and
integration operations the reconciler needs. Every call is counted in
``pagerduty_api_requests_total`` and library errors are turned into
``ExternalServiceError`` so callers deal with a single error type.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import pagerduty

from .errors import ExternalServiceError
from .metrics import pagerduty_request
from .models import DesiredService

logger = logging.getLogger(__name__)

TIMEOUT = 30
INTEGRATION_TYPE = "events_api_v2_inbound_integration"
INTEGRATION_NAME = "Prometheus Alertmanager"


class ServiceNotFoundError(ExternalServiceError):
    """The recorded PagerDuty service no longer exists."""

    reason = "ServiceNotFound"


@dataclass(frozen=True)
class Integration:
    id: str
    key: str


def _status_of(error: Exception) -> Optional[int]:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


class PagerDutyClient:
    """PagerDuty client for services and Events API v2 integrations."""

    def __init__(self, token: str, timeout: int = TIMEOUT):
        """
        Initialize the client.

        Args:
            token: PagerDuty REST API key
            timeout: Per-request timeout in seconds
        """
        self._client = pagerduty.RestApiV2Client(token)
        self._client.timeout = timeout

    @contextmanager
    def _call(self, method: str, verb: str) -> Iterator[None]:
        try:
            yield
        except ExternalServiceError:
            pagerduty_request.labels(method, verb, "error").inc()
            raise
        except pagerduty.Error as e:
            pagerduty_request.labels(method, verb, "error").inc()
            raise ExternalServiceError(f"PagerDuty {method} failed: {e}") from e
        pagerduty_request.labels(method, verb, "success").inc()

    def find_service(self, name: str) -> Optional[dict]:
        """Return the service with exactly this name, or None."""
        with self._call("services.find", "GET"):
            return self._client.find("services", name, attribute="name")

    def create_service(self, desired: DesiredService) -> dict:
        """Create a service bound to the desired escalation policy."""
        logger.info(f"Creating PagerDuty service {desired.service_name}")
        with self._call("services.create", "POST"):
            return self._client.rpost("/services", json={"service": self._service_body(desired)})

    def update_service(self, service_id: str, desired: DesiredService) -> dict:
        """
        Update name, escalation policy and timeouts of a service.

        Raises:
            ServiceNotFoundError: if the service was removed out of band
        """
        logger.info(f"Updating PagerDuty service {service_id} ({desired.service_name})")
        with self._call("services.update", "PUT"):
            try:
                return self._client.rput(
                    f"/services/{service_id}", json={"service": self._service_body(desired)}
                )
            except pagerduty.Error as e:
                if _status_of(e) == 404:
                    raise ServiceNotFoundError(f"PagerDuty service {service_id} not found") from e
                raise

    def delete_service(self, service_id: str) -> None:
        """Delete a service. A service that is already gone is not an error."""
        logger.info(f"Deleting PagerDuty service {service_id}")
        with self._call("services.delete", "DELETE"):
            response = self._client.delete(f"/services/{service_id}")
            if response.status_code == 404:
                logger.info(f"PagerDuty service {service_id} already deleted")
                return
            if not response.ok:
                raise ExternalServiceError(
                    f"PagerDuty services.delete failed: HTTP {response.status_code}"
                )

    def find_integration(self, service_id: str) -> Optional[Integration]:
        """Return the Events API v2 integration on a service, or None."""
        with self._call("services.get", "GET"):
            service = self._client.rget(f"/services/{service_id}")
        for ref in service.get("integrations") or []:
            if ref.get("type", "").startswith(INTEGRATION_TYPE):
                return Integration(id=ref["id"], key=self.get_integration_key(service_id, ref["id"]))
        return None

    def create_integration(self, service_id: str) -> Integration:
        """Add an Events API v2 integration to a service."""
        logger.info(f"Creating PagerDuty integration on service {service_id}")
        body = {
            "integration": {
                "type": INTEGRATION_TYPE,
                "name": INTEGRATION_NAME,
                "service": {"id": service_id, "type": "service_reference"},
            }
        }
        with self._call("integrations.create", "POST"):
            integration = self._client.rpost(f"/services/{service_id}/integrations", json=body)
        return Integration(id=integration["id"], key=integration["integration_key"])

    def get_integration_key(self, service_id: str, integration_id: str) -> str:
        with self._call("integrations.get", "GET"):
            integration = self._client.rget(f"/services/{service_id}/integrations/{integration_id}")
        return integration["integration_key"]

    def heartbeat(self) -> None:
        """Cheap authenticated call used as a liveness probe."""
        with self._call("abilities.list", "GET"):
            self._client.rget("/abilities")

    @staticmethod
    def _service_body(desired: DesiredService) -> dict:
        return {
            "type": "service",
            "name": desired.service_name,
            "description": f"Alerts for cluster {desired.cluster_id}",
            "escalation_policy": {
                "id": desired.escalation_policy,
                "type": "escalation_policy_reference",
            },
            "acknowledgement_timeout": desired.acknowledge_timeout or None,
            "auto_resolve_timeout": desired.resolve_timeout or None,
            "alert_creation": "create_alerts_and_incidents",
        }
