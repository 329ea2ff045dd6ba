"""Periodic PagerDuty liveness probe.

Runs on its own thread, independent of reconciliation. A failed tick is only
a failed sample: it is logged, reflected in ``pagerduty_api_up`` and retried
on the next tick.
"""

import logging
import threading
import time
from typing import Callable

from .config import OperatorConfig
from .credentials import read_api_key
from .metrics import pagerduty_api_up, pagerduty_heartbeat
from .pagerduty_client import PagerDutyClient

logger = logging.getLogger(__name__)


class HeartbeatReporter:
    """Samples PagerDuty API availability into Prometheus metrics."""

    def __init__(
        self,
        config: OperatorConfig,
        core_api,
        pagerduty_factory: Callable[[str], PagerDutyClient] = PagerDutyClient,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.v1 = core_api
        self._pagerduty_factory = pagerduty_factory
        self._clock = clock

    def tick(self) -> bool:
        """Run one probe. Never raises; returns True on success."""
        start = self._clock()
        try:
            token = read_api_key(self.v1, self.config.operator_namespace)
            self._pagerduty_factory(token).heartbeat()
        except Exception as e:
            logger.error(f"PagerDuty heartbeat failed: {e}")
            pagerduty_api_up.set(0)
            return False

        pagerduty_heartbeat.observe(self._clock() - start)
        pagerduty_api_up.set(1)
        logger.debug("PagerDuty heartbeat succeeded")
        return True

    def run(self, stop_event: threading.Event) -> None:
        """Probe every heartbeat_interval seconds until stop_event is set."""
        logger.info(f"Starting PagerDuty heartbeat (interval: {self.config.heartbeat_interval}s)")

        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self.config.heartbeat_interval)
