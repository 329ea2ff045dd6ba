"""Leader election on a ConfigMap lock."""

import logging
import socket
import uuid
from typing import Callable

from kubernetes.leaderelection import electionconfig, leaderelection
from kubernetes.leaderelection.resourcelock.configmaplock import ConfigMapLock

logger = logging.getLogger(__name__)

LOCK_NAME = "pagerduty-operator-lock"
LEASE_DURATION = 17
RENEW_DEADLINE = 15
RETRY_PERIOD = 5


def run_with_leader_election(namespace: str, on_started_leading: Callable[[], None]) -> None:
    """
    Block until this process wins the lock, run on_started_leading, and
    keep renewing. Returns once leadership is lost.
    """
    candidate_id = f"{socket.gethostname()}_{uuid.uuid4()}"
    lock = ConfigMapLock(LOCK_NAME, namespace, candidate_id)

    def on_stopped_leading():
        logger.error(f"{candidate_id} lost leadership")

    config = electionconfig.Config(
        lock,
        LEASE_DURATION,
        RENEW_DEADLINE,
        RETRY_PERIOD,
        on_started_leading,
        on_stopped_leading,
    )
    logger.info(f"Waiting for leadership of {namespace}/{LOCK_NAME} as {candidate_id}")
    leaderelection.LeaderElection(config).run()
