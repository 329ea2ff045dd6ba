"""Main controller logic for the PagerDuty Integration operator."""

import logging
import threading
import time
from typing import Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import OperatorConfig, RESYNC_INTERVAL_SECONDS, WATCH_TIMEOUT_SECONDS
from .crd_client import PagerDutyIntegrationClient
from .errors import ConflictError, OperatorError
from .heartbeat import HeartbeatReporter
from .integration_index import IntegrationIndex
from .metrics import reconcile_total
from .reconciler import IntegrationReconciler
from .workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


class PagerDutyIntegrationController:
    """
    Watches PagerDutyIntegration and ClusterDeployment objects and feeds
    integration keys to a pool of reconcile workers.
    """

    def __init__(
        self,
        config: OperatorConfig,
        namespace: str = "",
        crd_client: Optional[PagerDutyIntegrationClient] = None,
        core_api=None,
        reconciler: Optional[IntegrationReconciler] = None,
        heartbeat: Optional[HeartbeatReporter] = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Process-wide operator settings
            namespace: Namespace to watch integrations in ("" for all namespaces)
        """
        self.config = config
        self.namespace = namespace
        self.v1 = core_api or client.CoreV1Api()
        self.crd_client = crd_client or PagerDutyIntegrationClient()
        self.reconciler = reconciler or IntegrationReconciler(
            config, crd_client=self.crd_client, core_api=self.v1
        )
        self.heartbeat = heartbeat or HeartbeatReporter(config, self.v1)

        self.queue = RateLimitingQueue()
        self.index = IntegrationIndex()
        self._stop_event = threading.Event()
        self._threads = []
        self.started = threading.Event()

    def load_existing_integrations(self) -> int:
        """
        Index and enqueue existing integrations on startup.

        Returns:
            Number of integrations loaded
        """
        logger.info("Loading existing PagerDutyIntegrations...")
        integrations = self.crd_client.list_integrations(self.namespace)

        for obj in integrations:
            self.index.add_or_update(obj)
            self.queue.add(self._key(obj))

        count = len(integrations)
        logger.info(f"Loaded {count} existing integrations")
        return count

    @staticmethod
    def _key(obj: dict) -> str:
        metadata = obj.get("metadata", {})
        return f"{metadata.get('namespace', '')}/{metadata.get('name', '')}"

    def handle_integration_event(self, event_type: str, obj: dict) -> None:
        """
        Handle a PagerDutyIntegration watch event.

        Args:
            event_type: ADDED, MODIFIED, or DELETED
            obj: The integration object from the event
        """
        key = self._key(obj)

        if event_type == "DELETED":
            self.index.remove(*key.split("/", 1))
            logger.info(f"PagerDutyIntegration DELETED: {key}")
            return

        if self.index.add_or_update(obj):
            logger.info(f"PagerDutyIntegration {event_type}: {key}")
            self.queue.add(key)

    def handle_cluster_deployment_event(self, event_type: str, obj: dict) -> None:
        """Enqueue every integration targeting the ClusterDeployment."""
        metadata = obj.get("metadata", {})
        for key in self.index.integrations_for_cluster(
            metadata.get("namespace", ""), metadata.get("name", "")
        ):
            logger.debug(f"ClusterDeployment {event_type} triggers {key}")
            self.queue.add(key)

    def process_next_item(self) -> bool:
        """
        Reconcile one key from the queue.

        Returns:
            False once the queue is shut down
        """
        key = self.queue.get()
        if key is None:
            return False

        namespace, name = key.split("/", 1)
        try:
            result = self.reconciler.reconcile(namespace, name)
        except ConflictError as e:
            logger.info(f"Conflict reconciling {key}, retrying: {e}")
            reconcile_total.labels("conflict").inc()
            self.queue.add_rate_limited(key)
        except OperatorError as e:
            delay = self.queue.add_rate_limited(key)
            logger.error(f"Error reconciling {key} ({e.reason}), retry in {delay:.1f}s: {e}")
            reconcile_total.labels("error").inc()
        except Exception as e:
            delay = self.queue.add_rate_limited(key)
            logger.error(f"Unexpected error reconciling {key}, retry in {delay:.1f}s: {e}")
            reconcile_total.labels("error").inc()
        else:
            logger.debug(f"Reconciled {key}: {result.state.value}")
            reconcile_total.labels("success").inc()
            self.queue.forget(key)
        finally:
            self.queue.done(key)

        return True

    def run_worker(self) -> None:
        while self.process_next_item():
            pass

    def watch_integrations(self) -> None:
        """Watch for PagerDutyIntegration events in a loop."""
        logger.info("Starting PagerDutyIntegration watcher...")

        while not self._stop_event.is_set():
            try:
                for event in self.crd_client.watch_integrations(
                    namespace=self.namespace,
                    timeout=WATCH_TIMEOUT_SECONDS
                ):
                    if self._stop_event.is_set():
                        break

                    self.handle_integration_event(event["type"], event["object"])

            except ApiException as e:
                logger.error(f"Integration watch error: {e}")
                time.sleep(5)
            except Exception as e:
                logger.error(f"Unexpected error in integration watcher: {e}")
                time.sleep(5)

    def watch_cluster_deployments(self) -> None:
        """Watch for ClusterDeployment events in a loop."""
        logger.info("Starting ClusterDeployment watcher...")

        while not self._stop_event.is_set():
            try:
                for event in self.crd_client.watch_cluster_deployments(timeout=WATCH_TIMEOUT_SECONDS):
                    if self._stop_event.is_set():
                        break

                    self.handle_cluster_deployment_event(event["type"], event["object"])

            except ApiException as e:
                logger.error(f"ClusterDeployment watch error: {e}")
                time.sleep(5)
            except Exception as e:
                logger.error(f"Unexpected error in ClusterDeployment watcher: {e}")
                time.sleep(5)

    def periodic_resync(self) -> None:
        """Periodically enqueue every known integration."""
        logger.info(f"Starting periodic resync (interval: {RESYNC_INTERVAL_SECONDS}s)")

        while not self._stop_event.wait(RESYNC_INTERVAL_SECONDS):
            logger.debug("Running periodic resync...")
            for key in self.index.keys():
                self.queue.add(key)

    def _start_thread(self, target, name: str) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def start(self) -> None:
        """Start watchers, workers, resync and heartbeat threads."""
        logger.info("=" * 60)
        logger.info("Starting PagerDuty Integration operator")
        logger.info("=" * 60)
        logger.info(f"Namespace: {self.namespace or 'all namespaces'}")
        logger.info(f"Fedramp: {self.config.fedramp}")
        logger.info(f"Workers: {self.config.workers}")

        self.load_existing_integrations()

        self._start_thread(self.watch_integrations, "integration-watcher")
        self._start_thread(self.watch_cluster_deployments, "clusterdeployment-watcher")
        self._start_thread(self.periodic_resync, "periodic-resync")
        self._start_thread(lambda: self.heartbeat.run(self._stop_event), "pagerduty-heartbeat")
        for i in range(self.config.workers):
            self._start_thread(self.run_worker, f"reconcile-worker-{i}")

        self.started.set()

    def run(self) -> None:
        """Run the controller until stopped."""
        self.start()
        logger.info("Controller is running. Press Ctrl+C to stop.")

        try:
            while not self._stop_event.wait(1):
                pass
        except KeyboardInterrupt:
            logger.info("Shutdown requested...")
            self.stop()

    def stop(self) -> None:
        """Stop the controller."""
        logger.info("Stopping controller...")
        self._stop_event.set()
        self.queue.shut_down()
