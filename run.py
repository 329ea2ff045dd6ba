#!/usr/bin/env python3
"""
PagerDuty Integration Operator - Entry Point

Watches PagerDutyIntegration objects and provisions a PagerDuty service for
the Hive ClusterDeployment each one references, delivering the integration
key to the cluster through a SyncSet.

Usage:
    python run.py [--health-probe-bind-address :8081] [--leader-elect] [--in-cluster]
"""

import argparse
import logging
import platform
import sys

from kubernetes import config
from prometheus_client import start_http_server

from pagerduty_operator import __version__
from pagerduty_operator.config import METRICS_PATH, OperatorConfig
from pagerduty_operator.controller import PagerDutyIntegrationController
from pagerduty_operator.errors import ConfigurationError
from pagerduty_operator.health import start_health_server
from pagerduty_operator.leader import run_with_leader_election

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%dT%H:%M:%S%z'
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="PagerDuty Integration Operator - provision PagerDuty services for managed clusters"
    )
    parser.add_argument(
        "--health-probe-bind-address",
        default=":8081",
        help="The address the probe endpoint binds to (default: :8081)"
    )
    parser.add_argument(
        "--leader-elect",
        action="store_true",
        help="Enable leader election; ensures only one active operator"
    )
    parser.add_argument(
        "--namespace", "-n",
        default="",
        help="Namespace to watch PagerDutyIntegrations in (default: all namespaces)"
    )
    parser.add_argument(
        "--in-cluster",
        action="store_true",
        help="Use in-cluster config (for running inside Kubernetes)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.info(f"Operator version: {__version__}")
    logger.info(f"Python version: {platform.python_version()} ({platform.system()}/{platform.machine()})")

    try:
        operator_config = OperatorConfig.from_env()
    except ConfigurationError as e:
        logger.error(f"Failed to read operator configuration: {e}")
        sys.exit(1)
    if operator_config.fedramp:
        logger.info("Running in fedramp environment.")

    # Load Kubernetes configuration
    try:
        if args.in_cluster:
            config.load_incluster_config()
            logger.info("Loaded in-cluster configuration")
        else:
            config.load_kube_config()
            logger.info("Loaded kubeconfig from default location")
    except Exception as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        sys.exit(1)

    controller = PagerDutyIntegrationController(operator_config, namespace=args.namespace)

    try:
        start_http_server(operator_config.metrics_port)
        logger.info(f"Serving metrics on :{operator_config.metrics_port}{METRICS_PATH}")
        start_health_server(args.health_probe_bind_address, ready=controller.started.is_set)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to start metrics or health endpoints: {e}")
        sys.exit(1)

    try:
        if args.leader_elect:
            run_with_leader_election(operator_config.operator_namespace, controller.start)
            controller.stop()
            logger.error("Leadership lost, exiting")
            sys.exit(1)
        controller.run()
    except KeyboardInterrupt:
        controller.stop()
        logger.info("Controller stopped")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Controller error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
