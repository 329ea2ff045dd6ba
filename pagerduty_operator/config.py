"""Configuration settings for the PagerDuty Integration operator."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

# CRD Settings
CRD_GROUP = "pagerduty.openshift.io"
CRD_VERSION = "v1alpha1"
CRD_PLURAL = "pagerdutyintegrations"

# Hive
HIVE_GROUP = "hive.openshift.io"
HIVE_VERSION = "v1"
CLUSTER_DEPLOYMENT_PLURAL = "clusterdeployments"
SYNCSET_PLURAL = "syncsets"
SYNCSET_KIND = "SyncSet"

# Finalizer and labels
FINALIZER = "pd.managed.openshift.io/pagerduty"
RH_INFRA_LABEL = "ext-pagerduty.openshift.io/rh-infra"
MANAGED_BY_LABEL = "pagerduty.openshift.io/owned-by"

# Operator identity
DEFAULT_OPERATOR_NAMESPACE = "pagerduty-operator"
PAGERDUTY_API_SECRET_NAME = "pagerduty-api-key"
PAGERDUTY_API_SECRET_KEY = "PAGERDUTY_API_KEY"

# Dependent object naming
CONFIG_MAP_SUFFIX = "-pd-config"
SECRET_SUFFIX = "-pd-secret"
SYNCSET_SUFFIX = "-pd-sync"
PAGERDUTY_KEY = "PAGERDUTY_KEY"

# Spec defaults
DEFAULT_SERVICE_PREFIX = "osd"
DEFAULT_ACKNOWLEDGE_TIMEOUT = 21600
DEFAULT_RESOLVE_TIMEOUT = 0
DEFAULT_TARGET_SECRET_NAME = "pd-secret"
DEFAULT_TARGET_SECRET_NAMESPACE = "openshift-monitoring"

# Watch settings
WATCH_TIMEOUT_SECONDS = 300
RESYNC_INTERVAL_SECONDS = 600

# Work queue backoff
BACKOFF_BASE_SECONDS = 0.5
BACKOFF_MAX_SECONDS = 300.0

# Metrics
METRICS_PATH = "/metrics"

_TRUE_VALUES = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_VALUES = ("0", "f", "F", "FALSE", "false", "False")


def parse_bool(value: str) -> bool:
    """Parse a boolean the way the FEDRAMP variable has always been read.

    Accepts 1, t, T, TRUE, true, True and their false counterparts.
    Anything else raises ConfigurationError.
    """
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"invalid boolean value {value!r}")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class OperatorConfig:
    """Process-wide settings, resolved once at startup."""
    fedramp: bool = False
    operator_namespace: str = DEFAULT_OPERATOR_NAMESPACE
    workers: int = 4
    reconcile_timeout: int = 60
    heartbeat_interval: int = 300
    metrics_port: int = 8080

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "OperatorConfig":
        """Build the config from environment variables.

        Raises:
            ConfigurationError: if FEDRAMP or a numeric setting is malformed
        """
        if env is None:
            env = os.environ

        fedramp_raw = env.get("FEDRAMP", "")
        fedramp = parse_bool(fedramp_raw) if fedramp_raw else False

        return cls(
            fedramp=fedramp,
            operator_namespace=env.get("OPERATOR_NAMESPACE", "") or DEFAULT_OPERATOR_NAMESPACE,
            workers=_int_env(env, "RECONCILE_WORKERS", cls.workers),
            reconcile_timeout=_int_env(env, "RECONCILE_TIMEOUT_SECONDS", cls.reconcile_timeout),
            heartbeat_interval=_int_env(env, "HEARTBEAT_INTERVAL_SECONDS", cls.heartbeat_interval),
            metrics_port=_int_env(env, "METRICS_PORT", cls.metrics_port),
        )
