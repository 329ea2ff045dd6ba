"""Error types raised during reconciliation."""


class OperatorError(Exception):
    """Base class for errors that requeue a resource."""

    reason = "Error"


class ConflictError(OperatorError):
    """Optimistic write lost against a concurrent writer."""

    reason = "Conflict"


class ExternalServiceError(OperatorError):
    """PagerDuty API call failed (auth, rate limit, 5xx, network)."""

    reason = "PagerDutyError"


class ConfigurationError(OperatorError):
    """Missing credential or malformed reference; needs operator action."""

    reason = "ConfigurationError"


class ReconcileTimeoutError(OperatorError):
    """Reconcile attempt ran past its deadline."""

    reason = "Timeout"
