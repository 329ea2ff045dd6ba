"""Prometheus metrics for the operator."""

from prometheus_client import Counter, Gauge, Summary

pagerduty_request = Counter(
    "pagerduty_api_requests_total",
    "Total number of PagerDuty API requests",
    ["method", "verb", "outcome"],
)

pagerduty_heartbeat = Summary(
    "pagerduty_heartbeat",
    "Latency of the PagerDuty API liveness probe in seconds",
)

pagerduty_api_up = Gauge(
    "pagerduty_api_up",
    "1 if the last PagerDuty heartbeat succeeded, 0 otherwise",
)

pagerduty_create_failure = Gauge(
    "pagerduty_create_failure",
    "1 if the last create or update for a cluster failed",
    ["clusterdeployment_name", "pagerdutyintegration_name"],
)

pagerduty_delete_failure = Gauge(
    "pagerduty_delete_failure",
    "1 if the last cleanup for a cluster failed",
    ["clusterdeployment_name", "pagerdutyintegration_name"],
)

reconcile_total = Counter(
    "pagerduty_operator_reconcile_total",
    "Reconcile attempts by result",
    ["result"],
)
