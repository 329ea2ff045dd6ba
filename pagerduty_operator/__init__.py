"""PagerDuty integration operator for Hive ClusterDeployments."""

__version__ = "0.1.0"
