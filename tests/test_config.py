"""Tests for operator configuration."""

import pytest

from pagerduty_operator.config import DEFAULT_OPERATOR_NAMESPACE, OperatorConfig, parse_bool
from pagerduty_operator.errors import ConfigurationError


def test_defaults_from_empty_env():
    config = OperatorConfig.from_env({})
    assert config.fedramp is False
    assert config.operator_namespace == DEFAULT_OPERATOR_NAMESPACE
    assert config.metrics_port == 8080


@pytest.mark.parametrize("value", ["1", "t", "TRUE", "true", "True"])
def test_fedramp_true(value):
    assert OperatorConfig.from_env({"FEDRAMP": value}).fedramp is True


@pytest.mark.parametrize("value", ["0", "f", "false", "False"])
def test_fedramp_false(value):
    assert OperatorConfig.from_env({"FEDRAMP": value}).fedramp is False


def test_fedramp_malformed():
    with pytest.raises(ConfigurationError):
        OperatorConfig.from_env({"FEDRAMP": "yes"})


def test_numeric_overrides():
    config = OperatorConfig.from_env({
        "RECONCILE_WORKERS": "8",
        "RECONCILE_TIMEOUT_SECONDS": "30",
        "OPERATOR_NAMESPACE": "custom-ns",
    })
    assert config.workers == 8
    assert config.reconcile_timeout == 30
    assert config.operator_namespace == "custom-ns"


def test_numeric_malformed():
    with pytest.raises(ConfigurationError):
        OperatorConfig.from_env({"METRICS_PORT": "eighty"})


def test_parse_bool_rejects_garbage():
    with pytest.raises(ConfigurationError):
        parse_bool("on")
