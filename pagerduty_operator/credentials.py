"""Access to the PagerDuty API key stored in the operator namespace."""

import base64
from typing import Optional

from kubernetes.client.rest import ApiException

from .config import PAGERDUTY_API_SECRET_KEY, PAGERDUTY_API_SECRET_NAME
from .errors import ConfigurationError


def read_api_key(core_api, namespace: str, request_timeout: Optional[float] = None) -> str:
    """
    Read the PagerDuty API key from its well-known secret.

    Raises:
        ConfigurationError: if the secret or the key inside it is missing
        ApiException: for any other API error
    """
    try:
        secret = core_api.read_namespaced_secret(
            name=PAGERDUTY_API_SECRET_NAME,
            namespace=namespace,
            _request_timeout=request_timeout,
        )
    except ApiException as e:
        if e.status == 404:
            raise ConfigurationError(
                f"secret {namespace}/{PAGERDUTY_API_SECRET_NAME} not found"
            ) from e
        raise

    encoded = (secret.data or {}).get(PAGERDUTY_API_SECRET_KEY)
    if not encoded:
        raise ConfigurationError(
            f"secret {namespace}/{PAGERDUTY_API_SECRET_NAME} has no {PAGERDUTY_API_SECRET_KEY}"
        )
    return base64.b64decode(encoded).decode().strip()
