"""
HTTP client wrapper

This is the only entry point for outbound HTTP requests in the service.
Import http_get from here instead of calling requests directly so every URL
is validated against the egress allowlist and every request is logged.
"""
import logging
import uuid
from typing import Dict, Optional

import requests

from trading_room.utils.egress_guard import (
    EgressGuardError,
    log_outbound_request,
    validate_outbound_url,
)

logger = logging.getLogger(__name__)


def http_get(
    url: str,
    timeout: float = 10.0,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None,
    calling_module: str = "unknown",
) -> requests.Response:
    """
    Synchronous HTTP GET request with egress guard validation.

    Redirects are never followed, so the allowlist cannot be bypassed.

    Raises:
        EgressGuardError: If URL is not allowlisted
        requests.exceptions.RequestException: On network failure
    """
    validated_url, _ = validate_outbound_url(url, calling_module=calling_module)
    correlation_id = str(uuid.uuid4())[:8]

    try:
        response = requests.get(
            validated_url,
            params=params,
            timeout=timeout,
            headers=headers or {},
            allow_redirects=False,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"[HTTP_CLIENT] GET request failed: {url} (called from {calling_module}): {e}")
        raise

    log_outbound_request(
        validated_url,
        method="GET",
        status_code=response.status_code,
        calling_module=calling_module,
        correlation_id=correlation_id,
    )
    return response


__all__ = ["http_get", "EgressGuardError"]
