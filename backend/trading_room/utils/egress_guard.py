"""
Egress Guard: outbound allowlist for market-data lookups

Every outbound HTTP request is validated here before any network activity.
Only allowlisted domains (and their subdomains) may be contacted; raw public
IP addresses are always blocked. Local/private addresses are allowed so a
market-data proxy can run next to the service.
"""
import ipaddress
import logging
from typing import Optional, Set, Tuple
from urllib.parse import urlparse

from trading_room.core.config import settings

logger = logging.getLogger(__name__)

# Allowlisted domains (exact matches and subdomains)
ALLOWLISTED_DOMAINS: Set[str] = {
    # Bybit public market data (linear tickers)
    "api.bybit.com",
    "api.bytick.com",
}

LOCAL_HOSTS = ("localhost", "host.docker.internal")


class EgressGuardError(Exception):
    """Raised when an outbound request violates allowlist rules"""
    pass


def allowed_domains() -> Set[str]:
    """Static allowlist plus the host of the configured market-data base URL."""
    domains = set(ALLOWLISTED_DOMAINS)
    configured = urlparse(settings.MARKET_DATA_BASE_URL).hostname
    if configured:
        domains.add(configured.lower())
    return domains


def is_raw_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


def is_domain_allowed(host: str) -> bool:
    host = host.lower()
    for allowed in allowed_domains():
        if host == allowed or host.endswith("." + allowed):
            return True
    return False


def validate_outbound_url(url: str, calling_module: str = "unknown") -> Tuple[str, Optional[str]]:
    """
    Validate that an outbound URL is allowed.

    Returns:
        Tuple of (url, ip) where ip is set only when the host is an IP literal

    Raises:
        EgressGuardError: If the URL violates allowlist rules
    """
    parsed = urlparse(url)
    host = parsed.hostname
    if not host:
        raise EgressGuardError(f"Invalid URL (no hostname): {url} (called from {calling_module})")
    if parsed.scheme not in ("http", "https"):
        raise EgressGuardError(f"Unsupported scheme '{parsed.scheme}' in {url} (called from {calling_module})")

    if host.lower() in LOCAL_HOSTS:
        logger.debug(f"[EGRESS_GUARD] Allowed local address: {host} (called from {calling_module})")
        return url, None

    if is_raw_ip(host):
        ip = ipaddress.ip_address(host)
        if ip.is_private or ip.is_loopback:
            logger.debug(f"[EGRESS_GUARD] Allowed private/internal IP: {host} (called from {calling_module})")
            return url, host
        error_msg = (
            f"Outbound request to raw IP address {host} blocked. "
            f"URL: {url}, Called from: {calling_module}. Use domain names instead."
        )
        logger.error(f"[EGRESS_GUARD] {error_msg}")
        raise EgressGuardError(error_msg)

    if not is_domain_allowed(host):
        error_msg = (
            f"Outbound request to non-allowlisted domain {host} blocked. "
            f"URL: {url}, Called from: {calling_module}."
        )
        logger.error(f"[EGRESS_GUARD] {error_msg}")
        raise EgressGuardError(error_msg)

    return url, None


def log_outbound_request(
    url: str,
    method: str = "GET",
    status_code: Optional[int] = None,
    calling_module: str = "unknown",
    correlation_id: Optional[str] = None,
) -> None:
    host = urlparse(url).hostname or "unknown"
    log_msg = f"[EGRESS_GUARD] Outbound {method} to {host} (status={status_code}, module={calling_module}"
    if correlation_id:
        log_msg += f", correlation_id={correlation_id}"
    logger.info(log_msg + ")")
