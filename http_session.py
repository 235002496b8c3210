"""Shared HTTP session factory with retry logic and optional system CA support."""

import logging
import os

import requests
import truststore
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger('content_store_migrator.http')

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

_system_ca_checked = False


def enable_system_ca() -> None:
    """Use the operating system CA store when USE_SYSTEM_CA is set."""
    global _system_ca_checked
    if _system_ca_checked:
        return
    _system_ca_checked = True

    if os.getenv('USE_SYSTEM_CA') not in ('1', 'true', 'True', 'TRUE'):
        return

    truststore.inject_into_ssl()
    logger.info("Using system CA certificate store")


def build_session(
    max_retries: int = 3,
    retry_backoff_factor: float = 2.0,
    verify_ssl: bool = True,
    user_agent: str = 'content-store-migrator'
) -> requests.Session:
    """
    Create a session that retries idempotent requests on transient failures.

    Only HEAD, GET and OPTIONS are retried at the transport level; writes
    are retried by the caller, which knows whether a repeat is safe.

    Args:
        max_retries: Maximum retry attempts for transient errors
        retry_backoff_factor: Exponential backoff factor
        verify_ssl: Whether to verify SSL certificates
        user_agent: User-Agent header value

    Returns:
        Configured requests.Session
    """
    enable_system_ca()

    session = requests.Session()
    session.headers['User-Agent'] = user_agent
    session.verify = verify_ssl
    if not verify_ssl:
        logger.warning("SSL verification disabled - this is insecure!")
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=retry_backoff_factor,
        status_forcelist=list(RETRY_STATUS_CODES),
        allowed_methods=["HEAD", "GET", "OPTIONS"],
        raise_on_status=False
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    logger.debug(f"Session configured with max_retries={max_retries}, "
                 f"backoff_factor={retry_backoff_factor}, verify_ssl={verify_ssl}")
    return session


__all__ = ['build_session', 'enable_system_ca', 'RETRY_STATUS_CODES']
