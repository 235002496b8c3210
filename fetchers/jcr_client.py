"""Read client for the JCR source repository (AEM author instance)."""

import json
import logging
from typing import Any, Dict, Optional

import requests

from content_paths import LOGIN_PATH_MARKER
from http_session import build_session
from .cache_manager import BaseResponseCache

logger = logging.getLogger('content_store_migrator.fetcher.jcr_client')

MIN_IMAGE_BYTES = 100


class FetcherError(Exception):
    """Base exception for fetcher-related errors."""
    pass


class SourceAuthError(FetcherError):
    """The source credential is missing or has expired. Not retried."""
    pass


def detect_image_type(data: bytes) -> Optional[str]:
    """
    Identify an image by its magic bytes.

    Args:
        data: Raw file content

    Returns:
        One of 'png', 'jpeg', 'gif', 'webp', 'svg', or None if unrecognized
        or too small to be a real image
    """
    if len(data) < MIN_IMAGE_BYTES:
        return None
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return 'png'
    if data.startswith(b'\xff\xd8\xff'):
        return 'jpeg'
    if data.startswith((b'GIF87a', b'GIF89a')):
        return 'gif'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'webp'
    head = data[:512].lstrip().lower()
    if head.startswith(b'<svg') or (head.startswith(b'<?xml') and b'<svg' in data[:2048].lower()):
        return 'svg'
    return None


def looks_like_html(data: bytes) -> bool:
    """Check whether a body is an HTML page (typically the login screen)."""
    head = data[:512].lstrip().lower()
    return head.startswith((b'<!doctype html', b'<html'))


class JcrClient:
    """Fetches structure JSON and images from the author instance."""

    def __init__(
        self,
        author_url: str,
        auth_cookie: str,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 2.0,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the source client.

        Args:
            author_url: Author base URL (e.g. "https://author.example.com")
            auth_cookie: Cookie header value carrying the login token
            timeout: HTTP request timeout in seconds
            max_retries: Maximum retry attempts for transient errors
            retry_backoff_factor: Exponential backoff factor
            verify_ssl: Whether to verify SSL certificates
            session: Optional preconfigured session
        """
        if not author_url:
            raise ValueError("JcrClient requires an author URL")
        if not auth_cookie:
            raise SourceAuthError("Missing source auth cookie (source.auth_cookie)")

        self.author_url = author_url.rstrip('/')
        self.timeout = timeout
        self.session = session or build_session(max_retries, retry_backoff_factor, verify_ssl)
        self.session.headers['Cookie'] = auth_cookie
        self.request_count = 0

        logger.info(f"Initialized source client for {self.author_url}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'JcrClient':
        """Create a client from the ``source`` and ``advanced`` config sections."""
        source = config.get('source', {})
        advanced = config.get('advanced', {})
        return cls(
            author_url=source.get('aem_author'),
            auth_cookie=source.get('auth_cookie'),
            timeout=advanced.get('request_timeout', 30),
            max_retries=advanced.get('max_retries', 3),
            retry_backoff_factor=advanced.get('retry_backoff_factor', 2.0),
            verify_ssl=advanced.get('verify_ssl', True)
        )

    def structure_url(self, store_path: str) -> str:
        """URL of a page's full JCR structure."""
        return f"{self.author_url}{store_path.rstrip('/')}/jcr:content.infinity.json"

    def asset_url(self, path: str) -> str:
        """Absolute URL of a source-relative asset path."""
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self.author_url}{path}"

    def get_structure(self, store_path: str, cache: BaseResponseCache) -> Dict[str, Any]:
        """
        Fetch the JCR structure of a content store page.

        Args:
            store_path: Source content path
            cache: Response cache to consult and fill

        Returns:
            Parsed JSON document

        Raises:
            SourceAuthError: If the credential has expired
            FetcherError: For any other failure
        """
        url = self.structure_url(store_path)
        body = self._fetch(url, cache, validate=self._validate_json)
        try:
            structure = json.loads(body.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise FetcherError(f"Invalid JSON from {url}: {e}")
        if not isinstance(structure, dict):
            raise FetcherError(f"Expected a JSON object from {url}, got {type(structure).__name__}")
        return structure

    def get_image(self, image_path: str, cache: BaseResponseCache) -> bytes:
        """
        Fetch an image, validating it by magic bytes.

        Raises:
            SourceAuthError: If an HTML login page came back instead
            FetcherError: If the download fails or the content is not an image
        """
        url = self.asset_url(image_path)
        return self._fetch(url, cache, validate=self._validate_image)

    def _fetch(self, url: str, cache: BaseResponseCache, validate) -> bytes:
        cached = cache.get(url)
        if cached is not None:
            return cached

        logger.debug(f"GET {url}")
        self.request_count += 1
        try:
            response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.exceptions.Timeout:
            raise FetcherError(f"Request timeout after {self.timeout}s: {url}")
        except requests.exceptions.RequestException as e:
            raise FetcherError(f"Request failed for {url}: {e}")

        self._check_auth(response, url)

        if response.status_code != 200:
            raise FetcherError(f"HTTP {response.status_code} for {url}")

        body = response.content
        validate(body, url)
        cache.put(url, body)
        return body

    @staticmethod
    def _check_auth(response: requests.Response, url: str) -> None:
        redirected_to_login = LOGIN_PATH_MARKER in (response.url or '') or any(
            LOGIN_PATH_MARKER in (r.headers.get('Location') or '') for r in response.history
        )
        if redirected_to_login:
            raise SourceAuthError(
                f"Authentication expired (redirected to login page) while fetching {url}"
            )
        if response.status_code in (401, 403):
            raise SourceAuthError(
                f"Authentication rejected (HTTP {response.status_code}) while fetching {url}"
            )

    @staticmethod
    def _validate_json(body: bytes, url: str) -> None:
        if looks_like_html(body):
            raise SourceAuthError(f"Received HTML instead of JSON from {url}; authentication likely expired")

    @staticmethod
    def _validate_image(body: bytes, url: str) -> None:
        if looks_like_html(body):
            raise SourceAuthError(f"Received HTML instead of an image from {url}; authentication likely expired")
        if detect_image_type(body) is None:
            raise FetcherError(f"Downloaded content is not a valid image ({len(body)} bytes): {url}")


__all__ = ['JcrClient', 'FetcherError', 'SourceAuthError', 'detect_image_type']
