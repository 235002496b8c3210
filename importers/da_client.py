"""
DA admin API client for the target document store.

Wraps the source, content and preview/live endpoints used to upload
generated documents and images and to trigger preview and publish.
"""

import logging
import mimetypes
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from http_session import RETRY_STATUS_CODES, build_session
from models import UploadKind

logger = logging.getLogger('content_store_migrator.importers.da_client')

DEFAULT_TIMEOUT = 30


class DaApiError(Exception):
    """Error returned by (or while reaching) the target store."""

    def __init__(self, message: str, status_code: Optional[int] = None, network_error: bool = False):
        """
        Initialize API error.

        Args:
            message: Human-readable error message
            status_code: HTTP status, None when no response was received
            network_error: The request failed on connection or timeout
        """
        self.status_code = status_code
        self.network_error = network_error
        self.message = message
        super().__init__(message)

    @property
    def transient(self) -> bool:
        """Whether repeating the request may succeed."""
        return self.network_error or self.status_code in RETRY_STATUS_CODES

    def __str__(self) -> str:
        """String representation of error."""
        if self.status_code is None:
            return f"DaApiError({self.message})"
        return f"DaApiError(status={self.status_code}, message={self.message})"


class DaAuthError(DaApiError):
    """The bearer token was rejected (HTTP 401/403). Never retried."""
    pass


@dataclass(frozen=True)
class TargetPaths:
    """Computes target store paths for documents and images."""

    org: str
    repo: str
    branch: str = 'main'
    dest: str = ''
    images_base: str = 'images/'

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'TargetPaths':
        target = config.get('target', {})
        return cls(
            org=target.get('org') or '',
            repo=target.get('repo') or '',
            branch=target.get('branch') or 'main',
            dest=(target.get('dest') or '').strip('/'),
            images_base=target.get('images_base', 'images/') or ''
        )

    def _join(self, *parts: str) -> str:
        return '/'.join(part.strip('/') for part in parts if part and part.strip('/'))

    def document_path(self, file_name: str, is_main_store: bool) -> str:
        """``org/repo/dest/file`` for main stores, ``org/repo/dest/content-stores/file`` otherwise."""
        folder = '' if is_main_store else 'content-stores'
        return self._join(self.org, self.repo, self.dest, folder, file_name)

    def image_path(self, store_name: str, file_name: str) -> str:
        """``org/repo/dest/{images_base}{store}/file``."""
        return self._join(self.org, self.repo, self.dest, f"{self.images_base}{store_name}", file_name)

    def live_path(self, target_path: str, kind: UploadKind) -> str:
        """
        Path used by the preview and live endpoints.

        Inserts the branch after ``org/repo`` and drops the ``.html``
        extension of pages.
        """
        org, repo, rest = target_path.split('/', 2)
        if kind == UploadKind.HTML_PAGE and rest.endswith('.html'):
            rest = rest[:-len('.html')]
        return self._join(org, repo, self.branch, rest)


class DaAdminClient:
    """Client for the DA admin source API and the preview/live admin API."""

    def __init__(
        self,
        token: str,
        admin_url: str = 'https://admin.da.live',
        content_url: str = 'https://content.da.live',
        hlx_admin_url: str = 'https://admin.hlx.page',
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        rate_limit: float = 0.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the target client.

        Args:
            token: Bearer token for the admin APIs
            admin_url: DA admin base URL
            content_url: DA content base URL
            hlx_admin_url: Preview/live admin base URL
            verify_ssl: Enable SSL certificate verification
            timeout: HTTP request timeout in seconds
            rate_limit: Minimum seconds between requests (0.0 = disabled)
            session: Optional preconfigured session
        """
        self.admin_url = admin_url.rstrip('/')
        self.content_url = content_url.rstrip('/')
        self.hlx_admin_url = hlx_admin_url.rstrip('/')
        self.timeout = timeout
        self.rate_limit = rate_limit
        self._last_request_time = 0.0
        self._rate_lock = threading.Lock()
        self.request_count = 0

        # The upload pipeline owns retries, so the transport does not repeat requests
        self.session = session or build_session(max_retries=0, verify_ssl=verify_ssl)
        if token:
            bearer = token if token.lower().startswith('bearer ') else f"Bearer {token}"
            self.session.headers['Authorization'] = bearer

        logger.info(f"Initialized DA client for {self.admin_url} (rate_limit={rate_limit}s)")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'DaAdminClient':
        """Create a client from the ``target`` and ``advanced`` config sections."""
        target = config.get('target', {})
        advanced = config.get('advanced', {})
        return cls(
            token=target.get('token') or '',
            admin_url=target.get('admin_url', 'https://admin.da.live'),
            content_url=target.get('content_url', 'https://content.da.live'),
            hlx_admin_url=target.get('hlx_admin_url', 'https://admin.hlx.page'),
            verify_ssl=advanced.get('verify_ssl', True),
            timeout=advanced.get('request_timeout', DEFAULT_TIMEOUT),
            rate_limit=advanced.get('rate_limit', 0.0)
        )

    # ========================================================================
    # Source operations
    # ========================================================================

    def exists(self, path: str, kind: UploadKind) -> bool:
        """
        Check whether a resource is already present in the target store.

        Documents are checked on the admin source API, images on the
        content host.

        Args:
            path: Target path (``org/repo/...``)
            kind: Kind of resource

        Returns:
            True if the resource exists
        """
        if kind == UploadKind.IMAGE:
            url = f"{self.content_url}/{path}"
        else:
            url = f"{self.admin_url}/source/{path}"

        response = self._request('HEAD', url)
        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        self._raise_for_status(response, f"existence check for {path}")
        return False

    def put(self, path: str, content: bytes, file_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Create or overwrite a source document.

        Args:
            path: Target path (``org/repo/...``)
            content: File bytes
            file_name: Name sent with the multipart part (defaults to the last path segment)

        Returns:
            Response summary
        """
        file_name = file_name or path.rsplit('/', 1)[-1]
        content_type = mimetypes.guess_type(file_name)[0] or 'application/octet-stream'
        files = {'data': (file_name, content, content_type)}

        response = self._request('POST', f"{self.admin_url}/source/{path}", files=files)
        self._raise_for_status(response, f"upload of {path}")
        logger.debug(f"Uploaded {path} ({len(content)} bytes)")
        return {'status_code': response.status_code, 'path': path}

    # ========================================================================
    # Preview and publish
    # ========================================================================

    def preview(self, live_path: str) -> Dict[str, Any]:
        """Trigger a preview build of ``org/repo/branch/...``."""
        response = self._request('POST', f"{self.hlx_admin_url}/preview/{live_path}")
        self._raise_for_status(response, f"preview of {live_path}")
        return {'status_code': response.status_code, 'path': live_path}

    def publish(self, live_path: str) -> Dict[str, Any]:
        """Publish ``org/repo/branch/...`` to the live site."""
        response = self._request('POST', f"{self.hlx_admin_url}/live/{live_path}")
        self._raise_for_status(response, f"publish of {live_path}")
        return {'status_code': response.status_code, 'path': live_path}

    def status(self, live_path: str) -> Dict[str, bool]:
        """
        Report preview and publish state of a resource.

        Returns:
            Dict with 'previewed' and 'published' flags
        """
        response = self._request('GET', f"{self.hlx_admin_url}/status/{live_path}")
        self._raise_for_status(response, f"status of {live_path}")
        try:
            data = response.json()
        except ValueError as e:
            raise DaApiError(f"Invalid status response for {live_path}: {e}", response.status_code)
        return {
            'previewed': (data.get('preview') or {}).get('status') == 200,
            'published': (data.get('live') or {}).get('status') == 200
        }

    # ========================================================================
    # Internals
    # ========================================================================

    def _apply_rate_limit(self) -> None:
        """Enforce the minimum delay between requests across worker threads."""
        if self.rate_limit <= 0:
            return

        with self._rate_lock:
            current_time = time.time()
            time_since_last = current_time - self._last_request_time
            if time_since_last < self.rate_limit:
                sleep_duration = self.rate_limit - time_since_last
                logger.debug(f"Rate limiting: sleeping {sleep_duration:.2f}s")
                time.sleep(sleep_duration)
            self._last_request_time = time.time()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        self._apply_rate_limit()
        self.request_count += 1
        logger.debug(f"{method} {url}")
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise DaApiError(f"Request timeout after {self.timeout}s: {url}", network_error=True) from e
        except requests.exceptions.ConnectionError as e:
            raise DaApiError(f"Connection failed for {url}: {e}", network_error=True) from e
        except requests.exceptions.RequestException as e:
            raise DaApiError(f"Request failed for {url}: {e}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str) -> None:
        if 200 <= response.status_code < 300:
            return
        body = (response.text or '')[:200]
        message = f"{action} failed: HTTP {response.status_code} {body}".strip()
        if response.status_code in (401, 403):
            raise DaAuthError(message, response.status_code)
        raise DaApiError(message, response.status_code)


__all__ = ['DaAdminClient', 'DaApiError', 'DaAuthError', 'TargetPaths']
