"""In-memory stand-ins for the source and target services, plus JCR fixture builders."""

import threading
from typing import Any, Dict, List, Optional

from fetchers.jcr_client import FetcherError, SourceAuthError
from importers.da_client import DaApiError
from models import UploadKind

PREFIX = 'tccc-dam/components/'

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 200


def component(kind: str, **props) -> Dict[str, Any]:
    data = {'jcr:primaryType': 'nt:unstructured', 'sling:resourceType': PREFIX + kind}
    data.update(props)
    return data


def container(*children: Dict[str, Any], **props) -> Dict[str, Any]:
    data = component('container', **props)
    for index, child in enumerate(children):
        data[f"item_{index}"] = child
    return data


def page(*children: Dict[str, Any]) -> Dict[str, Any]:
    """A ``jcr:content.infinity.json`` document whose root holds ``children``."""
    return {
        'jcr:primaryType': 'cq:Page',
        'jcr:content': {
            'jcr:primaryType': 'cq:PageContent',
            'jcr:title': 'Store',
            'root': container(*children)
        }
    }


def button(text: str, link: Optional[str] = None) -> Dict[str, Any]:
    props = {'text': text}
    if link:
        props['linkURL'] = link
    return component('button', **props)


def text(html: str) -> Dict[str, Any]:
    return component('text', text=html)


def title(value: str) -> Dict[str, Any]:
    return component('title', **{'jcr:title': value})


def teaser(value: str, link: Optional[str] = None, file_name: Optional[str] = None,
           last_modified: Any = 1700000000000) -> Dict[str, Any]:
    props = {'jcr:title': value}
    if link:
        props['linkURL'] = link
    if file_name:
        props['fileName'] = file_name
        props['jcr:lastModified'] = last_modified
    return component('teaser', **props)


def tabs(**panels: List[Dict[str, Any]]) -> Dict[str, Any]:
    data = component('tabs')
    for name, children in panels.items():
        panel = container(*children, **{'cq:panelTitle': name})
        data[name.lower().replace(' ', '_')] = panel
    return data


def accordion(name: str, **panels: str) -> Dict[str, Any]:
    data = component('accordion', **{'jcr:title': name})
    for panel_title, html in panels.items():
        data[panel_title.lower()] = container(text(html), **{'cq:panelTitle': panel_title})
    return data


class FakeJcrClient:
    """Serves structures and images from dictionaries, counting every request."""

    def __init__(self, structures: Dict[str, Dict[str, Any]], images: Optional[Dict[str, bytes]] = None,
                 expired: bool = False):
        self.author_url = 'https://author.example.com'
        self.structures = structures
        self.images = images or {}
        self.expired = expired
        self.request_count = 0
        self.structure_requests: List[str] = []
        self.image_requests: List[str] = []

    def get_structure(self, store_path: str, cache) -> Dict[str, Any]:
        if self.expired:
            raise SourceAuthError(f"Authentication expired while fetching {store_path}")
        self.request_count += 1
        self.structure_requests.append(store_path)
        if store_path not in self.structures:
            raise FetcherError(f"HTTP 404 for {store_path}")
        return self.structures[store_path]

    def get_image(self, image_path: str, cache) -> bytes:
        if self.expired:
            raise SourceAuthError(f"Authentication expired while fetching {image_path}")
        self.request_count += 1
        self.image_requests.append(image_path)
        if image_path not in self.images:
            raise FetcherError(f"HTTP 404 for {image_path}")
        return self.images[image_path]


class FakeDaClient:
    """
    Target store held in memory.

    ``failures`` maps an operation and path, e.g. ``('put', 'org/repo/x.json')``,
    to a list of exceptions raised by successive calls before succeeding.
    """

    def __init__(self, existing=None, failures=None):
        self.store: Dict[str, bytes] = {path: b'' for path in (existing or [])}
        self.failures: Dict[tuple, List[Exception]] = {key: list(errors) for key, errors in (failures or {}).items()}
        self.calls: List[tuple] = []
        self.previewed: List[str] = []
        self.published: List[str] = []
        self._lock = threading.Lock()

    @property
    def puts(self) -> List[str]:
        return [path for operation, path in self.calls if operation == 'put']

    def _record(self, operation: str, path: str) -> None:
        with self._lock:
            self.calls.append((operation, path))
            pending = self.failures.get((operation, path))
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error

    def exists(self, path: str, kind: UploadKind) -> bool:
        self._record('exists', path)
        return path in self.store

    def put(self, path: str, content: bytes, file_name: Optional[str] = None) -> Dict[str, Any]:
        self._record('put', path)
        with self._lock:
            self.store[path] = content
        return {'status_code': 201, 'path': path}

    def preview(self, live_path: str) -> Dict[str, Any]:
        self._record('preview', live_path)
        self.previewed.append(live_path)
        return {'status_code': 200, 'path': live_path}

    def publish(self, live_path: str) -> Dict[str, Any]:
        self._record('publish', live_path)
        self.published.append(live_path)
        return {'status_code': 200, 'path': live_path}


def server_error(status: int = 503) -> DaApiError:
    return DaApiError(f"HTTP {status}", status)


class FakeResponse:
    """Minimal ``requests.Response`` replacement."""

    def __init__(self, status_code: int = 200, content: bytes = b'', url: str = '',
                 json_data: Any = None, history=None):
        self.status_code = status_code
        self.content = content
        self.text = content.decode('utf-8', errors='replace')
        self.url = url
        self.history = history or []
        self.headers: Dict[str, str] = {}
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Records requests and replies from a list of canned responses or exceptions."""

    def __init__(self, responses=None):
        self.headers: Dict[str, str] = {}
        self.responses = list(responses or [])
        self.requests: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs):
        self.requests.append({'method': method, 'url': url, **kwargs})
        reply = self.responses.pop(0) if self.responses else FakeResponse(200, url=url)
        if isinstance(reply, Exception):
            raise reply
        if not reply.url:
            reply.url = url
        return reply

    def request(self, method: str, url: str, **kwargs):
        return self._next(method, url, **kwargs)

    def get(self, url: str, **kwargs):
        return self._next('GET', url, **kwargs)
