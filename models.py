"""Data models for the content store migration pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from content_paths import PATH_SEPARATOR, store_directory_name, store_title, is_main_store_path

logger = logging.getLogger('content_store_migrator')


class NodeType(Enum):
    """Structural role of a node in a content store hierarchy."""
    ROOT = "root"
    TAB = "tab"
    ACCORDION = "accordion"
    BUTTON = "button"
    TEASER = "teaser"
    SECTION_TITLE = "section-title"
    TEXT = "text"


class NodeValidationError(ValueError):
    """Raised when a node is missing a field its type requires."""
    pass


# Content fields each node type may carry. Anything else must stay empty.
CONTENT_FIELDS = ('text', 'image_url', 'link_url', 'synonym')

_ALLOWED_FIELDS = {
    NodeType.ROOT: (),
    NodeType.TEXT: ('text', 'synonym'),
}

_REQUIRED_FIELDS = {
    NodeType.TEXT: ('text',),
}


def allowed_fields(node_type: NodeType) -> Tuple[str, ...]:
    """Return the content fields a node type may populate."""
    return _ALLOWED_FIELDS.get(node_type, CONTENT_FIELDS)


@dataclass
class HierarchyNode:
    """
    A node in a content store tree.

    The node is a tagged variant: ``type`` decides which content fields are
    allowed and which are required. Violations are rejected at construction
    so that parsed trees never carry half-formed nodes.
    """

    type: NodeType
    title: str
    text: Optional[str] = None
    image_url: Optional[str] = None
    link_url: Optional[str] = None
    synonym: Optional[str] = None
    node_id: Optional[str] = None
    path: str = ''
    children: List['HierarchyNode'] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate required and allowed fields for the node type."""
        if isinstance(self.type, str):
            self.type = NodeType(self.type)

        if self.type != NodeType.ROOT and not (self.title or '').strip():
            raise NodeValidationError(f"{self.type.value} node requires a title")

        for field_name in _REQUIRED_FIELDS.get(self.type, ()):
            if not getattr(self, field_name):
                raise NodeValidationError(
                    f"{self.type.value} node '{self.title}' requires '{field_name}'"
                )

        allowed = allowed_fields(self.type)
        for field_name in CONTENT_FIELDS:
            if field_name not in allowed and getattr(self, field_name):
                raise NodeValidationError(
                    f"{self.type.value} node '{self.title}' cannot carry '{field_name}'"
                )

    def add_child(self, child: 'HierarchyNode') -> None:
        """Add a child node."""
        self.children.append(child)

    def find_child(self, title: str) -> Optional['HierarchyNode']:
        """Find a direct child by title."""
        for child in self.children:
            if child.title == title:
                return child
        return None

    def iter_nodes(self) -> Iterator['HierarchyNode']:
        """Yield this node and all descendants in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def count_nodes(self) -> int:
        """Count this node and all of its descendants."""
        return sum(1 for _ in self.iter_nodes())

    def assign_paths(self, prefix: Tuple[str, ...] = ()) -> None:
        """Recompute ``path`` for every descendant from its ancestor titles."""
        stack = [(child, prefix) for child in reversed(self.children)]
        while stack:
            node, ancestors = stack.pop()
            titles = ancestors + (node.title,)
            node.path = PATH_SEPARATOR.join(titles)
            stack.extend((child, titles) for child in reversed(node.children))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize node to the hierarchy file representation."""
        data: Dict[str, Any] = {
            'type': self.type.value,
            'title': self.title,
        }
        if self.path:
            data['path'] = self.path
        if self.node_id:
            data['id'] = self.node_id
        if self.text:
            data['text'] = self.text
        if self.image_url:
            data['imageUrl'] = self.image_url
        if self.link_url:
            data['linkURL'] = self.link_url
        if self.synonym:
            data['synonym'] = self.synonym
        if self.children:
            data['items'] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HierarchyNode':
        """Deserialize a node and its descendants."""
        return cls(
            type=NodeType(data.get('type', NodeType.SECTION_TITLE.value)),
            title=data.get('title', ''),
            text=data.get('text') or None,
            image_url=data.get('imageUrl') or None,
            link_url=data.get('linkURL') or None,
            synonym=data.get('synonym') or None,
            node_id=data.get('id') or None,
            path=data.get('path', ''),
            children=[cls.from_dict(item) for item in data.get('items', [])]
        )


def make_root(title: str, children: Optional[List[HierarchyNode]] = None) -> HierarchyNode:
    """Create a root node and assign paths to its descendants."""
    root = HierarchyNode(type=NodeType.ROOT, title=title, children=list(children or []))
    root.assign_paths()
    return root


@dataclass(frozen=True)
class ContentStore:
    """A named entry point into the source catalog."""

    path: str
    name: str
    title: str
    is_main: bool

    @classmethod
    def from_path(cls, path: str, is_main: Optional[bool] = None) -> 'ContentStore':
        """Build a store from its source path, deriving name and classification."""
        normalized = '/' + path.strip().strip('/')
        return cls(
            path=normalized,
            name=store_directory_name(normalized),
            title=store_title(normalized),
            is_main=is_main_store_path(normalized) if is_main is None else is_main
        )

    def is_ancestor_of(self, other: 'ContentStore') -> bool:
        """Check whether ``other`` lives beneath this store's path."""
        return other.path.startswith(self.path + '/')


def classify_stores(paths: List[str]) -> List[ContentStore]:
    """
    Build stores for a batch, classifying each as main or sub.

    A store found beneath another store of the same batch is always a
    sub-store; otherwise the naming convention decides.

    Args:
        paths: Source paths in manifest order

    Returns:
        ContentStore list in the same order, duplicates removed
    """
    seen = set()
    candidates = []
    for path in paths:
        store = ContentStore.from_path(path)
        if store.path in seen:
            continue
        seen.add(store.path)
        candidates.append(store)

    stores = []
    for store in candidates:
        has_ancestor = any(other.is_ancestor_of(store) for other in candidates)
        if has_ancestor and store.is_main and not store.path.endswith('-content-stores'):
            store = ContentStore(store.path, store.name, store.title, False)
        stores.append(store)
    return stores


FLAT_COLUMNS = ['type', 'path', 'title', 'imageUrl', 'linkURL', 'text', 'synonym']


@dataclass(frozen=True)
class FlatRow:
    """One node of a flattened hierarchy, ready for tabular export."""

    type: str
    path: str
    title: str
    image_url: str = ''
    link_url: str = ''
    text: str = ''
    synonym: str = ''

    def to_record(self) -> Dict[str, str]:
        """Return the row keyed by tabular column names."""
        return {
            'type': self.type,
            'path': self.path,
            'title': self.title,
            'imageUrl': self.image_url,
            'linkURL': self.link_url,
            'text': self.text,
            'synonym': self.synonym,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'FlatRow':
        """Build a row from a tabular record."""
        return cls(
            type=record.get('type') or '',
            path=record.get('path') or '',
            title=record.get('title') or '',
            image_url=record.get('imageUrl') or '',
            link_url=record.get('linkURL') or '',
            text=record.get('text') or '',
            synonym=record.get('synonym') or '',
        )

    @property
    def key(self) -> Tuple[str, str, str]:
        """The key-bearing fields of the row."""
        return (self.path, self.type, self.title)


@dataclass
class CacheEntry:
    """A cached raw response."""

    key: str
    body: bytes
    fetched_at: datetime


class UploadKind(Enum):
    """Kinds of content pushed to the target store."""
    IMAGE = "image"
    JSON_SHEET = "json-sheet"
    HTML_PAGE = "html-page"

    @property
    def is_document(self) -> bool:
        """Documents go through preview and publish; images do not."""
        return self is not UploadKind.IMAGE


class UploadState(Enum):
    """States an upload task passes through."""
    PENDING = "pending"
    EXISTENCE_CHECK = "existence_check"
    SKIPPED = "skipped"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"
    PREVIEW_REQUESTED = "preview_requested"
    PREVIEW_DONE = "preview_done"
    PUBLISH_REQUESTED = "publish_requested"
    PUBLISH_DONE = "publish_done"


@dataclass
class UploadTask:
    """A single file destined for the target store."""

    target_path: str
    kind: UploadKind
    content: Optional[bytes] = None
    local_path: Optional[str] = None
    store_name: Optional[str] = None
    trace: List[UploadState] = field(default_factory=list)
    upload_state: Optional[UploadState] = None
    preview_ok: Optional[bool] = None
    publish_ok: Optional[bool] = None
    would_upload: bool = False
    error: Optional[str] = None

    def transition(self, state: UploadState) -> None:
        """Record a state transition."""
        self.trace.append(state)
        if state in (UploadState.SKIPPED, UploadState.UPLOADED, UploadState.FAILED):
            self.upload_state = state

    def read_content(self) -> bytes:
        """Return the bytes to upload, reading ``local_path`` if needed."""
        if self.content is not None:
            return self.content
        if not self.local_path:
            raise ValueError(f"Upload task has no content: {self.target_path}")
        with open(self.local_path, 'rb') as f:
            return f.read()

    @property
    def file_name(self) -> str:
        """Last segment of the target path."""
        return self.target_path.rsplit('/', 1)[-1]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize task outcome for reports."""
        return {
            'target_path': self.target_path,
            'kind': self.kind.value,
            'store': self.store_name,
            'state': self.upload_state.value if self.upload_state else None,
            'trace': [state.value for state in self.trace],
            'would_upload': self.would_upload,
            'preview_ok': self.preview_ok,
            'publish_ok': self.publish_ok,
            'error': self.error
        }


@dataclass
class UploadResult:
    """Aggregate outcome of an upload batch."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    previewed: int = 0
    preview_failed: int = 0
    published: int = 0
    publish_failed: int = 0
    tasks: List[UploadTask] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize counts for phase statistics."""
        return {
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'previewed': self.previewed,
            'preview_failed': self.preview_failed,
            'published': self.published,
            'publish_failed': self.publish_failed,
            'errors': [
                f"{task.target_path}: {task.error}" for task in self.tasks if task.error
            ]
        }
