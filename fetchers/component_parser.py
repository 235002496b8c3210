"""Parser turning a JCR page structure into typed hierarchy nodes."""

import logging
from collections import Counter
from datetime import timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from dateutil import parser as date_parser

from content_paths import build_file_name_with_id, deterministic_id, is_valid_link, strip_host
from exporters.link_rewriter import html_to_text, strip_hosts_in_html
from models import HierarchyNode, NodeType

logger = logging.getLogger('content_store_migrator.fetcher.component_parser')

META_PREFIXES = ('jcr:', 'cq:', 'sling:', ':')
IMAGE_RENDITION = 'coreimg.85.1600'


def child_objects(node: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield (key, child) for nested JCR objects, skipping metadata properties."""
    for key, value in node.items():
        if key.startswith(META_PREFIXES) or not isinstance(value, dict):
            continue
        yield key, value


def epoch_millis(value: Any) -> Optional[int]:
    """Convert a JCR timestamp (epoch millis or date string) to epoch millis."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def ensure_unique_titles(nodes: List[HierarchyNode]) -> List[HierarchyNode]:
    """Suffix repeated sibling titles so that every sibling title is unique."""
    totals = Counter(node.title for node in nodes)
    seen: Counter = Counter()
    taken = set(totals)
    for node in nodes:
        if totals[node.title] < 2:
            continue
        seen[node.title] += 1
        if seen[node.title] == 1:
            continue
        base = node.title
        suffix = seen[base]
        candidate = f"{base} ({suffix})"
        while candidate in taken:
            suffix += 1
            candidate = f"{base} ({suffix})"
        taken.add(candidate)
        node.title = candidate
    return nodes


class ComponentParser:
    """
    Parses ``jcr:content.infinity.json`` documents into hierarchy nodes.

    Components are recognized by ``sling:resourceType`` under a configured
    prefix:

    - tabs: one ``tab`` node per panel, content parsed recursively
    - accordion: ``accordion`` node with one child per text-bearing panel
    - button / custom-button: ``button`` leaf with an optional link
    - teaser: ``teaser`` leaf with link, deterministic id and image
    - text: ``text`` leaf
    - title: ``section-title`` node that adopts the following siblings
    - container: text-only containers collapse into one ``text`` node,
      other containers are parsed inline

    A component that fails to parse is skipped with a warning.
    """

    def __init__(self, store_path: str, component_prefix: str = 'tccc-dam/components/'):
        """
        Initialize the parser.

        Args:
            store_path: Source path of the store being parsed
            component_prefix: Resource type prefix of recognized components
        """
        self.store_path = store_path.rstrip('/')
        self.component_prefix = component_prefix
        self.skipped_components = 0

    def parse(self, structure: Dict[str, Any]) -> List[HierarchyNode]:
        """
        Parse a page structure into the root's children.

        Args:
            structure: Parsed ``jcr:content.infinity.json`` document

        Returns:
            Ordered list of top-level nodes

        Raises:
            ValueError: If the structure is not a JSON object
        """
        if not isinstance(structure, dict):
            raise ValueError(f"Structure of {self.store_path} is not a JSON object")
        content = structure.get('jcr:content', structure)
        root = content.get('root') if isinstance(content, dict) else None
        if not isinstance(root, dict):
            logger.warning(f"No 'root' container in structure of {self.store_path}")
            return []
        return self._parse_container(root, '')

    def component_kind(self, component: Dict[str, Any]) -> Optional[str]:
        """Return the component name relative to the configured prefix."""
        resource_type = component.get('sling:resourceType') or ''
        if not resource_type.startswith(self.component_prefix):
            return None
        return resource_type[len(self.component_prefix):]

    def _parse_container(self, container: Dict[str, Any], jcr_path: str) -> List[HierarchyNode]:
        nodes: List[HierarchyNode] = []
        section: Optional[HierarchyNode] = None

        for key, component in child_objects(container):
            kind = self.component_kind(component)
            if kind is None:
                continue

            child_path = f"{jcr_path}/{key}"
            try:
                if kind == 'title':
                    heading = self._parse_title(component)
                    if heading is not None:
                        section = heading
                        nodes.append(heading)
                    continue
                parsed = self._parse_component(kind, key, component, child_path)
            except Exception as e:
                self.skipped_components += 1
                logger.warning(f"Skipping component '{child_path}' in {self.store_path}: {e}")
                continue

            (section.children if section else nodes).extend(parsed)

        for node in nodes:
            if node.type == NodeType.SECTION_TITLE:
                ensure_unique_titles(node.children)
        return ensure_unique_titles(nodes)

    def _parse_component(self, kind: str, key: str, component: Dict[str, Any],
                         jcr_path: str) -> List[HierarchyNode]:
        if kind == 'tabs':
            return self._parse_tabs(component, jcr_path)
        if kind == 'accordion':
            accordion = self._parse_accordion(key, component)
            return [accordion] if accordion else []
        if kind in ('button', 'custom-button'):
            return [self._parse_button(component)]
        if kind == 'teaser':
            return [self._parse_teaser(key, component, jcr_path)]
        if kind == 'text':
            if not component.get('text'):
                return []
            return [HierarchyNode(type=NodeType.TEXT, title='Text',
                                  text=strip_hosts_in_html(component['text']))]
        if kind == 'container':
            return self._parse_nested_container(component, jcr_path)
        return []

    def _parse_tabs(self, component: Dict[str, Any], jcr_path: str) -> List[HierarchyNode]:
        tabs = []
        for key, panel in child_objects(component):
            title = panel.get('cq:panelTitle') or panel.get('jcr:title') or key
            tabs.append(HierarchyNode(
                type=NodeType.TAB,
                title=title,
                children=self._parse_container(panel, f"{jcr_path}/{key}")
            ))
        return tabs

    def _parse_accordion(self, key: str, component: Dict[str, Any]) -> Optional[HierarchyNode]:
        title = component.get('cq:panelTitle') or component.get('jcr:title') or key
        panels = []

        for panel_key, panel in child_objects(component):
            panel_title = panel.get('cq:panelTitle') or panel.get('jcr:title') or panel_key
            texts = [
                child['text'] for _, child in child_objects(panel)
                if self.component_kind(child) == 'text' and child.get('text')
            ]
            if texts:
                panels.append(HierarchyNode(
                    type=NodeType.ACCORDION,
                    title=panel_title,
                    text=strip_hosts_in_html('\n\n'.join(texts))
                ))

        if not panels:
            logger.debug(f"Accordion '{title}' has no text panels, dropping it")
            return None
        return HierarchyNode(type=NodeType.ACCORDION, title=title,
                             children=ensure_unique_titles(panels))

    def _parse_button(self, component: Dict[str, Any]) -> HierarchyNode:
        title = component.get('text') or component.get('jcr:title') or 'Button'
        return HierarchyNode(
            type=NodeType.BUTTON,
            title=html_to_text(title) or 'Button',
            link_url=self._clean_link(component.get('linkURL') or component.get('searchLink'))
        )

    def _parse_teaser(self, key: str, component: Dict[str, Any], jcr_path: str) -> HierarchyNode:
        title = component.get('jcr:title') or key
        node_id = f"teaser-{deterministic_id(title + key)}"
        return HierarchyNode(
            type=NodeType.TEASER,
            title=title,
            node_id=node_id,
            link_url=self._clean_link(component.get('linkURL')),
            image_url=self._teaser_image_url(component, jcr_path, node_id)
        )

    def _parse_title(self, component: Dict[str, Any]) -> Optional[HierarchyNode]:
        title = component.get('jcr:title') or html_to_text(component.get('text') or '')
        if not title:
            return None
        return HierarchyNode(type=NodeType.SECTION_TITLE, title=title)

    def _parse_nested_container(self, component: Dict[str, Any], jcr_path: str) -> List[HierarchyNode]:
        texts = []
        has_other_components = False
        for _, child in child_objects(component):
            kind = self.component_kind(child)
            if kind == 'text' and child.get('text'):
                texts.append(child['text'])
            elif child.get('sling:resourceType'):
                has_other_components = True

        if texts and not has_other_components:
            return [HierarchyNode(type=NodeType.TEXT, title='Text',
                                  text=strip_hosts_in_html('\n'.join(texts)))]
        return self._parse_container(component, jcr_path)

    def _teaser_image_url(self, component: Dict[str, Any], jcr_path: str,
                          node_id: str) -> Optional[str]:
        image_path = jcr_path
        source = component
        if not component.get('fileName') and isinstance(component.get('image'), dict):
            source = component['image']
            image_path = f"{jcr_path}/image"

        file_name = source.get('fileName')
        if not file_name or '.' not in file_name:
            return None

        last_modified = epoch_millis(source.get('jcr:lastModified') or source.get('cq:lastModified'))
        if last_modified is None:
            logger.debug(f"Teaser image '{file_name}' has no usable lastModified, skipping image")
            return None

        extension = file_name.rsplit('.', 1)[1]
        return (
            f"{self.store_path}/_jcr_content/root{image_path}.{IMAGE_RENDITION}.{extension}/"
            f"{last_modified}/{build_file_name_with_id(node_id, file_name)}"
        )

    @staticmethod
    def _clean_link(url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        url = url.strip()
        if not is_valid_link(url):
            logger.debug(f"Ignoring invalid link: {url!r}")
            return None
        return strip_host(url)


__all__ = ['ComponentParser', 'ensure_unique_titles', 'epoch_millis', 'child_objects']
