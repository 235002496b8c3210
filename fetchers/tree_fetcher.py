"""Tree fetcher: builds a content store hierarchy from the source repository."""

import logging
import os
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from tqdm import tqdm

from content_paths import compile_store_pattern, is_store_link, normalize_store_path, sanitize_file_name
from models import ContentStore, HierarchyNode, make_root
from .cache_manager import BaseResponseCache
from .component_parser import ComponentParser, ensure_unique_titles
from .jcr_client import FetcherError, JcrClient, SourceAuthError

logger = logging.getLogger('content_store_migrator.fetcher.tree_fetcher')


class TreeFetcher:
    """
    Fetches content store pages and assembles them into hierarchy trees.

    This fetcher:
    1. Requests a store's JCR structure through the response cache
    2. Parses it into typed nodes
    3. Optionally follows links to other content stores and attaches
       their content beneath the linking node
    4. Downloads the images referenced by the tree
    """

    def __init__(
        self,
        client: JcrClient,
        cache: BaseResponseCache,
        store_link_pattern: Optional[str] = None,
        component_prefix: str = 'tccc-dam/components/',
        max_depth: Optional[int] = None,
        show_progress: bool = False
    ):
        """
        Initialize the tree fetcher.

        Args:
            client: Source read client
            cache: Response cache for this store
            store_link_pattern: Regex identifying links to other content stores
            component_prefix: Resource type prefix of recognized components
            max_depth: Maximum link depth followed in recursive mode (None = unlimited)
            show_progress: Show a tqdm bar while downloading images
        """
        self.client = client
        self.cache = cache
        self.store_pattern = compile_store_pattern(store_link_pattern)
        self.component_prefix = component_prefix
        self.max_depth = max_depth
        self.show_progress = show_progress

        self.stats = {
            'stores_fetched': 0,
            'stores_failed': 0,
            'components_skipped': 0,
            'images_downloaded': 0,
            'images_skipped': 0,
            'images_failed': 0
        }

    def fetch_tree(self, store: ContentStore, recursive: bool = False) -> HierarchyNode:
        """
        Fetch a content store and return its tree.

        Args:
            store: Store to fetch
            recursive: Follow links to other content stores

        Returns:
            Root node titled with the store title, paths assigned

        Raises:
            SourceAuthError: If the source credential has expired
            FetcherError: If the store page itself cannot be fetched
        """
        logger.info(f"Fetching store structure: {store.path}")
        children = self._fetch_children(store.path)
        root = make_root(store.title, children)

        if recursive:
            self._follow_store_links(root, store)
            root.assign_paths()

        logger.info(f"Fetched {root.count_nodes() - 1} nodes for {store.name}")
        return root

    def discover_store_links(self, store: ContentStore) -> List[str]:
        """
        List a store and every content store it links to.

        Only the store page itself is fetched.

        Returns:
            ``[store.path]`` followed by the sorted linked store paths
        """
        linked = {path for path, _ in self._store_links(self._fetch_children(store.path))}
        linked.discard(store.path)

        logger.info(f"Discovered {len(linked)} linked content stores from {store.path}")
        return [store.path] + sorted(linked)

    def download_images(self, tree: HierarchyNode, images_dir: str) -> Dict[str, int]:
        """
        Download every image referenced by a tree.

        Files already present are skipped. Each file is saved under the
        sanitized last segment of its URL, which already carries the owning
        node's id.

        Args:
            tree: Tree whose ``image_url`` fields are downloaded
            images_dir: Destination folder

        Returns:
            Statistics for this call (downloaded, skipped, failed)

        Raises:
            SourceAuthError: If the source credential has expired
        """
        call_stats = {'downloaded': 0, 'skipped': 0, 'failed': 0}
        image_urls: Dict[str, str] = {}
        for node in tree.iter_nodes():
            if node.image_url:
                file_name = sanitize_file_name(node.image_url.rstrip('/').rsplit('/', 1)[-1])
                image_urls.setdefault(file_name, node.image_url)

        if not image_urls:
            return call_stats

        os.makedirs(images_dir, exist_ok=True)
        items = list(image_urls.items())
        if self.show_progress:
            items = tqdm(items, desc="Images", unit="img", leave=False)

        for file_name, image_url in items:
            target = os.path.join(images_dir, file_name)
            if os.path.exists(target):
                call_stats['skipped'] += 1
                continue

            try:
                data = self.client.get_image(image_url, self.cache)
            except SourceAuthError:
                raise
            except FetcherError as e:
                logger.warning(f"Failed to download image '{file_name}': {e}")
                call_stats['failed'] += 1
                continue

            with open(target, 'wb') as f:
                f.write(data)
            call_stats['downloaded'] += 1
            logger.debug(f"Saved image {file_name} ({len(data)} bytes)")

        self.stats['images_downloaded'] += call_stats['downloaded']
        self.stats['images_skipped'] += call_stats['skipped']
        self.stats['images_failed'] += call_stats['failed']

        logger.info(
            f"Images: {call_stats['downloaded']} downloaded, {call_stats['skipped']} already present, "
            f"{call_stats['failed']} failed"
        )
        return call_stats

    def get_stats(self) -> Dict[str, Any]:
        """Get fetch statistics including cache and request counters."""
        stats = dict(self.stats)
        stats['cache'] = self.cache.get_stats()
        stats['requests'] = getattr(self.client, 'request_count', 0)
        return stats

    def _fetch_children(self, store_path: str) -> List[HierarchyNode]:
        try:
            structure = self.client.get_structure(store_path, self.cache)
            if not isinstance(structure, dict):
                raise FetcherError(f"Structure of {store_path} is not a JSON object")
        except FetcherError:
            self.stats['stores_failed'] += 1
            raise

        parser = ComponentParser(store_path, self.component_prefix)
        children = parser.parse(structure)
        self.stats['stores_fetched'] += 1
        self.stats['components_skipped'] += parser.skipped_components
        return children

    def _store_links(self, nodes: List[HierarchyNode]) -> List[Tuple[str, HierarchyNode]]:
        """Return (normalized store path, linking node) pairs in pre-order."""
        links = []
        for top in nodes:
            for node in top.iter_nodes():
                if node.link_url and is_store_link(node.link_url, self.store_pattern):
                    links.append((normalize_store_path(node.link_url), node))
        return links

    def _follow_store_links(self, root: HierarchyNode, store: ContentStore) -> None:
        """Fetch linked stores breadth-first, attaching each under its linking node."""
        visited: Set[str] = {store.path}
        frontier: Deque[Tuple[str, HierarchyNode, int]] = deque(
            (path, node, 1) for path, node in self._store_links(root.children)
        )

        while frontier:
            path, attach_to, depth = frontier.popleft()
            if path in visited:
                continue
            if self.max_depth is not None and depth > self.max_depth:
                logger.debug(f"Not following {path}: depth {depth} exceeds max depth {self.max_depth}")
                continue
            visited.add(path)

            try:
                children = self._fetch_children(path)
            except SourceAuthError:
                raise
            except FetcherError as e:
                logger.warning(f"Skipping linked store {path}: {e}")
                continue

            attach_to.children.extend(children)
            ensure_unique_titles(attach_to.children)
            logger.debug(f"Attached {len(children)} nodes from {path} under '{attach_to.title}'")

            frontier.extend(
                (linked_path, node, depth + 1)
                for linked_path, node in self._store_links(children)
            )


__all__ = ['TreeFetcher']
