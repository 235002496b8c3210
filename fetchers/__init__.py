"""Fetchers package for retrieving content store trees from the source repository."""

import os

from models import ContentStore
from .cache_manager import CacheMode, MemoryResponseCache, ResponseCache
from .jcr_client import FetcherError, JcrClient, SourceAuthError
from .manifest import read_manifest, write_manifest
from .tree_fetcher import TreeFetcher


class FetcherFactory:
    """Factory for creating per-store fetcher instances based on configuration."""

    @staticmethod
    def create_fetcher(config: dict, store: ContentStore, client: JcrClient = None) -> TreeFetcher:
        """Create a tree fetcher with a cache scoped to one store.

        Args:
            config: Configuration dictionary
            store: Store the fetcher will work on
            client: Optional shared source client (created from config if omitted)

        Returns:
            TreeFetcher instance

        Raises:
            ValueError: If the cache mode is invalid
        """
        source = config.get('source', {})
        migration = config.get('migration', {})
        mode = CacheMode(config.get('cache', {}).get('mode', 'use'))

        cache_dir = os.path.join(
            migration.get('data_dir', './DATA'), store.name, 'extracted-results', 'caches'
        )
        cache = ResponseCache(cache_dir, mode)

        return TreeFetcher(
            client=client or JcrClient.from_config(config),
            cache=cache,
            store_link_pattern=source.get('store_link_pattern'),
            component_prefix=source.get('component_prefix', 'tccc-dam/components/'),
            max_depth=migration.get('max_depth'),
            show_progress=config.get('advanced', {}).get('progress_bars', True)
        )


__all__ = [
    'CacheMode',
    'ResponseCache',
    'MemoryResponseCache',
    'FetcherError',
    'SourceAuthError',
    'JcrClient',
    'TreeFetcher',
    'FetcherFactory',
    'read_manifest',
    'write_manifest'
]
