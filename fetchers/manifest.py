"""Reading and writing store manifests (one content path per line)."""

import logging
import os
from datetime import datetime, timezone
from typing import List

logger = logging.getLogger('content_store_migrator.fetcher.manifest')


def read_manifest(manifest_path: str) -> List[str]:
    """
    Read store paths from a manifest file.

    Blank lines and lines starting with ``#`` are ignored, as are repeated
    paths.

    Args:
        manifest_path: Path to manifest file

    Returns:
        Store paths in file order

    Raises:
        FileNotFoundError: If the manifest does not exist
    """
    if not os.path.exists(manifest_path):
        raise FileNotFoundError(f"Manifest file not found: {manifest_path}")

    paths: List[str] = []
    with open(manifest_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            if line not in paths:
                paths.append(line)

    logger.info(f"Loaded {len(paths)} store paths from {manifest_path}")
    return paths


def write_manifest(manifest_path: str, store_paths: List[str], source: str = '') -> None:
    """
    Write store paths to a manifest file with a comment header.

    Args:
        manifest_path: Destination file
        store_paths: Paths to write, one per line
        source: Store the list was discovered from, recorded in the header
    """
    directory = os.path.dirname(manifest_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    header = [
        '# Content store manifest',
        f"# Generated: {datetime.now(timezone.utc).isoformat()}",
    ]
    if source:
        header.append(f"# Discovered from: {source}")

    with open(manifest_path, 'w', encoding='utf-8') as f:
        f.write('\n'.join(header + list(store_paths)) + '\n')

    logger.info(f"Wrote {len(store_paths)} store paths to {manifest_path}")


__all__ = ['read_manifest', 'write_manifest']
