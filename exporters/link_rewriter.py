"""Link rewriter for moving source links, rich text and images to target-side URLs."""

import logging
import os
import re
from dataclasses import replace
from typing import Dict, Iterable, List, Optional
from urllib.parse import parse_qs, quote, urlsplit

from bs4 import BeautifulSoup

from content_paths import normalize_store_path, sanitize_file_name, store_directory_name, strip_host
from models import FlatRow

logger = logging.getLogger('content_store_migrator.exporters.link_rewriter')

SEARCH_PAGE = 'search-assets.html'
CONTENT_STORE_LINK = re.compile(
    r'^/content/share/us/en/((?:all|bottler)-content-stores/[^.]+)\.html$'
)


def html_to_text(html: Optional[str]) -> str:
    """
    Reduce rich text to plain text with normalized whitespace.

    Args:
        html: HTML fragment

    Returns:
        Plain text, empty string for empty input
    """
    if not html:
        return ''
    if '<' not in html and '&' not in html:
        return ' '.join(html.split())
    text = BeautifulSoup(html, 'lxml').get_text(' ')
    return ' '.join(text.split())


def _rewrite_hrefs(html: Optional[str], transform) -> Optional[str]:
    """Apply ``transform`` to every href in an HTML fragment."""
    if not html or 'href' not in html:
        return html

    # html.parser keeps the fragment unwrapped when serialized back
    soup = BeautifulSoup(html, 'html.parser')
    changed = False
    for anchor in soup.find_all(href=True):
        new_href = transform(anchor['href'])
        if new_href != anchor['href']:
            anchor['href'] = new_href
            changed = True
    return str(soup) if changed else html


def strip_hosts_in_html(html: Optional[str]) -> Optional[str]:
    """Make absolute hrefs in rich text site-relative."""
    return _rewrite_hrefs(html, strip_host)


def rewrite_search_link(url: Optional[str]) -> Optional[str]:
    """
    Map the legacy asset search page onto the new search route.

    ``/content/share/.../search-assets.html?fulltext=cola%20zero`` becomes
    ``/search/all?query=cola%20zero``. Links without a ``fulltext`` query are
    returned unchanged.
    """
    if not url or SEARCH_PAGE not in url:
        return url

    query = urlsplit(url.replace('&amp;', '&')).query
    fulltext = parse_qs(query).get('fulltext')
    if not fulltext or not fulltext[0]:
        return url
    return f"/search/all?query={quote(fulltext[0], safe='')}"


class LinkRewriter:
    """
    Rewrites flattened rows so that every URL points at the target store.

    This rewriter:
    1. Maps search page links to the new search route
    2. Maps content-store page links to their generated store pages
    3. Applies both mappings to hrefs inside rich text
    4. Replaces source image URLs with content URLs of uploaded images,
       or blanks them when the image was never downloaded
    """

    def __init__(
        self,
        org: str,
        repo: str,
        dest: str = '',
        images_base: str = 'images/',
        content_url: str = 'https://content.da.live'
    ):
        """
        Initialize the link rewriter.

        Args:
            org: Target organization
            repo: Target repository
            dest: Destination folder inside the repository
            images_base: Folder prefix for uploaded images
            content_url: Base URL serving uploaded content
        """
        self.org = org
        self.repo = repo
        self.dest = (dest or '').strip().strip('/')
        self.images_base = images_base or ''
        self.content_url = content_url.rstrip('/')
        self.stats = {
            'links_rewritten': 0,
            'images_rewritten': 0,
            'images_missing': 0
        }
        self.store_stats: Dict[str, Dict[str, int]] = {}

    @classmethod
    def from_config(cls, config: Dict) -> 'LinkRewriter':
        """Create a rewriter from the ``target`` config section."""
        target = config.get('target', {})
        return cls(
            org=target.get('org') or '',
            repo=target.get('repo') or '',
            dest=target.get('dest') or '',
            images_base=target.get('images_base', 'images/'),
            content_url=target.get('content_url', 'https://content.da.live')
        )

    def rewrite_store_link(self, url: Optional[str]) -> Optional[str]:
        """
        Map a content-store page link onto the generated store page.

        ``/content/share/us/en/bottler-content-stores/coke-holiday-2025.html``
        becomes ``/{dest}/content-stores/bottler-content-stores-coke-holiday-2025``.
        """
        if not url:
            return url
        match = CONTENT_STORE_LINK.match(strip_host(url) or '')
        if not match:
            return url

        name = store_directory_name(normalize_store_path(match.group(0)))
        prefix = f"/{self.dest}" if self.dest else ''
        return f"{prefix}/content-stores/{name}"

    def rewrite_link(self, url: Optional[str]) -> str:
        """Apply both link mappings to a single URL."""
        if not url:
            return ''
        rewritten = self.rewrite_store_link(rewrite_search_link(url))
        if rewritten != url:
            self.stats['links_rewritten'] += 1
        return rewritten

    def rewrite_text(self, html: Optional[str]) -> str:
        """Apply both link mappings to every href in rich text."""
        if not html:
            return ''
        return _rewrite_hrefs(html, lambda href: self.rewrite_link(strip_host(href)))

    def image_target_url(self, image_url: Optional[str], available_images: Dict[str, str]) -> str:
        """
        Content URL of a downloaded image, or '' if it was not downloaded.

        Args:
            image_url: Source-relative image URL
            available_images: Downloaded file name -> name of the store holding it
        """
        if not image_url:
            return ''

        file_name = sanitize_file_name(image_url.rstrip('/').rsplit('/', 1)[-1])
        owner = available_images.get(file_name)
        if owner is None:
            self.stats['images_missing'] += 1
            logger.debug(f"Image not downloaded, dropping URL: {file_name}")
            return ''

        self.stats['images_rewritten'] += 1
        parts = [self.org, self.repo] + ([self.dest] if self.dest else [])
        return f"{self.content_url}/{'/'.join(parts)}/{self.images_base}{owner}/{file_name}"

    def rewrite_rows(self, rows: Iterable[FlatRow], store_name: str,
                     images_dir: Optional[str] = None,
                     merged_image_dirs: Optional[Dict[str, str]] = None) -> List[FlatRow]:
        """
        Rewrite every URL in a batch of rows.

        A merged store carries content of its sub-stores, whose images were
        downloaded into their own folders; each image URL points at the
        folder of the store that holds the file, the store itself first.

        Args:
            rows: Flattened rows of one store
            store_name: Store directory name
            images_dir: Folder holding the store's downloaded images
            merged_image_dirs: Store name -> images folder of each merged sub-store

        Returns:
            New rows; inputs are not modified
        """
        folders = [(store_name, images_dir)] + list((merged_image_dirs or {}).items())
        available_images: Dict[str, str] = {}
        for owner, folder in folders:
            if folder and os.path.isdir(folder):
                for file_name in sorted(os.listdir(folder)):
                    available_images.setdefault(file_name, owner)

        before = dict(self.stats)
        rewritten = [
            replace(
                row,
                link_url=self.rewrite_link(row.link_url),
                text=self.rewrite_text(row.text),
                image_url=self.image_target_url(row.image_url, available_images)
            )
            for row in rows
        ]

        counts = {key: self.stats[key] - before[key] for key in self.stats}
        self.store_stats[store_name] = counts
        logger.debug(
            f"Rewrote {counts['links_rewritten']} links and {counts['images_rewritten']} images "
            f"for {store_name} ({counts['images_missing']} images missing)"
        )
        return rewritten


__all__ = [
    'LinkRewriter',
    'html_to_text',
    'strip_hosts_in_html',
    'rewrite_search_link'
]
