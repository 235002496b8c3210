"""Export package for the content store migration pipeline.

This package writes the per-store artifacts that sit between extraction and
upload, and rewrites links so that they point at the target store.

Package Structure:
- hierarchy_exporter: hierarchy JSON, flat CSV and generated document layout
- link_rewriter: search, content-store, rich text and image URL rewriting
"""

from .hierarchy_exporter import HierarchyExporter
from .link_rewriter import LinkRewriter, html_to_text, strip_hosts_in_html

__all__ = [
    'HierarchyExporter',
    'LinkRewriter',
    'html_to_text',
    'strip_hosts_in_html'
]
