"""Converters package: merge, flatten and synthesize content store hierarchies."""

from .document_synthesizer import SynthesizedDocuments, rows_from_sheet, synthesize
from .flattener import count_rows, flatten, unflatten
from .tree_merger import anchor, first_non_empty, links_to, merge

__all__ = [
    'merge',
    'anchor',
    'links_to',
    'first_non_empty',
    'flatten',
    'unflatten',
    'count_rows',
    'synthesize',
    'rows_from_sheet',
    'SynthesizedDocuments'
]
