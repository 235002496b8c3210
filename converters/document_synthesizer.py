"""Synthesis of target documents (multi-sheet JSON and store page HTML) from flat rows."""

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from content_paths import SUB_STORE_FOLDER
from models import FLAT_COLUMNS, FlatRow

logger = logging.getLogger('content_store_migrator.converters.document_synthesizer')

SHEET_TYPE = 'multi-sheet'
SHEET_VERSION = 1


@dataclass
class SynthesizedDocuments:
    """The documents generated for one content store."""

    store_name: str
    sheet: Dict[str, Any]
    page_html: str
    folder: str
    sheet_path: str
    page_path: str

    @property
    def sheet_file_name(self) -> str:
        return f"{self.store_name}-sheet.json"

    @property
    def page_file_name(self) -> str:
        return f"{self.store_name}.html"


def _join_path(*parts: str) -> str:
    return '/' + '/'.join(part.strip('/') for part in parts if part and part.strip('/'))


def build_sheet(rows: List[FlatRow], name: str) -> Dict[str, Any]:
    """Build a single-sheet multi-sheet document."""
    records = [row.to_record() for row in rows]
    return {
        ':type': SHEET_TYPE,
        ':names': [name],
        ':version': SHEET_VERSION,
        name: {
            'total': len(records),
            'offset': 0,
            'limit': len(records),
            'data': records
        }
    }


def _block(class_name: str, entries: List[tuple]) -> str:
    lines = [f'      <div class="{class_name}">']
    for key, value in entries:
        lines.append(
            f'        <div><div>{html.escape(key)}</div><div>{html.escape(value)}</div></div>'
        )
    lines.append('      </div>')
    return '\n'.join(lines)


def build_page(store_name: str, title: str, sheet_path: str, page_path: str) -> str:
    """Build the store page embedding a content-stores block and its metadata."""
    return '\n'.join([
        '<body>',
        '  <header></header>',
        '  <main>',
        '    <div>',
        _block('content-stores', [('sheet-path', sheet_path), ('sheet-name', store_name)]),
        _block('metadata', [('Title', title), ('Path', page_path)]),
        '    </div>',
        '  </main>',
        '  <footer></footer>',
        '</body>',
        ''
    ])


def synthesize(
    rows: Iterable[FlatRow],
    store_name: str,
    is_main_store: bool,
    title: Optional[str] = None,
    dest: str = ''
) -> SynthesizedDocuments:
    """
    Generate the sheet and page documents for a store.

    Deterministic: the same rows always produce byte-identical output.

    Args:
        rows: Flattened, link-rewritten rows
        store_name: Store directory name, also the sheet name
        is_main_store: Main stores live at the destination root,
            sub-stores under ``content-stores/``
        title: Page title (defaults to the store name)
        dest: Destination folder inside the target repository

    Returns:
        SynthesizedDocuments
    """
    rows = list(rows)
    folder = '' if is_main_store else SUB_STORE_FOLDER
    sheet_path = _join_path(dest, folder, f"{store_name}-sheet")
    page_path = _join_path(dest, folder, store_name)

    documents = SynthesizedDocuments(
        store_name=store_name,
        sheet=build_sheet(rows, store_name),
        page_html=build_page(store_name, title or store_name, sheet_path, page_path),
        folder=folder,
        sheet_path=sheet_path,
        page_path=page_path
    )
    logger.debug(f"Synthesized {len(rows)} rows for {store_name} (sheet: {sheet_path})")
    return documents


def rows_from_sheet(sheet: Dict[str, Any], name: Optional[str] = None) -> List[FlatRow]:
    """
    Read rows back from a multi-sheet document.

    Args:
        sheet: Multi-sheet document
        name: Sheet to read (defaults to the first name)

    Raises:
        ValueError: If the document is not a multi-sheet or lacks the sheet
    """
    if sheet.get(':type') != SHEET_TYPE:
        raise ValueError(f"Not a {SHEET_TYPE} document")
    names = sheet.get(':names') or []
    name = name or (names[0] if names else None)
    if name is None or name not in sheet:
        raise ValueError(f"Sheet '{name}' not found in document")

    records = sheet[name].get('data', [])
    for record in records:
        unknown = set(record) - set(FLAT_COLUMNS)
        if unknown:
            raise ValueError(f"Unexpected columns in sheet '{name}': {sorted(unknown)}")
    return [FlatRow.from_record(record) for record in records]


__all__ = ['SynthesizedDocuments', 'synthesize', 'rows_from_sheet', 'build_sheet', 'build_page']
