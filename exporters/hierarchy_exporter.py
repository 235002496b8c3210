"""On-disk layout of extracted hierarchies, flat tables and generated documents."""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from converters.document_synthesizer import SynthesizedDocuments
from models import FLAT_COLUMNS, FlatRow, HierarchyNode, make_root

HIERARCHY_FILE = 'hierarchy-structure.json'
MERGED_HIERARCHY_FILE = 'hierarchy-structure.merged.json'
CSV_FILE = 'hierarchy-structure.csv'
GENERATED_DIR = 'generated-eds-docs'


class HierarchyExporter:
    """
    Reads and writes every per-store artifact under the data directory.

    Layout::

        <data>/<store>/extracted-results/hierarchy-structure.json
        <data>/<store>/extracted-results/hierarchy-structure.merged.json
        <data>/<store>/extracted-results/images/
        <data>/<store>/extracted-results/caches/
        <data>/<store>/derived-results/hierarchy-structure.csv
        <data>/generated-eds-docs/<store>/<store>-sheet.json
        <data>/generated-eds-docs/<store>/<store>.html
    """

    def __init__(self, data_dir: Union[str, Path], logger: Optional[logging.Logger] = None):
        """
        Initialize the exporter.

        Args:
            data_dir: Root data directory
            logger: Logger instance
        """
        self.data_dir = Path(data_dir)
        self.logger = logger or logging.getLogger('content_store_migrator.exporters.hierarchy_exporter')
        self.stats = {
            'hierarchies_written': 0,
            'csv_written': 0,
            'documents_written': 0
        }

    def store_dir(self, store_name: str) -> Path:
        return self.data_dir / store_name

    def extracted_dir(self, store_name: str) -> Path:
        return self.store_dir(store_name) / 'extracted-results'

    def derived_dir(self, store_name: str) -> Path:
        return self.store_dir(store_name) / 'derived-results'

    def images_dir(self, store_name: str) -> Path:
        return self.extracted_dir(store_name) / 'images'

    def generated_dir(self, store_name: str) -> Path:
        return self.data_dir / GENERATED_DIR / store_name

    def hierarchy_path(self, store_name: str, merged: bool = False) -> Path:
        return self.extracted_dir(store_name) / (MERGED_HIERARCHY_FILE if merged else HIERARCHY_FILE)

    def csv_path(self, store_name: str) -> Path:
        return self.derived_dir(store_name) / CSV_FILE

    def write_hierarchy(self, store_name: str, tree: HierarchyNode, merged: bool = False) -> Path:
        """
        Write a tree as ``{"items": [...]}``.

        Args:
            store_name: Store directory name
            tree: Root node (not itself serialized)
            merged: Write the merged variant

        Returns:
            Path of the written file
        """
        path = self.hierarchy_path(store_name, merged)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {'items': [child.to_dict() for child in tree.children]}
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        self.stats['hierarchies_written'] += 1
        self.logger.info(f"Wrote hierarchy ({tree.count_nodes() - 1} nodes): {path}")
        return path

    def read_hierarchy(self, store_name: str, title: str, merged: bool = False) -> HierarchyNode:
        """
        Read a hierarchy file back into a tree.

        Args:
            store_name: Store directory name
            title: Title given to the rebuilt root
            merged: Read the merged variant

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a valid hierarchy
        """
        path = self.hierarchy_path(store_name, merged)
        if not path.exists():
            raise FileNotFoundError(f"Hierarchy file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get('items'), list):
            raise ValueError(f"Invalid hierarchy file (expected an 'items' list): {path}")

        return make_root(title, [HierarchyNode.from_dict(item) for item in data['items']])

    def has_hierarchy(self, store_name: str, merged: bool = False) -> bool:
        return self.hierarchy_path(store_name, merged).exists()

    def write_csv(self, store_name: str, rows: List[FlatRow]) -> Path:
        """Write rows to the store's flat table with exactly the flat columns."""
        path = self.csv_path(store_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=FLAT_COLUMNS, quoting=csv.QUOTE_MINIMAL)
            writer.writeheader()
            for row in rows:
                writer.writerow(row.to_record())

        self.stats['csv_written'] += 1
        self.logger.info(f"Wrote {len(rows)} rows: {path}")
        return path

    def read_csv(self, store_name: str) -> List[FlatRow]:
        """Read rows from the store's flat table."""
        path = self.csv_path(store_name)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {path}")
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return [FlatRow.from_record(record) for record in csv.DictReader(f)]

    def write_documents(self, documents: SynthesizedDocuments) -> Dict[str, Path]:
        """
        Write a store's generated sheet and page.

        Returns:
            Dict with 'sheet' and 'page' file paths
        """
        out_dir = self.generated_dir(documents.store_name)
        out_dir.mkdir(parents=True, exist_ok=True)

        sheet_file = out_dir / documents.sheet_file_name
        with open(sheet_file, 'w', encoding='utf-8') as f:
            json.dump(documents.sheet, f, indent=2, ensure_ascii=False)

        page_file = out_dir / documents.page_file_name
        with open(page_file, 'w', encoding='utf-8') as f:
            f.write(documents.page_html)

        self.stats['documents_written'] += 2
        self.logger.info(f"Generated documents for {documents.store_name} in {out_dir}")
        return {'sheet': sheet_file, 'page': page_file}

    def generated_files(self, store_name: str) -> Dict[str, Path]:
        """
        Locate a store's generated documents.

        Raises:
            FileNotFoundError: If either document is missing
        """
        out_dir = self.generated_dir(store_name)
        files = {
            'sheet': out_dir / f"{store_name}-sheet.json",
            'page': out_dir / f"{store_name}.html"
        }
        for path in files.values():
            if not path.exists():
                raise FileNotFoundError(f"Generated document not found: {path}")
        return files

    def image_files(self, store_name: str) -> List[Path]:
        """Downloaded images of a store, sorted by name."""
        images_dir = self.images_dir(store_name)
        if not images_dir.is_dir():
            return []
        return sorted(path for path in images_dir.iterdir() if path.is_file())


__all__ = ['HierarchyExporter', 'HIERARCHY_FILE', 'MERGED_HIERARCHY_FILE', 'CSV_FILE', 'GENERATED_DIR']
