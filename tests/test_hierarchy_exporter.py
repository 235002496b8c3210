import csv
import json
import os
import tempfile
import unittest

from converters import synthesize
from exporters import HierarchyExporter
from fetchers import read_manifest, write_manifest
from models import FlatRow, HierarchyNode, NodeType, make_root


class TestHierarchyExporter(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.exporter = HierarchyExporter(self.tmp.name)

    def test_hierarchy_round_trip(self):
        tree = make_root('store', [
            HierarchyNode(type=NodeType.TAB, title='Tab', children=[
                HierarchyNode(type=NodeType.BUTTON, title='Go', link_url='/go')
            ])
        ])
        path = self.exporter.write_hierarchy('store', tree)

        self.assertEqual(str(path), os.path.join(self.tmp.name, 'store', 'extracted-results', 'hierarchy-structure.json'))
        with open(path, encoding='utf-8') as f:
            self.assertEqual(list(json.load(f)), ['items'])

        restored = self.exporter.read_hierarchy('store', 'store')
        self.assertEqual(restored.children[0].children[0].link_url, '/go')
        self.assertEqual(restored.children[0].children[0].path, 'Tab >>> Go')
        self.assertFalse(self.exporter.has_hierarchy('store', merged=True))

    def test_missing_and_invalid_hierarchy(self):
        with self.assertRaises(FileNotFoundError):
            self.exporter.read_hierarchy('nope', 'nope')

        path = self.exporter.hierarchy_path('bad')
        path.parent.mkdir(parents=True)
        path.write_text('[]', encoding='utf-8')
        with self.assertRaises(ValueError):
            self.exporter.read_hierarchy('bad', 'bad')

    def test_csv_has_exact_columns(self):
        rows = [FlatRow(type='text', path='Text', title='Text', text='<p>a, "b"\nc</p>')]
        path = self.exporter.write_csv('store', rows)

        with open(path, encoding='utf-8', newline='') as f:
            self.assertEqual(next(csv.reader(f)), ['type', 'path', 'title', 'imageUrl', 'linkURL', 'text', 'synonym'])
        self.assertEqual(self.exporter.read_csv('store'), rows)

    def test_documents_and_images(self):
        docs = synthesize([FlatRow(type='tab', path='T', title='T')], 'store', True)
        written = self.exporter.write_documents(docs)

        self.assertEqual(self.exporter.generated_files('store'), written)
        self.assertTrue(str(written['page']).endswith(os.path.join('generated-eds-docs', 'store', 'store.html')))
        with self.assertRaises(FileNotFoundError):
            self.exporter.generated_files('other')

        self.assertEqual(self.exporter.image_files('store'), [])
        images_dir = self.exporter.images_dir('store')
        images_dir.mkdir(parents=True)
        (images_dir / 'b.png').write_bytes(b'b')
        (images_dir / 'a.png').write_bytes(b'a')
        self.assertEqual([p.name for p in self.exporter.image_files('store')], ['a.png', 'b.png'])


class TestManifest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def test_write_then_read(self):
        path = os.path.join(self.tmp.name, 'nested', 'manifest.txt')
        write_manifest(path, ['/a', '/a/sub'], source='/a')

        with open(path, encoding='utf-8') as f:
            content = f.read()
        self.assertIn('# Discovered from: /a', content)
        self.assertEqual(read_manifest(path), ['/a', '/a/sub'])

    def test_blank_comment_and_duplicate_lines_ignored(self):
        path = os.path.join(self.tmp.name, 'manifest.txt')
        with open(path, 'w', encoding='utf-8') as f:
            f.write('\n# comment\n/a\n\n  /b  \n/a\n')
        self.assertEqual(read_manifest(path), ['/a', '/b'])

    def test_missing_manifest_is_fatal(self):
        with self.assertRaises(FileNotFoundError):
            read_manifest(os.path.join(self.tmp.name, 'missing.txt'))


if __name__ == '__main__':
    unittest.main()
