import unittest

from models import (
    ContentStore, FlatRow, HierarchyNode, NodeType, NodeValidationError, UploadKind,
    UploadState, UploadTask, classify_stores, make_root
)


class TestHierarchyNode(unittest.TestCase):
    def test_text_node_requires_text(self):
        """A text node without text is rejected."""
        with self.assertRaises(NodeValidationError):
            HierarchyNode(type=NodeType.TEXT, title='Text')

    def test_non_root_requires_title(self):
        with self.assertRaises(NodeValidationError):
            HierarchyNode(type=NodeType.BUTTON, title='  ')

    def test_text_node_rejects_link(self):
        """Fields outside a type's allowed set must stay empty."""
        with self.assertRaises(NodeValidationError):
            HierarchyNode(type=NodeType.TEXT, title='Text', text='<p>x</p>', link_url='/a')

    def test_root_rejects_content(self):
        with self.assertRaises(NodeValidationError):
            HierarchyNode(type=NodeType.ROOT, title='store', text='nope')

    def test_type_accepts_string_value(self):
        node = HierarchyNode(type='section-title', title='Brands')
        self.assertEqual(node.type, NodeType.SECTION_TITLE)

    def test_assign_paths_joins_titles(self):
        leaf = HierarchyNode(type=NodeType.BUTTON, title='Shop', link_url='/shop')
        tab = HierarchyNode(type=NodeType.TAB, title='Brands', children=[leaf])
        make_root('store', [tab])

        self.assertEqual(tab.path, 'Brands')
        self.assertEqual(leaf.path, 'Brands >>> Shop')

    def test_iter_nodes_is_pre_order(self):
        a1 = HierarchyNode(type=NodeType.BUTTON, title='a1')
        a = HierarchyNode(type=NodeType.TAB, title='a', children=[a1])
        b = HierarchyNode(type=NodeType.TAB, title='b')
        root = make_root('r', [a, b])

        self.assertEqual([n.title for n in root.iter_nodes()], ['r', 'a', 'a1', 'b'])
        self.assertEqual(root.count_nodes(), 4)

    def test_dict_round_trip_uses_file_keys(self):
        teaser = HierarchyNode(
            type=NodeType.TEASER, title='Promo', node_id='teaser-0000000abc',
            image_url='/img.png', link_url='/promo'
        )
        root = make_root('store', [HierarchyNode(type=NodeType.TAB, title='Tab', children=[teaser])])

        data = root.children[0].to_dict()
        self.assertEqual(data['items'][0]['imageUrl'], '/img.png')
        self.assertEqual(data['items'][0]['linkURL'], '/promo')
        self.assertEqual(data['items'][0]['id'], 'teaser-0000000abc')

        restored = HierarchyNode.from_dict(data)
        self.assertEqual(restored.children[0].image_url, '/img.png')
        self.assertEqual(restored.children[0].node_id, 'teaser-0000000abc')
        self.assertEqual(restored.children[0].path, 'Tab >>> Promo')


class TestContentStore(unittest.TestCase):
    def test_from_path_derives_name_and_title(self):
        store = ContentStore.from_path('/content/share/us/en/all-content-stores/summer/')
        self.assertEqual(store.path, '/content/share/us/en/all-content-stores/summer')
        self.assertEqual(store.name, 'all-content-stores-summer')
        self.assertEqual(store.title, 'summer')
        self.assertFalse(store.is_main)

    def test_catalog_is_main(self):
        store = ContentStore.from_path('/content/share/us/en/all-content-stores')
        self.assertTrue(store.is_main)
        self.assertEqual(store.name, 'all-content-stores')

    def test_classify_demotes_nested_store(self):
        """A store beneath another store of the batch is a sub-store."""
        stores = classify_stores(['/a', '/a/sub', '/a'])
        self.assertEqual([s.path for s in stores], ['/a', '/a/sub'])
        self.assertTrue(stores[0].is_main)
        self.assertFalse(stores[1].is_main)
        self.assertTrue(stores[0].is_ancestor_of(stores[1]))
        self.assertFalse(stores[1].is_ancestor_of(stores[0]))


class TestFlatRow(unittest.TestCase):
    def test_record_round_trip(self):
        row = FlatRow(type='button', path='A >>> B', title='B', link_url='/b')
        record = row.to_record()
        self.assertEqual(list(record), ['type', 'path', 'title', 'imageUrl', 'linkURL', 'text', 'synonym'])
        self.assertEqual(FlatRow.from_record(record), row)
        self.assertEqual(row.key, ('A >>> B', 'button', 'B'))


class TestUploadTask(unittest.TestCase):
    def test_transition_tracks_terminal_upload_state(self):
        task = UploadTask(target_path='org/repo/x.json', kind=UploadKind.JSON_SHEET, content=b'{}')
        task.transition(UploadState.PENDING)
        task.transition(UploadState.UPLOADING)
        task.transition(UploadState.UPLOADED)
        task.transition(UploadState.PREVIEW_REQUESTED)

        self.assertEqual(task.upload_state, UploadState.UPLOADED)
        self.assertEqual(task.trace[-1], UploadState.PREVIEW_REQUESTED)
        self.assertEqual(task.file_name, 'x.json')
        self.assertEqual(task.read_content(), b'{}')

    def test_read_content_without_source_fails(self):
        task = UploadTask(target_path='org/repo/x.json', kind=UploadKind.JSON_SHEET)
        with self.assertRaises(ValueError):
            task.read_content()

    def test_only_documents_are_previewed(self):
        self.assertFalse(UploadKind.IMAGE.is_document)
        self.assertTrue(UploadKind.HTML_PAGE.is_document)


if __name__ == '__main__':
    unittest.main()
