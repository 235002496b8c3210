import json
import os
import tempfile
import unittest

from config_loader import ConfigLoader
from content_paths import deterministic_id, sanitize_file_name
from fakes import PNG_BYTES, FakeDaClient, FakeJcrClient, button, page, teaser
from orchestrator import MigrationOrchestrator, MigrationReport

PROMO_ID = f"teaser-{deterministic_id('Promo' + 'item_1')}"
PROMO_IMAGE = f"/a/_jcr_content/root/item_1.coreimg.85.1600.png/1700000000000/{PROMO_ID}-Promo.png"


def structures():
    return {
        '/a': page(button('sub', '/a/sub.html'), teaser('Promo', '/promo', 'Promo.png')),
        '/a/sub': page(button('Inner', '/inner')),
    }


class TestMigrationOrchestrator(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.config = ConfigLoader.apply_defaults({
            'source': {
                'aem_author': 'https://author.example.com',
                'auth_cookie': 'login-token=abc',
                'store_link_pattern': r'^/a(/|$)'
            },
            'target': {'org': 'org', 'repo': 'repo', 'token': 'tok'},
            'migration': {'data_dir': self.tmp.name, 'preview': True, 'publish': True, 'concurrency': 2},
            'advanced': {'progress_bars': False}
        })
        self.jcr = FakeJcrClient(structures(), images={PROMO_IMAGE: PNG_BYTES})
        self.da = FakeDaClient()

    def run_workflow(self, workflow='full', paths=('/a', '/a/sub'), jcr=None):
        orchestrator = MigrationOrchestrator(
            self.config, workflow=workflow, jcr_client=jcr or self.jcr, da_client=self.da,
            sleep=lambda seconds: None
        )
        return orchestrator.orchestrate_migration(list(paths))

    def test_full_workflow(self):
        report = self.run_workflow()
        phases = report['phases']

        self.assertTrue(report['summary']['success'], report['errors'])
        self.assertEqual(phases['extract']['succeeded'], 2)
        self.assertEqual(phases['merge']['succeeded'], 1)
        self.assertEqual(phases['generate']['succeeded'], 2)
        self.assertEqual(phases['upload']['succeeded'], 5)
        self.assertEqual(phases['preview']['succeeded'], 4)
        self.assertEqual(phases['publish']['succeeded'], 4)

        image_name = sanitize_file_name(f"{PROMO_ID}-Promo.png")
        self.assertIn(f"org/repo/images/a/{image_name}", self.da.puts)
        self.assertIn('org/repo/a-sheet.json', self.da.puts)
        self.assertIn('org/repo/content-stores/a-sub.html', self.da.puts)
        self.assertIn('org/repo/main/content-stores/a-sub', self.da.published)

    def test_sub_store_merges_into_single_child(self):
        """The /a/sub store lands in the one "sub" child of /a."""
        self.run_workflow(workflow='extract')
        self.run_workflow(workflow='generate')

        merged_file = os.path.join(self.tmp.name, 'a', 'extracted-results', 'hierarchy-structure.merged.json')
        with open(merged_file, encoding='utf-8') as f:
            items = json.load(f)['items']

        titles = [item['title'] for item in items]
        self.assertEqual(titles.count('sub'), 1)
        sub = items[titles.index('sub')]
        self.assertEqual([child['title'] for child in sub['items']], ['Inner'])

        sheet_file = os.path.join(self.tmp.name, 'generated-eds-docs', 'a', 'a-sheet.json')
        with open(sheet_file, encoding='utf-8') as f:
            data = json.load(f)['a']['data']
        promo = next(row for row in data if row['title'] == 'Promo')
        self.assertTrue(promo['imageUrl'].startswith('https://content.da.live/org/repo/images/a/'))

    def test_second_run_uploads_nothing(self):
        self.run_workflow()
        puts = len(self.da.puts)

        report = self.run_workflow(workflow='upload')
        self.assertEqual(len(self.da.puts), puts)
        self.assertEqual(report['phases']['upload']['skipped'], 5)

    def test_dry_run_makes_no_target_calls(self):
        self.config['migration']['dry_run'] = True
        report = self.run_workflow()

        self.assertEqual(self.da.calls, [])
        self.assertTrue(all(upload['would_upload'] for upload in report['uploads']))
        self.assertIn('Dry Run (5 files would be uploaded)', MigrationReport().format_console_report(report))

    def test_store_failure_does_not_stop_batch(self):
        jcr = FakeJcrClient({'/a': structures()['/a']})
        report = self.run_workflow(jcr=jcr)

        self.assertEqual(report['phases']['extract']['failed'], 1)
        self.assertEqual(report['phases']['merge']['skipped'], 1)
        self.assertEqual(report['phases']['generate']['succeeded'], 1)
        self.assertIn('org/repo/a.html', self.da.puts)
        self.assertFalse(report['summary']['success'])

    def test_malformed_store_does_not_stop_batch(self):
        jcr = FakeJcrClient({'/bad': ['not', 'an', 'object'], '/good': page(button('Go', '/go'))})
        report = self.run_workflow(paths=('/bad', '/good'), jcr=jcr)

        self.assertEqual(report['phases']['extract']['failed'], 1)
        self.assertEqual(report['phases']['extract']['succeeded'], 1)
        statuses = {store['name']: store['status'] for store in report['stores']}
        self.assertEqual(statuses, {'bad': 'failed', 'good': 'ok'})
        self.assertIn('org/repo/good.html', self.da.puts)

    def test_merged_sheet_keeps_sub_store_images(self):
        sub_id = f"teaser-{deterministic_id('SubPromo' + 'item_0')}"
        sub_image = f"/a/sub/_jcr_content/root/item_0.coreimg.85.1600.png/1700000000000/{sub_id}-Sub.png"
        jcr = FakeJcrClient(
            {'/a': page(button('sub', '/a/sub.html')), '/a/sub': page(teaser('SubPromo', '/x', 'Sub.png'))},
            images={sub_image: PNG_BYTES}
        )
        self.run_workflow(jcr=jcr)

        image_url = (f"https://content.da.live/org/repo/images/a-sub/"
                     f"{sanitize_file_name(f'{sub_id}-Sub.png')}")
        for store in ('a', 'a-sub'):
            sheet_file = os.path.join(self.tmp.name, 'generated-eds-docs', store, f'{store}-sheet.json')
            with open(sheet_file, encoding='utf-8') as f:
                data = json.load(f)[store]['data']
            promo = next(row for row in data if row['title'] == 'SubPromo')
            self.assertEqual(promo['imageUrl'], image_url)
        self.assertIn(f"org/repo/images/a-sub/{sanitize_file_name(f'{sub_id}-Sub.png')}", self.da.puts)

    def test_source_auth_error_aborts(self):
        report = self.run_workflow(jcr=FakeJcrClient(structures(), expired=True))

        self.assertIn('authentication', report['summary']['fatal_error'].lower())
        self.assertEqual(report['phases']['extract']['failed'], 1)
        self.assertEqual(self.da.calls, [])

    def test_discover_writes_manifest(self):
        orchestrator = MigrationOrchestrator(self.config, workflow='extract', jcr_client=self.jcr)
        manifest = os.path.join(self.tmp.name, 'manifest.txt')

        self.assertEqual(orchestrator.discover('/a', manifest), ['/a', '/a/sub'])
        with open(manifest, encoding='utf-8') as f:
            self.assertIn('/a/sub', f.read().splitlines())

    def test_console_report(self):
        report = self.run_workflow()
        text = MigrationReport().format_console_report(report)

        self.assertIn('MIGRATION REPORT', text)
        for label in ('Extract', 'Merge', 'Flatten', 'Generate', 'Upload', 'Preview', 'Publish'):
            self.assertIn(label, text)

        path = os.path.join(self.tmp.name, 'report.json')
        MigrationReport().export_json_report(report, path)
        with open(path, encoding='utf-8') as f:
            self.assertEqual(json.load(f)['summary']['stores'], 2)


if __name__ == '__main__':
    unittest.main()
