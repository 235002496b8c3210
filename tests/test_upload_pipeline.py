import unittest

from fakes import FakeDaClient, server_error
from importers import DaAuthError, TargetPaths, UploadOptions, UploadPipeline
from models import UploadKind, UploadState, UploadTask

PATHS = TargetPaths('org', 'repo', dest='drafts')


def make_tasks():
    return [
        UploadTask('org/repo/drafts/images/store/a.png', UploadKind.IMAGE, content=b'png', store_name='store'),
        UploadTask('org/repo/drafts/store-sheet.json', UploadKind.JSON_SHEET, content=b'{}', store_name='store'),
        UploadTask('org/repo/drafts/store.html', UploadKind.HTML_PAGE, content=b'<body/>', store_name='store'),
    ]


class TestUploadPipeline(unittest.TestCase):
    def setUp(self):
        self.sleeps = []
        self.client = FakeDaClient()
        self.pipeline = UploadPipeline(self.client, PATHS, sleep=self.sleeps.append)

    def test_uploads_every_task(self):
        result = self.pipeline.upload(make_tasks(), concurrency=2)

        self.assertEqual((result.succeeded, result.skipped, result.failed), (3, 0, 0))
        self.assertEqual(sorted(self.client.puts), sorted(t.target_path for t in make_tasks()))
        for task in result.tasks:
            self.assertEqual(task.trace[:3], [UploadState.PENDING, UploadState.EXISTENCE_CHECK, UploadState.UPLOADING])

    def test_second_run_makes_no_puts(self):
        """Re-running against a store that already has everything uploads nothing."""
        self.pipeline.upload(make_tasks(), concurrency=3)
        puts_after_first_run = len(self.client.puts)

        result = self.pipeline.upload(make_tasks(), concurrency=3)
        self.assertEqual(len(self.client.puts), puts_after_first_run)
        self.assertEqual(result.skipped, 3)

    def test_reup_forces_upload_without_existence_check(self):
        client = FakeDaClient(existing=[t.target_path for t in make_tasks()])
        result = UploadPipeline(client, PATHS).upload(make_tasks(), options=UploadOptions(reup=True))

        self.assertEqual(result.succeeded, 3)
        self.assertNotIn('exists', [operation for operation, _ in client.calls])

    def test_dry_run_makes_no_calls(self):
        options = UploadOptions(dry_run=True, preview=True, publish=True)
        result = self.pipeline.upload(make_tasks(), concurrency=2, options=options)

        self.assertEqual(self.client.calls, [])
        self.assertEqual(result.skipped, 3)
        self.assertEqual(result.previewed, 0)
        page = result.tasks[2]
        self.assertTrue(page.would_upload)
        self.assertEqual(page.trace, [
            UploadState.PENDING, UploadState.SKIPPED,
            UploadState.PREVIEW_REQUESTED, UploadState.PREVIEW_DONE,
            UploadState.PUBLISH_REQUESTED, UploadState.PUBLISH_DONE,
        ])
        self.assertEqual(result.tasks[0].trace, [UploadState.PENDING, UploadState.SKIPPED])

    def test_transient_errors_are_retried_with_backoff(self):
        self.client.failures[('put', 'org/repo/drafts/store.html')] = [server_error(503), server_error(429)]
        result = self.pipeline.upload(make_tasks(), options=UploadOptions(max_retries=3, backoff_factor=2.0))

        self.assertEqual(result.failed, 0)
        self.assertEqual(self.sleeps, [2.0, 4.0])

    def test_retries_are_bounded(self):
        self.client.failures[('put', 'org/repo/drafts/store.html')] = [server_error()] * 5
        result = self.pipeline.upload(make_tasks(), options=UploadOptions(max_retries=2, backoff_factor=1.0))

        self.assertEqual(result.failed, 1)
        self.assertEqual(result.succeeded, 2)
        self.assertEqual(self.sleeps, [1.0, 2.0])
        self.assertIn('503', result.tasks[2].error)

    def test_existence_check_attempts_are_bounded(self):
        path = 'org/repo/drafts/images/store/a.png'
        self.client.failures[('exists', path)] = [server_error(503)] * 10
        result = self.pipeline.upload(make_tasks()[:1], options=UploadOptions(max_retries=2, backoff_factor=0.5))

        self.assertEqual(self.client.calls.count(('exists', path)), 3)
        self.assertEqual(self.sleeps, [0.5, 1.0])
        self.assertEqual(result.failed, 1)

    def test_permanent_error_is_not_retried(self):
        self.client.failures[('put', 'org/repo/drafts/store-sheet.json')] = [server_error(400)]
        result = self.pipeline.upload(make_tasks())

        self.assertEqual(result.failed, 1)
        self.assertEqual(self.sleeps, [])
        self.assertEqual(result.tasks[1].upload_state, UploadState.FAILED)

    def test_preview_before_publish_for_documents_only(self):
        options = UploadOptions(preview=True, publish=True)
        result = self.pipeline.upload(make_tasks(), options=options)

        self.assertEqual(self.client.previewed, ['org/repo/main/drafts/store-sheet.json', 'org/repo/main/drafts/store'])
        self.assertEqual(self.client.published, self.client.previewed)
        operations = [op for op, path in self.client.calls if path == 'org/repo/main/drafts/store']
        self.assertEqual(operations, ['preview', 'publish'])
        self.assertEqual((result.previewed, result.published), (2, 2))
        self.assertIsNone(result.tasks[0].preview_ok)

    def test_failed_preview_blocks_publish(self):
        self.client.failures[('preview', 'org/repo/main/drafts/store')] = [server_error(400)]
        result = self.pipeline.upload(make_tasks(), options=UploadOptions(preview=True, publish=True))

        page = result.tasks[2]
        self.assertFalse(page.preview_ok)
        self.assertFalse(page.publish_ok)
        self.assertNotIn('org/repo/main/drafts/store', self.client.published)
        self.assertEqual((result.preview_failed, result.publish_failed), (1, 1))

    def test_already_present_documents_are_still_previewed(self):
        client = FakeDaClient(existing=['org/repo/drafts/store.html'])
        result = UploadPipeline(client, PATHS).upload(make_tasks(), options=UploadOptions(preview=True))

        self.assertEqual(result.tasks[2].upload_state, UploadState.SKIPPED)
        self.assertIn('org/repo/main/drafts/store', client.previewed)

    def test_auth_error_is_fatal(self):
        self.client.failures[('exists', 'org/repo/drafts/images/store/a.png')] = [DaAuthError('denied', 401)]
        with self.assertRaises(DaAuthError):
            self.pipeline.upload(make_tasks(), concurrency=1)
        self.assertEqual(self.client.puts, [])

    def test_empty_batch(self):
        result = self.pipeline.upload([])
        self.assertEqual(result.tasks, [])
        self.assertEqual(self.client.calls, [])


if __name__ == '__main__':
    unittest.main()
