import argparse
import os
import tempfile
import unittest
from unittest import mock

from config_loader import ConfigLoader, get_nested


def write_config(directory: str, body: str) -> str:
    path = os.path.join(directory, 'config.yaml')
    with open(path, 'w', encoding='utf-8') as f:
        f.write(body)
    return path


VALID = """
source:
  aem_author: "https://author.example.com"
  auth_cookie: "${TEST_COOKIE}"
target:
  org: org
  repo: repo
  dest: "/drafts/stores/"
  token: "${TEST_TOKEN}"
"""


class TestConfigLoader(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def test_load_substitutes_environment_and_fills_defaults(self):
        path = write_config(self.tmp.name, VALID)
        with mock.patch.dict(os.environ, {'TEST_COOKIE': 'login-token=abc', 'TEST_TOKEN': 'tok'}):
            config = ConfigLoader.load(path)

        self.assertEqual(config['source']['auth_cookie'], 'login-token=abc')
        self.assertEqual(config['target']['dest'], 'drafts/stores')
        self.assertEqual(config['target']['branch'], 'main')
        self.assertEqual(config['advanced']['max_retries'], 3)
        self.assertEqual(config['advanced']['retry_backoff_factor'], 2.0)
        ConfigLoader.validate(config, 'full')

    def test_missing_file_raises(self):
        with self.assertRaises(FileNotFoundError):
            ConfigLoader.load(os.path.join(self.tmp.name, 'missing.yaml'))

    def test_unsubstituted_variable_counts_as_missing(self):
        path = write_config(self.tmp.name, VALID)
        with mock.patch.dict(os.environ, {'TEST_TOKEN': 'tok'}, clear=False):
            os.environ.pop('TEST_COOKIE', None)
            config = ConfigLoader.load(path)

        with self.assertRaises(ValueError) as ctx:
            ConfigLoader.validate(config, 'extract')
        self.assertIn('TEST_COOKIE', str(ctx.exception))

    def test_generate_needs_no_credentials(self):
        config = ConfigLoader.apply_defaults({'target': {'org': 'o', 'repo': 'r'}})
        ConfigLoader.validate(config, 'generate')

    def test_dry_run_upload_needs_no_token(self):
        config = ConfigLoader.apply_defaults({
            'target': {'org': 'o', 'repo': 'r'},
            'migration': {'dry_run': True}
        })
        ConfigLoader.validate(config, 'upload')

        config['migration']['dry_run'] = False
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config, 'upload')

    def test_invalid_values_rejected(self):
        config = ConfigLoader.apply_defaults({'target': {'org': 'o', 'repo': 'r'}})
        config['migration']['concurrency'] = 0
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config, 'generate')

        config['migration']['concurrency'] = 2
        config['cache']['mode'] = 'sometimes'
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config, 'generate')

    def test_cli_flags_take_precedence(self):
        config = ConfigLoader.apply_defaults({'migration': {'concurrency': 2}})
        args = argparse.Namespace(
            path='/tmp/data', concurrency=8, max_depth=3, preview=True, publish=False,
            reup=False, dry=True, recursive=True, refresh_cache=True, log_file=None, debug=True
        )
        merged = ConfigLoader.merge_with_args(config, args)

        self.assertEqual(merged['migration']['data_dir'], '/tmp/data')
        self.assertEqual(merged['migration']['concurrency'], 8)
        self.assertEqual(merged['migration']['max_depth'], 3)
        self.assertTrue(merged['migration']['preview'])
        self.assertFalse(merged['migration']['publish'])
        self.assertTrue(merged['migration']['dry_run'])
        self.assertEqual(merged['cache']['mode'], 'refresh')
        self.assertEqual(merged['logging']['level'], 'DEBUG')

    def test_get_nested(self):
        config = {'a': {'b': {'c': 1}}}
        self.assertEqual(get_nested(config, 'a.b.c'), 1)
        self.assertIsNone(get_nested(config, 'a.x.c'))
        self.assertEqual(get_nested(config, 'a.x', 'fallback'), 'fallback')


if __name__ == '__main__':
    unittest.main()
