"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

from content_paths import DEFAULT_CONTENT_ROOT, DEFAULT_STORE, DEFAULT_STORE_LINK_PATTERN

WORKFLOWS = ('extract', 'generate', 'upload', 'full')
CACHE_MODES = ('use', 'refresh', 'disable')

DEFAULTS: Dict[str, Any] = {
    'source': {
        'aem_author': None,
        'auth_cookie': None,
        'default_store': DEFAULT_STORE,
        'content_root': DEFAULT_CONTENT_ROOT,
        'store_link_pattern': DEFAULT_STORE_LINK_PATTERN,
        'component_prefix': 'tccc-dam/components/',
    },
    'target': {
        'org': None,
        'repo': None,
        'branch': 'main',
        'dest': '',
        'token': None,
        'images_base': 'images/',
        'admin_url': 'https://admin.da.live',
        'content_url': 'https://content.da.live',
        'hlx_admin_url': 'https://admin.hlx.page',
    },
    'migration': {
        'data_dir': './DATA',
        'concurrency': 1,
        'preview': False,
        'publish': False,
        'reup': False,
        'dry_run': False,
        'recursive': False,
        'max_depth': None,
    },
    'cache': {
        'mode': 'use',
    },
    'advanced': {
        'request_timeout': 30,
        'max_retries': 3,
        'retry_backoff_factor': 2.0,
        'rate_limit': 0.0,
        'verify_ssl': True,
        'progress_bars': True,
    },
    'logging': {
        'level': None,
        'file': None,
    },
}


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    # (path, default, accepted types, minimum, description)
    NUMERIC_RULES = (
        ('migration.concurrency', 1, (int,), 1, 'a positive integer'),
        ('advanced.request_timeout', 30, (int, float), 0.001, 'a positive number'),
        ('advanced.max_retries', 3, (int,), 0, 'a non-negative integer'),
        ('advanced.retry_backoff_factor', 2.0, (int, float), 0, 'a non-negative number'),
        ('advanced.rate_limit', 0.0, (int, float), 0, 'a non-negative number'),
    )

    @classmethod
    def load(cls, config_path: Optional[str]) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        A missing ``config_path`` of ``None`` yields the defaults alone, so
        the tool can run entirely from CLI flags and ``${ENV}`` values.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary with defaults filled in

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if config_path is None:
            return cls.apply_defaults({})

        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        # Substitute environment variables recursively
        config_data = cls._substitute_env_vars_recursive(config_data)

        return cls.apply_defaults(config_data)

    @classmethod
    def apply_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Fill missing sections and keys from DEFAULTS."""
        merged = copy.deepcopy(DEFAULTS)
        for section, values in config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values

        dest = merged['target'].get('dest') or ''
        merged['target']['dest'] = dest.strip('/')
        return merged

    @classmethod
    def validate(cls, config: Dict[str, Any], workflow: str = 'full') -> None:
        """
        Validate configuration for the phases a workflow will run.

        Args:
            config: Configuration dictionary to validate
            workflow: One of WORKFLOWS

        Raises:
            ValueError: If validation fails
        """
        if workflow not in WORKFLOWS:
            raise ValueError(f"workflow must be one of: {list(WORKFLOWS)}")

        dry_run = bool(get_nested(config, 'migration.dry_run', False))

        # Source credentials are needed whenever we talk to the author instance
        if workflow in ('extract', 'full'):
            cls._validate_required_field(config, 'source.aem_author')
            cls._validate_required_field(config, 'source.auth_cookie')
            cls._validate_url(get_nested(config, 'source.aem_author'), 'source.aem_author')

        # Target coordinates shape every generated path
        if workflow in ('generate', 'upload', 'full'):
            cls._validate_required_field(config, 'target.org')
            cls._validate_required_field(config, 'target.repo')

        if workflow in ('upload', 'full') and not dry_run:
            cls._validate_required_field(config, 'target.token')

        for field_name in ('target.admin_url', 'target.content_url', 'target.hlx_admin_url'):
            cls._validate_url(get_nested(config, field_name), field_name)

        cache_mode = get_nested(config, 'cache.mode', 'use')
        if cache_mode not in CACHE_MODES:
            raise ValueError(f"cache.mode must be one of: {list(CACHE_MODES)}")

        for path, default, types, minimum, description in cls.NUMERIC_RULES:
            value = get_nested(config, path, default)
            if isinstance(value, bool) or not isinstance(value, types) or value < minimum:
                raise ValueError(f"{path} must be {description}")

        max_depth = get_nested(config, 'migration.max_depth')
        if max_depth is not None and (isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 1):
            raise ValueError("migration.max_depth must be a positive integer")

        pattern = get_nested(config, 'source.store_link_pattern')
        try:
            re.compile(pattern)
        except (re.error, TypeError) as e:
            raise ValueError(f"source.store_link_pattern is not a valid regular expression: {e}")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = cls.apply_defaults(config)
        migration = merged['migration']

        if getattr(args, 'path', None):
            migration['data_dir'] = args.path

        if getattr(args, 'concurrency', None):
            migration['concurrency'] = args.concurrency

        if getattr(args, 'max_depth', None):
            migration['max_depth'] = args.max_depth

        # Boolean flags only switch behaviour on; config may already enable them
        for flag, key in (('preview', 'preview'), ('publish', 'publish'), ('reup', 'reup'),
                          ('dry', 'dry_run'), ('recursive', 'recursive')):
            if getattr(args, flag, False):
                migration[key] = True

        if getattr(args, 'refresh_cache', False):
            merged['cache']['mode'] = 'refresh'

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        if getattr(args, 'debug', False):
            merged['logging']['level'] = 'DEBUG'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Replace ``${NAME}`` in every string; unset variables are left as written."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        if isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        if isinstance(data, str):
            return cls.ENV_VAR_PATTERN.sub(
                lambda match: os.environ.get(match.group(1), match.group(0)), data
            )
        return data

    @classmethod
    def _validate_required_field(cls, config: dict, field: str) -> None:
        value = get_nested(config, field)
        if value in (None, ''):
            raise ValueError(f"Missing required configuration: {field}")

        unresolved = cls.ENV_VAR_PATTERN.search(value) if isinstance(value, str) else None
        if unresolved:
            raise ValueError(
                f"Configuration field '{field}' references unset environment variable "
                f"{unresolved.group(1)}: set it or give the value in the config file"
            )

    @staticmethod
    def _validate_url(url: Optional[str], field_name: str) -> None:
        parsed = urlparse(url or '')
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"{field_name} must be an http(s) URL with a host: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "target.org")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'get_nested', 'WORKFLOWS']
