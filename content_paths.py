"""Naming rules shared by the fetch, generate and upload phases."""

import re
from typing import List, Optional, Pattern, Union
from urllib.parse import urlsplit

# Joins ancestor titles in node paths and flat rows.
PATH_SEPARATOR = ' >>> '

DEFAULT_CONTENT_ROOT = '/content/share/us/en'
DEFAULT_STORE = '/content/share/us/en/all-content-stores'
DEFAULT_STORE_LINK_PATTERN = r'^/content/share/us/en/[^/]+-content-stores(/|$)'

STORE_SEGMENT_SUFFIX = '-content-stores'
SUB_STORE_FOLDER = 'content-stores'
LOGIN_PATH_MARKER = '/libs/granite/core/content/login'

_BASE36_DIGITS = '0123456789abcdefghijklmnopqrstuvwxyz'


def sanitize(value: str) -> str:
    """Lowercase and replace whitespace runs with hyphens."""
    return re.sub(r'\s+', '-', value.strip().lower())


def sanitize_file_name(file_name: str) -> str:
    """
    Sanitize a file name while preserving its extension.

    Args:
        file_name: Original file name (e.g. "Summer Promo.PNG")

    Returns:
        Safe file name (e.g. "summer-promo.PNG")
    """
    dot = file_name.rfind('.')
    if dot > 0:
        stem, extension = file_name[:dot], file_name[dot:]
    else:
        stem, extension = file_name, ''
    return re.sub(r'[^a-zA-Z0-9.-]', '_', sanitize(stem)) + extension


def build_file_name_with_id(node_id: str, file_name: str) -> str:
    """Prefix a file name with the owning node's id."""
    return f"{node_id}-{file_name}"


def _to_base36(number: int) -> str:
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return ''.join(reversed(digits))


def deterministic_id(value: str) -> str:
    """
    Derive a stable 10 character id from a string.

    Uses a 31-multiplier rolling hash over UTF-16 code units, wrapped to a
    signed 32-bit integer, rendered in base36.
    """
    if not value:
        return '0' * 10

    encoded = value.encode('utf-16-le')
    hash_value = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        hash_value = (hash_value * 31 + code_unit) & 0xFFFFFFFF

    if hash_value >= 0x80000000:
        hash_value -= 0x100000000

    return _to_base36(abs(hash_value)).rjust(10, '0')[:10]


def strip_host(url: Optional[str]) -> Optional[str]:
    """Remove scheme and host from an absolute URL, keeping path, query and fragment."""
    if not url or not url.startswith(('http://', 'https://')):
        return url

    parts = urlsplit(url)
    result = parts.path or '/'
    if parts.query:
        result += '?' + parts.query
    if parts.fragment:
        result += '#' + parts.fragment
    return result


def is_valid_link(url: Optional[str]) -> bool:
    """Accept absolute http(s) links and site-relative paths of reasonable length."""
    if not url or not isinstance(url, str):
        return False
    if url.startswith(('http://', 'https://')):
        return True
    return url.startswith('/') and len(url) >= 5


def normalize_store_path(url: str) -> str:
    """
    Reduce a link to the bare content path it addresses.

    Strips host, query, fragment, a trailing ``.html`` and trailing slashes.
    """
    path = strip_host(url.strip()) or ''
    path = path.split('#', 1)[0].split('?', 1)[0]
    if path.endswith('.html'):
        path = path[:-len('.html')]
    return '/' + path.strip('/') if path.strip('/') else '/'


def split_path(path: str) -> List[str]:
    """Split a content path into its non-empty segments."""
    return [segment for segment in path.split('/') if segment]


def _store_segment_index(segments: List[str]) -> Optional[int]:
    for index, segment in enumerate(segments):
        if segment.endswith(STORE_SEGMENT_SUFFIX):
            return index
    return None


def store_directory_name(path: str) -> str:
    """
    Derive the short directory name of a content store.

    ``/content/share/us/en/all-content-stores/summer`` becomes
    ``all-content-stores-summer``. Paths outside the naming convention use
    all of their segments.
    """
    segments = split_path(path)
    if not segments:
        raise ValueError(f"Invalid content store path: {path!r}")

    index = _store_segment_index(segments)
    if index is not None:
        segments = segments[index:]
    return sanitize('-'.join(segments))


def store_title(path: str) -> str:
    """Title of a store's root node: the last path segment."""
    segments = split_path(path)
    if not segments:
        raise ValueError(f"Invalid content store path: {path!r}")
    return segments[-1]


def is_main_store_path(path: str) -> bool:
    """Main stores are top-level catalogs such as ``all-content-stores``."""
    segments = split_path(path)
    index = _store_segment_index(segments)
    if index is None:
        return True
    return index == len(segments) - 1


def compile_store_pattern(pattern: Union[str, Pattern, None]) -> Pattern:
    """Compile the content-store link convention."""
    if pattern is None:
        pattern = DEFAULT_STORE_LINK_PATTERN
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def is_store_link(url: Optional[str], pattern: Union[str, Pattern, None] = None) -> bool:
    """Check whether a link targets another content store."""
    if not is_valid_link(url):
        return False
    return bool(compile_store_pattern(pattern).search(normalize_store_path(url)))


__all__ = [
    'PATH_SEPARATOR',
    'DEFAULT_STORE',
    'SUB_STORE_FOLDER',
    'sanitize',
    'sanitize_file_name',
    'build_file_name_with_id',
    'deterministic_id',
    'strip_host',
    'is_valid_link',
    'normalize_store_path',
    'store_directory_name',
    'store_title',
    'is_main_store_path',
    'is_store_link',
]
