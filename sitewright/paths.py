"""
Path helpers shared by the reader, URL engine, builder and dev server.

Everything that turns user-controlled text (permalinks, layout names,
request paths, keep patterns) into a filesystem location goes through
this module.
"""

import os
import re
import fnmatch
from urllib.parse import unquote

from .errors import PathTraversalError

DRIVE_LETTER_RE = re.compile(r'^[A-Za-z]:')
HIDDEN_PREFIXES = ('.', '#', '~')


def _split_segments(path):
    return [part for part in re.split(r'[\\/]+', path) if part]


def is_path_within_base(path, base):
    """Return True if path (after normalization) lies inside base or equals it."""
    base = os.path.abspath(base)
    target = os.path.abspath(path)
    try:
        return os.path.commonpath([base, target]) == base
    except ValueError:
        # Different drives on Windows
        return False


def resolve_within(base, relative_path):
    """
    Join relative_path onto base and verify the result stays inside base.

    Args:
        base: Root directory
        relative_path: Path relative to base

    Returns:
        Normalized absolute path

    Raises:
        PathTraversalError: If the joined path escapes base
    """
    target = os.path.normpath(os.path.join(os.path.abspath(base), relative_path))
    if not is_path_within_base(target, base):
        raise PathTraversalError(f"Path traversal attempt detected: {relative_path}", file=relative_path)
    return target


def is_safe_name(name):
    """
    Check a logical name (layout, include, data file, theme) before any lookup.

    Rejects empty names, '..' segments in either separator form, absolute
    paths and drive-letter prefixes.
    """
    if not name or not isinstance(name, str):
        return False
    if '\x00' in name:
        return False
    if name.startswith('/') or name.startswith('\\') or os.path.isabs(name):
        return False
    if DRIVE_LETTER_RE.match(name):
        return False
    return '..' not in _split_segments(name)


def is_safe_theme_name(name):
    """
    Check a theme setting: a safe logical name, or an absolute path to a
    local theme directory with no '..' segments.
    """
    if not name or not isinstance(name, str) or '\x00' in name:
        return False
    if os.path.isabs(name):
        return '..' not in _split_segments(name)
    return is_safe_name(name)


def to_posix(path):
    return path.replace(os.sep, '/').replace('\\', '/')


def sanitize_permalink(permalink):
    """
    Neutralize traversal sequences in a URL path.

    '..' and '.' segments are dropped rather than rejected, backslashes
    become forward slashes, runs of slashes collapse, and the result
    always starts with '/'. A trailing slash is preserved.
    """
    if not permalink:
        return '/'
    text = to_posix(str(permalink))
    trailing = text.endswith('/')
    segments = [part for part in _split_segments(text) if part not in ('.', '..')]
    url = '/' + '/'.join(segments)
    if trailing and url != '/':
        url += '/'
    return url


def sanitize_url_path(url_path):
    """
    Turn a raw request path into a relative filesystem path.

    The query string and fragment are stripped, percent escapes decoded,
    and '..' / '.' segments dropped. The result never starts with a slash.
    """
    path = url_path.split('?', 1)[0].split('#', 1)[0]
    path = unquote(path)
    trailing = path.endswith('/')
    segments = [part for part in _split_segments(path) if part not in ('.', '..')]
    result = '/'.join(segments)
    if trailing and result:
        result += '/'
    return result


def _matches_pattern(relative_path, pattern):
    pattern = to_posix(pattern).strip('/')
    if not pattern:
        return False
    if relative_path == pattern or relative_path.startswith(pattern + '/'):
        return True
    return fnmatch.fnmatch(relative_path, pattern)


def should_exclude_path(relative_path, exclude=None, include=None):
    """
    Decide whether a source-relative path is left out of the build.

    Hidden entries (first character '.', '#' or '~' on any segment) are
    excluded unless an include pattern matches. Exclude patterns match by
    exact path, directory prefix or glob.
    """
    relative_path = to_posix(relative_path).strip('/')
    if not relative_path:
        return False

    for pattern in include or []:
        if _matches_pattern(relative_path, pattern):
            return False
        # An include pattern for a file also matches its bare basename
        if os.path.basename(relative_path) == to_posix(pattern).strip('/'):
            return False

    for segment in relative_path.split('/'):
        if segment.startswith(HIDDEN_PREFIXES):
            return True

    for pattern in exclude or []:
        if _matches_pattern(relative_path, pattern):
            return True
    return False


def is_special_path(relative_path):
    """True if any segment of the path starts with an underscore."""
    return any(segment.startswith('_') for segment in to_posix(relative_path).split('/') if segment)


def deep_merge(base, override):
    """Return a new dict with override merged onto base, recursing into dicts."""
    result = dict(base or {})
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result
