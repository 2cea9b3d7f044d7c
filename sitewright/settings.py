#!/usr/bin/env python3
"""
Settings loader for the sitewright static site builder.
Supports configuration from _config.yml, _config.yaml, or _config.json files.
"""

import os
import copy
import json
import fnmatch
import logging
import yaml
from typing import Dict, Any, Optional, List, Tuple

from .errors import ConfigError
from .paths import is_safe_theme_name, is_path_within_base, to_posix, deep_merge

PERMALINK_STYLES = ('date', 'pretty', 'ordinal', 'weekdate', 'none')
SASS_STYLES = ('nested', 'expanded', 'compact', 'compressed')

DEFAULT_EXCLUDES = ['_site', '.sass-cache', '.jekyll-cache', '.sitewright-cache', 'node_modules', 'vendor']

# Keys that are lists and get de-duplicated rather than replaced when merging
LIST_MERGE_KEYS = ('exclude',)


class SiteSettings:
    """Load and manage site configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'source': '.',
        'destination': '_site',
        'layouts_dir': '_layouts',
        'includes_dir': '_includes',
        'data_dir': '_data',
        'collections': {},
        'permalink': 'date',
        'exclude': list(DEFAULT_EXCLUDES),
        'include': ['.htaccess'],
        'keep_files': ['.git', '.svn'],
        'markdown_ext': 'markdown,mkdown,mkdn,mkd,md',
        'theme': None,
        'plugins': [],
        'defaults': [],
        'show_drafts': False,
        'future': False,
        'incremental': False,
        'minify': False,
        'paginate': None,
        'paginate_path': '/page:num/',
        'sass': {'sass_dir': '_sass', 'load_paths': [], 'style': 'expanded'},
        'port': 4000,
        'host': 'localhost',
        'livereload': True,
        'url': '',
        'baseurl': '',
        'title': None,
        'encoding': 'utf-8',
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['_config.yml', '_config.yaml', '_config.json']

    def __init__(self, config_dir: str = None, config_file: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
            config_file: Explicit config file path, overrides the directory search.
        """
        self.config_dir = config_dir or os.getcwd()
        self.explicit_config = config_file
        self.settings = merge_config({})
        self.config_file_path = None
        self.logger = logging.getLogger('SiteSettings')

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings merged over the defaults

        Raises:
            ConfigError: If an explicitly requested config file is missing or invalid
        """
        if self.explicit_config:
            config_file = self.explicit_config
            if not os.path.isfile(config_file):
                raise ConfigError("Configuration file not found", file=config_file)
        else:
            config_file = self._find_config_file()

        if config_file:
            self.config_file_path = os.path.abspath(config_file)
            loaded_settings = self._load_config_file(config_file)
            if loaded_settings:
                self.settings = merge_config(loaded_settings)
                self.logger.debug(f"Loaded configuration from: {os.path.relpath(config_file)}")

        return copy.deepcopy(self.settings)

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    data = yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    data = json.load(f) or {}
                else:
                    raise ConfigError(f"Unsupported config file format: {file_ext}", file=config_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}", file=config_path, cause=e)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file: {e}", file=config_path, cause=e)
        except (IOError, OSError, PermissionError) as e:
            raise ConfigError(f"Error reading configuration file: {e}", file=config_path, cause=e)

        if not isinstance(data, dict):
            raise ConfigError("Configuration file must contain a mapping", file=config_path)
        return data

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge settings with command line arguments.
        Command line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command line arguments

        Returns:
            Merged settings dictionary
        """
        merged = copy.deepcopy(self.settings)
        for key, value in args_dict.items():
            # Only override if argument was explicitly provided
            if value is not None:
                merged[key] = value
        return merged


def merge_config(user_config: Dict[str, Any], theme_config: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Layer defaults, an optional theme overlay and the user's configuration.

    Site keys win over theme keys, which win over defaults. The exclude list
    is the de-duplicated union of every layer.
    """
    merged = copy.deepcopy(SiteSettings.DEFAULT_SETTINGS)
    for layer in (theme_config or {}, user_config or {}):
        for key, value in layer.items():
            if key in LIST_MERGE_KEYS and isinstance(value, list):
                merged[key] = _unique(list(merged.get(key) or []) + value)
            elif isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = deep_merge(merged[key], value)
            else:
                merged[key] = copy.deepcopy(value)
    merged['collections'] = normalize_collections(merged.get('collections'))
    return merged


def _unique(items):
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def normalize_collections(collections) -> Dict[str, Dict[str, Any]]:
    """Accept a list of names or a mapping and return an ordered name -> options mapping."""
    if not collections:
        return {}
    if isinstance(collections, (list, tuple)):
        return {str(name): {} for name in collections}
    if isinstance(collections, dict):
        return {str(name): dict(options or {}) for name, options in collections.items()}
    raise ConfigError("'collections' must be a list or a mapping")


def markdown_extensions(config: Dict[str, Any]) -> List[str]:
    """Return the configured Markdown extensions as dotted, lower-case strings."""
    raw = config.get('markdown_ext') or SiteSettings.DEFAULT_SETTINGS['markdown_ext']
    if isinstance(raw, (list, tuple)):
        names = raw
    else:
        names = str(raw).split(',')
    return ['.' + name.strip().lstrip('.').lower() for name in names if name.strip()]


def validate_settings(settings: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    """
    Check a merged configuration for obvious mistakes.

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    warnings = []

    port = settings.get('port')
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        errors.append(f"port must be an integer between 1 and 65535, got {port!r}")

    permalink = settings.get('permalink')
    if not isinstance(permalink, str) or not permalink:
        errors.append("permalink must be a style name or a pattern string")
    elif permalink not in PERMALINK_STYLES and not permalink.startswith('/'):
        warnings.append(f"permalink '{permalink}' is neither a known style nor an absolute pattern")

    try:
        normalize_collections(settings.get('collections'))
    except ConfigError as e:
        errors.append(str(e))

    paginate = settings.get('paginate')
    if paginate is not None and (isinstance(paginate, bool) or not isinstance(paginate, int) or paginate < 1):
        errors.append(f"paginate must be a positive integer, got {paginate!r}")

    sass = settings.get('sass')
    if sass is not None and not isinstance(sass, dict):
        errors.append("sass must be a mapping")
    elif sass and sass.get('style') and sass.get('style') not in SASS_STYLES:
        warnings.append(f"sass style '{sass.get('style')}' is unknown; using expanded")

    theme = settings.get('theme')
    if theme and not is_safe_theme_name(str(theme)):
        errors.append(f"theme name '{theme}' is not allowed")

    for key in ('exclude', 'include', 'keep_files', 'plugins', 'defaults'):
        value = settings.get(key)
        if value is not None and not isinstance(value, list):
            errors.append(f"{key} must be a list")

    source = os.path.abspath(settings.get('source') or '.')
    destination = os.path.abspath(os.path.join(source, settings.get('destination') or '_site'))
    if destination == source:
        errors.append("destination must not be the same directory as source")
    elif is_path_within_base(source, destination):
        errors.append("destination must not contain the source directory")
    elif is_path_within_base(destination, source):
        rel = to_posix(os.path.relpath(destination, source))
        excluded = settings.get('exclude') or []
        if not rel.startswith('_') and rel.split('/')[0] not in excluded:
            warnings.append(f"destination '{rel}' is inside source and is not excluded")

    return errors, warnings


def _scope_matches(scope: Dict[str, Any], relative_path: str, doc_type: str, collection: Optional[str]) -> bool:
    scope_type = scope.get('type')
    if scope_type:
        scope_type = str(scope_type)
        if doc_type == 'post':
            allowed = ('posts', 'post')
        elif doc_type == 'page':
            allowed = ('pages', 'page')
        else:
            allowed = (collection,) if collection else ()
        if scope_type not in allowed:
            return False

    scope_path = to_posix(str(scope.get('path') or '')).strip('/')
    if not scope_path:
        return True
    relative_path = to_posix(relative_path)
    if relative_path == scope_path or relative_path.startswith(scope_path + '/'):
        return True
    return fnmatch.fnmatch(relative_path, scope_path)


def frontmatter_defaults(config: Dict[str, Any], relative_path: str, doc_type: str,
                         collection: Optional[str] = None) -> Dict[str, Any]:
    """
    Collect the `defaults:` values that apply to a document.

    Scopes are applied in configuration order so later entries override
    earlier ones. The caller merges the file's own front matter on top.
    """
    values = {}
    for entry in config.get('defaults') or []:
        if not isinstance(entry, dict):
            continue
        scope = entry.get('scope') or {}
        if _scope_matches(scope, relative_path, doc_type, collection):
            values = deep_merge(values, entry.get('values') or {})
    return values
