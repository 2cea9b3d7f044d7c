"""
Theme discovery and the site-over-theme lookup for layouts, includes and data.
"""

import os
import json
import logging
import importlib.util
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from .errors import ConfigError, PathTraversalError
from .paths import is_safe_name, is_safe_theme_name, is_path_within_base, should_exclude_path, to_posix

LAYOUT_EXTENSIONS = ('', '.html', '.htm', '.md', '.markdown')
DATA_EXTENSIONS = ('.yml', '.yaml', '.json', '.csv')
METADATA_FILES = ('theme.yml', 'theme.yaml', 'package.json')


@dataclass
class ThemeConfig:
    name: str
    root: str
    layouts_dir: str
    includes_dir: str
    sass_dir: str
    assets_dir: str
    data_dir: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    config: Dict[str, Any] = field(default_factory=dict)


class ThemeManager:
    """Resolves logical names across the site directory and the active theme."""

    def __init__(self, source, config=None):
        self.source = os.path.abspath(source)
        self.config = config or {}
        self.logger = logging.getLogger('ThemeManager')
        self.theme = None

        name = self.config.get('theme')
        if name:
            name = str(name)
            if not is_safe_theme_name(name):
                raise PathTraversalError(f"Invalid theme name: {name}", file=name)
            self.theme = self._load_theme(name)

    def _find_theme_root(self, name) -> Optional[str]:
        # Installed package first
        if not os.path.isabs(name) and '/' not in name and '\\' not in name:
            module_name = name.replace('-', '_')
            try:
                spec = importlib.util.find_spec(module_name)
            except (ImportError, ValueError):
                spec = None
            if spec is not None and spec.submodule_search_locations:
                return list(spec.submodule_search_locations)[0]

        candidates = []
        if not os.path.isabs(name):
            candidates.append(os.path.join(self.source, '_themes', name))
            candidates.append(os.path.join(self.source, name))
        else:
            candidates.append(name)

        for candidate in candidates:
            if os.path.isdir(candidate):
                return os.path.abspath(candidate)
        return None

    def _load_theme(self, name) -> ThemeConfig:
        root = self._find_theme_root(name)
        if root is None:
            raise ConfigError(f"Theme not found: {name}")

        theme = ThemeConfig(
            name=name,
            root=root,
            layouts_dir=os.path.join(root, '_layouts'),
            includes_dir=os.path.join(root, '_includes'),
            sass_dir=os.path.join(root, '_sass'),
            assets_dir=os.path.join(root, 'assets'),
            data_dir=os.path.join(root, '_data'),
            metadata=self._read_metadata(root),
            config=self._read_theme_config(root),
        )
        self.logger.debug(f"Using theme '{name}' from {root}")
        return theme

    def _read_metadata(self, root) -> Dict[str, Any]:
        for filename in METADATA_FILES:
            path = os.path.join(root, filename)
            if not os.path.isfile(path):
                continue
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f) if filename.endswith('.json') else yaml.safe_load(f)
            except (IOError, OSError, PermissionError, ValueError, yaml.YAMLError) as e:
                self.logger.warning(f"Failed to read theme metadata {path}: {e}")
                continue
            if isinstance(data, dict):
                return {key: data.get(key) for key in ('name', 'version', 'author', 'description') if key in data}
        return {}

    def _read_theme_config(self, root) -> Dict[str, Any]:
        path = os.path.join(root, '_config.yml')
        if not os.path.isfile(path):
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (IOError, OSError, PermissionError, yaml.YAMLError) as e:
            self.logger.warning(f"Failed to read theme configuration {path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        # A theme cannot pick another theme or move the site's directories
        for key in ('theme', 'source', 'destination'):
            data.pop(key, None)
        return data

    @property
    def theme_config(self) -> Dict[str, Any]:
        return self.theme.config if self.theme else {}

    def _site_dir(self, key, default):
        return os.path.join(self.source, self.config.get(key) or default)

    def _ordered_dirs(self, site_dir, theme_dir) -> List[str]:
        dirs = [site_dir]
        if theme_dir:
            dirs.append(theme_dir)
        return [d for d in dirs if os.path.isdir(d)]

    def get_layout_directories(self) -> List[str]:
        return self._ordered_dirs(self._site_dir('layouts_dir', '_layouts'),
                                  self.theme.layouts_dir if self.theme else None)

    def get_include_directories(self) -> List[str]:
        return self._ordered_dirs(self._site_dir('includes_dir', '_includes'),
                                  self.theme.includes_dir if self.theme else None)

    def get_data_directories(self) -> List[str]:
        return self._ordered_dirs(self._site_dir('data_dir', '_data'),
                                  self.theme.data_dir if self.theme else None)

    def get_sass_directories(self) -> List[str]:
        sass_dir = (self.config.get('sass') or {}).get('sass_dir') or '_sass'
        return self._ordered_dirs(os.path.join(self.source, sass_dir),
                                  self.theme.sass_dir if self.theme else None)

    def _lookup(self, name, directories, extensions) -> Optional[str]:
        if not is_safe_name(name):
            self.logger.warning(f"Rejected unsafe name: {name!r}")
            return None
        for directory in directories:
            for ext in extensions:
                candidate = os.path.normpath(os.path.join(directory, name + ext))
                if not is_path_within_base(candidate, directory):
                    continue
                if os.path.isfile(candidate):
                    return candidate
        return None

    def resolve_layout(self, name) -> Optional[str]:
        return self._lookup(name, self.get_layout_directories(), LAYOUT_EXTENSIONS)

    def resolve_include(self, relative_path) -> Optional[str]:
        return self._lookup(relative_path, self.get_include_directories(), ('',))

    def resolve_data_file(self, relative_path) -> Optional[str]:
        return self._lookup(relative_path, self.get_data_directories(), ('',) + DATA_EXTENSIONS)

    def get_theme_static_files(self, site_relative_paths: Set[str]) -> List[Tuple[str, str]]:
        """
        List theme assets to copy as (absolute path, destination-relative path).

        Any relative path the site also provides is left out; the site's copy
        goes through normal static-file handling.
        """
        if not self.theme or not os.path.isdir(self.theme.assets_dir):
            return []

        exclude = self.config.get('exclude') or []
        include = self.config.get('include') or []
        files = []
        for dirpath, dirnames, filenames in os.walk(self.theme.assets_dir):
            dirnames.sort()
            for filename in sorted(filenames):
                full_path = os.path.join(dirpath, filename)
                relative = to_posix(os.path.relpath(full_path, self.theme.root))
                if relative in site_relative_paths:
                    continue
                if should_exclude_path(relative, exclude, include):
                    continue
                files.append((full_path, relative))
        return files
