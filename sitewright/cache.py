"""
Incremental build ledger.

The ledger lives in <source>/.sitewright-cache/incremental.json and maps
source-relative paths to the modification time seen at the last render
plus the paths whose change forces a re-render.
"""

import os
import json
import time
import logging
import tempfile
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterable, List, Optional

CACHE_VERSION = '1.0'
CACHE_DIR_NAME = '.sitewright-cache'
CACHE_FILE_NAME = 'incremental.json'

# Milliseconds; float mtime round-trips can drift below this
MTIME_EPSILON = 1.0


@dataclass
class CacheEntry:
    path: str
    mtime: float
    dependencies: List[str] = field(default_factory=list)


def _mtime_ms(path) -> Optional[float]:
    try:
        return os.stat(path).st_mtime_ns / 1e6
    except (IOError, OSError):
        return None


class CacheManager:
    """Change detection for incremental builds."""

    def __init__(self, source, config_path=None, cache_dir=None, version=CACHE_VERSION):
        self.source = os.path.abspath(source)
        self.config_path = config_path
        self.version = version
        self.cache_dir = cache_dir or os.path.join(self.source, CACHE_DIR_NAME)
        self.cache_file = os.path.join(self.cache_dir, CACHE_FILE_NAME)
        self.logger = logging.getLogger('CacheManager')

        self.files: Dict[str, CacheEntry] = {}
        self.last_build = None
        self.config_mtime = None
        self.load()

    def _absolute(self, relative_path):
        return os.path.join(self.source, relative_path)

    def load(self):
        """Read the ledger from disk; any problem leaves an empty ledger."""
        self.files = {}
        if not os.path.isfile(self.cache_file):
            self.config_mtime = self._current_config_mtime()
            return

        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (IOError, OSError, PermissionError, ValueError) as e:
            self.logger.warning(f"Failed to read cache file, starting fresh: {e}")
            self.config_mtime = self._current_config_mtime()
            return

        if not isinstance(data, dict) or data.get('version') != self.version:
            self.logger.info("Cache format changed, performing full rebuild")
            self.config_mtime = self._current_config_mtime()
            return

        self.last_build = data.get('lastBuild')
        current_config = self._current_config_mtime()
        recorded_config = data.get('configMtime')
        if self._config_changed(recorded_config, current_config):
            self.logger.info("Configuration changed, performing full rebuild")
            self.config_mtime = current_config
            return
        self.config_mtime = current_config

        for key, entry in (data.get('files') or {}).items():
            try:
                self.files[key] = CacheEntry(
                    path=entry.get('path', key),
                    mtime=float(entry['mtime']),
                    dependencies=list(entry.get('dependencies') or []),
                )
            except (KeyError, TypeError, ValueError, AttributeError):
                self.logger.debug(f"Dropping malformed cache entry: {key}")

    def _current_config_mtime(self):
        if not self.config_path:
            return None
        return _mtime_ms(self.config_path)

    @staticmethod
    def _config_changed(recorded, current):
        if recorded is None and current is None:
            return False
        if recorded is None or current is None:
            return True
        return abs(float(recorded) - float(current)) > MTIME_EPSILON

    def has_changed(self, relative_path) -> bool:
        entry = self.files.get(relative_path)
        if entry is None:
            return True
        current = _mtime_ms(self._absolute(relative_path))
        if current is None:
            return True
        return abs(current - entry.mtime) > MTIME_EPSILON

    def has_dependency_changes(self, relative_path) -> bool:
        entry = self.files.get(relative_path)
        if entry is None:
            return False
        return any(self.has_changed(dep) for dep in entry.dependencies)

    def update_file(self, relative_path, dependencies: Iterable[str] = None):
        mtime = _mtime_ms(self._absolute(relative_path))
        if mtime is None:
            self.files.pop(relative_path, None)
            return
        self.files[relative_path] = CacheEntry(
            path=relative_path,
            mtime=mtime,
            dependencies=list(dependencies or []),
        )

    def remove_file(self, relative_path):
        self.files.pop(relative_path, None)

    def clear(self):
        self.files = {}

    def prune(self, existing_paths: Iterable[str]) -> int:
        """Drop entries whose path is not in existing_paths. Returns the number removed."""
        keep = set(existing_paths)
        stale = [key for key in self.files if key not in keep]
        for key in stale:
            del self.files[key]
        return len(stale)

    def get_stats(self):
        return {
            'version': self.version,
            'files': len(self.files),
            'last_build': self.last_build,
            'cache_file': self.cache_file,
        }

    def to_dict(self):
        return {
            'version': self.version,
            'lastBuild': self.last_build,
            'configMtime': self.config_mtime,
            'files': {key: asdict(entry) for key, entry in self.files.items()},
        }

    def save(self) -> bool:
        """
        Write the ledger atomically.

        Returns False (after logging a warning) when the write fails; the
        previous cache file is left untouched in that case.
        """
        self.last_build = int(time.time() * 1000)
        tmp_path = None
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=CACHE_FILE_NAME + '.', suffix='.tmp', dir=self.cache_dir)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_path, self.cache_file)
            return True
        except (IOError, OSError, PermissionError, TypeError, ValueError) as e:
            self.logger.warning(f"Failed to save cache: {e}")
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except (IOError, OSError) as cleanup_error:
                    self.logger.debug(f"Could not remove temporary cache file {tmp_path}: {cleanup_error}")
            return False
