"""
Polling file watcher that rebuilds the site when the source tree changes.
"""

import os
import logging
import threading

from .paths import is_path_within_base, to_posix

IGNORED_DIRECTORIES = {'.git', '.svn', '.hg', 'node_modules', '.sitewright-cache', '.sass-cache',
                       '.jekyll-cache', '__pycache__'}

ADDED = 'add'
CHANGED = 'change'
DELETED = 'delete'


class FileWatcher:
    """
    Polls the source tree and runs a rebuild on change.

    Only one rebuild runs at a time. Events that arrive while a rebuild is
    in flight are dropped, so a burst of saves produces a single rebuild
    that sees the tree as it is when the rebuild starts.
    """

    def __init__(self, source, rebuild, destination=None, on_rebuilt=None, interval=0.5, ignored=None):
        self.source = os.path.abspath(source)
        self.destination = os.path.abspath(destination) if destination else None
        self.rebuild = rebuild
        self.on_rebuilt = on_rebuilt
        self.interval = interval
        self.ignored = set(IGNORED_DIRECTORIES) | set(ignored or [])
        self.logger = logging.getLogger('FileWatcher')

        self._rebuild_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._poll_thread = None
        self._rebuild_thread = None
        self._snapshot = {}
        self.rebuild_count = 0

    def _is_ignored_dir(self, path, name):
        if name in self.ignored:
            return True
        return self.destination is not None and is_path_within_base(path, self.destination)

    def scan(self):
        """Return {relative path: (mtime_ns, size)} for every watched file."""
        snapshot = {}
        for dirpath, dirnames, filenames in os.walk(self.source):
            dirnames[:] = sorted(d for d in dirnames if not self._is_ignored_dir(os.path.join(dirpath, d), d))
            for filename in filenames:
                path = os.path.join(dirpath, filename)
                try:
                    stat = os.stat(path)
                except (IOError, OSError):
                    # Removed between listing and stat
                    continue
                snapshot[to_posix(os.path.relpath(path, self.source))] = (stat.st_mtime_ns, stat.st_size)
        return snapshot

    @staticmethod
    def diff(old, new):
        events = []
        for path in sorted(new):
            if path not in old:
                events.append((ADDED, path))
            elif new[path] != old[path]:
                events.append((CHANGED, path))
        for path in sorted(old):
            if path not in new:
                events.append((DELETED, path))
        return events

    def poll_once(self):
        """Rescan, dispatch any events, and return them."""
        current = self.scan()
        events = self.diff(self._snapshot, current)
        self._snapshot = current
        for event, path in events:
            self.handle_change(event, path)
        return events

    def handle_change(self, event, path):
        """
        Start a rebuild unless one is already running.

        Returns:
            True if this event started a rebuild
        """
        if not self._rebuild_lock.acquire(blocking=False):
            self.logger.debug(f"Rebuild in progress, ignoring {event} {path}")
            return False
        self.logger.info(f"Detected {event}: {path}")
        self._rebuild_thread = threading.Thread(target=self._run_rebuild, name='sitewright-rebuild', daemon=True)
        self._rebuild_thread.start()
        return True

    def _run_rebuild(self):
        try:
            self.rebuild()
        except Exception as e:
            self.logger.error(f"Rebuild failed: {e}")
        else:
            self.rebuild_count += 1
            if self.on_rebuilt:
                self.on_rebuilt()
        finally:
            self._rebuild_lock.release()

    def is_rebuilding(self):
        return self._rebuild_lock.locked()

    def _poll_loop(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.poll_once()
            except (IOError, OSError) as e:
                self.logger.warning(f"Watch scan failed: {e}")

    def start(self):
        self._stop_event.clear()
        self._snapshot = self.scan()
        self._poll_thread = threading.Thread(target=self._poll_loop, name='sitewright-watch', daemon=True)
        self._poll_thread.start()
        self.logger.info(f"Watching {self.source} for changes")

    def wait_for_rebuild(self, timeout=None):
        thread = self._rebuild_thread
        if thread is not None:
            thread.join(timeout)

    def stop(self, timeout=None):
        """Stop polling and wait for an in-flight rebuild to finish."""
        self._stop_event.set()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout)
            self._poll_thread = None
        self.wait_for_rebuild(timeout)
