"""
Site reader: walks the source tree and builds the in-memory content graph.
"""

import os
import csv
import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime

import yaml

from .document import Document, DocumentType, StaticFile, has_front_matter
from .errors import FileSystemError, SiteError
from .paths import should_exclude_path, is_special_path, to_posix, deep_merge
from .settings import merge_config, markdown_extensions
from .stylesheets import is_sass_file
from .theme import ThemeManager, DATA_EXTENSIONS

STATIC_BATCH_SIZE = 100
DOCUMENT_BATCH_SIZE = 16
MAX_WORKERS = 8

TEMPLATE_EXTENSIONS = ('.html', '.htm')


class Site:
    """The content graph for one build: documents, layouts, data and assets."""

    def __init__(self, source, config=None, destination=None, config_path=None):
        self.source = os.path.abspath(source)
        self.logger = logging.getLogger('Site')
        self.config_path = config_path

        user_config = dict(config or {})
        self.theme = ThemeManager(self.source, merge_config(user_config))
        self.config = merge_config(user_config, self.theme.theme_config)
        self.theme.config = self.config
        self.config['source'] = self.source

        destination = destination or self.config.get('destination') or '_site'
        self.destination = os.path.abspath(os.path.join(self.source, destination))
        self.config['destination'] = self.destination

        self.reset()

    def reset(self):
        self.pages = []
        self.posts = []
        self.collections = {}
        self.layouts = {}
        self.includes = {}
        self._layout_paths = {}
        self._include_paths = {}
        self.data = {}
        self.static_files = []
        self.sass_files = []
        self.time = datetime.now()

    # -- helpers -----------------------------------------------------------

    def should_exclude(self, relative_path):
        return should_exclude_path(relative_path, self.config.get('exclude'), self.config.get('include'))

    def _relative(self, path):
        return to_posix(os.path.relpath(path, self.source))

    def _walk(self, root, prune_special=True):
        """Yield absolute file paths under root in sorted order, skipping excluded entries."""
        destination = self.destination
        for dirpath, dirnames, filenames in os.walk(root):
            kept = []
            for dirname in sorted(dirnames):
                full = os.path.join(dirpath, dirname)
                if os.path.abspath(full) == destination:
                    continue
                rel = self._relative(full)
                if prune_special and dirname.startswith('_'):
                    continue
                if self.should_exclude(rel):
                    continue
                kept.append(dirname)
            dirnames[:] = kept
            for filename in sorted(filenames):
                full = os.path.join(dirpath, filename)
                if self.should_exclude(self._relative(full)):
                    continue
                yield full

    def _load_in_batches(self, executor, items, factory, batch_size):
        """
        Build objects from items in fixed-size concurrent batches.

        Each batch completes before the next starts. A failure is logged and
        the item skipped; results keep input order.
        """
        results = []
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            futures = {executor.submit(factory, item): index for index, item in enumerate(batch)}
            built = [None] * len(batch)
            for future in as_completed(futures):
                index = futures[future]
                try:
                    built[index] = future.result()
                except (SiteError, ValueError) as e:
                    self.logger.warning(f"Skipping {batch[index]}: {e}")
            results.extend(obj for obj in built if obj is not None)
        return results

    # -- reading -----------------------------------------------------------

    def read(self):
        """Populate the site from the source tree."""
        if not os.path.isdir(self.source):
            raise FileSystemError("Source directory does not exist", file=self.source)

        self.reset()
        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as io_pool, \
                ThreadPoolExecutor(max_workers=4) as phase_pool:
            first = [
                phase_pool.submit(self._read_named, io_pool, self.theme.get_layout_directories(), DocumentType.LAYOUT),
                phase_pool.submit(self._read_named, io_pool, self.theme.get_include_directories(), DocumentType.INCLUDE),
                phase_pool.submit(self._read_data),
            ]
            self.layouts, self.includes, self.data = [f.result() for f in first]
            self._layout_paths = {doc.path: doc for doc in self.layouts.values()}
            self._include_paths = {doc.path: doc for doc in self.includes.values()}

            second = [
                phase_pool.submit(self._read_posts, io_pool),
                phase_pool.submit(self._read_collections, io_pool),
                phase_pool.submit(self._read_pages_and_static, io_pool),
            ]
            self.posts = second[0].result()
            self.collections = second[1].result()
            self.pages, self.sass_files, self.static_files = second[2].result()

        self.logger.debug(
            f"Read {len(self.pages)} pages, {len(self.posts)} posts, "
            f"{sum(len(docs) for docs in self.collections.values())} collection documents, "
            f"{len(self.static_files)} static files"
        )
        return self

    def _read_named(self, executor, directories, doc_type):
        """Read layouts or includes keyed by name; earlier directories win."""
        named = {}
        for directory in directories:
            root = os.path.dirname(directory)
            paths = []
            for dirpath, dirnames, filenames in os.walk(directory):
                dirnames.sort()
                paths.extend(os.path.join(dirpath, f) for f in sorted(filenames) if not f.startswith('.'))

            docs = self._load_in_batches(
                executor, paths, lambda p, r=root: Document(p, r, doc_type, self.config), DOCUMENT_BATCH_SIZE)
            for doc in docs:
                relative = to_posix(os.path.relpath(doc.path, directory))
                keys = [relative]
                if doc_type == DocumentType.LAYOUT:
                    keys.append(os.path.splitext(relative)[0])
                for key in keys:
                    if key not in named:
                        named[key] = doc
        return named

    def _read_data(self):
        data = {}
        # Theme data first so site data merges over it
        for directory in reversed(self.theme.get_data_directories()):
            data = deep_merge(data, self._read_data_dir(directory))
        return data

    def _read_data_dir(self, directory):
        result = {}
        for entry in sorted(os.listdir(directory)):
            if entry.startswith(('.', '#', '~')):
                continue
            path = os.path.join(directory, entry)
            if os.path.isdir(path):
                result[entry] = self._read_data_dir(path)
                continue
            name, ext = os.path.splitext(entry)
            if ext.lower() not in DATA_EXTENSIONS:
                continue
            try:
                result[name] = self.load_data_file(path)
            except (IOError, OSError, PermissionError, ValueError, yaml.YAMLError, csv.Error) as e:
                self.logger.warning(f"Failed to load data file {path}: {e}")
        return result

    @staticmethod
    def load_data_file(path):
        ext = os.path.splitext(path)[1].lower()
        with open(path, 'r', encoding='utf-8', newline='' if ext == '.csv' else None) as f:
            if ext in ('.yml', '.yaml'):
                return yaml.safe_load(f)
            if ext == '.json':
                return json.load(f)
            return list(csv.DictReader(f))

    def _is_document_candidate(self, path):
        ext = os.path.splitext(path)[1].lower()
        return ext in markdown_extensions(self.config) or ext in TEMPLATE_EXTENSIONS

    def _read_posts(self, executor):
        posts_dir = os.path.join(self.source, '_posts')
        if not os.path.isdir(posts_dir):
            return []
        paths = [p for p in self._walk(posts_dir, prune_special=False) if self._is_document_candidate(p)]
        posts = self._load_in_batches(
            executor, paths, lambda p: Document(p, self.source, DocumentType.POST, self.config), DOCUMENT_BATCH_SIZE)
        posts.sort(key=lambda d: (d.date, d.relative_path), reverse=True)
        return posts

    def _read_collections(self, executor):
        collections = {}
        for name, options in self.config.get('collections', {}).items():
            if name == 'posts':
                continue
            directory = os.path.join(self.source, f"_{name}")
            docs = []
            if os.path.isdir(directory):
                paths = [p for p in self._walk(directory, prune_special=False)
                         if self._is_document_candidate(p) or has_front_matter(p)]
                docs = self._load_in_batches(
                    executor, paths,
                    lambda p, n=name: Document(p, self.source, DocumentType.COLLECTION, self.config, collection=n),
                    DOCUMENT_BATCH_SIZE)
                sort_by = options.get('sort_by')
                if sort_by:
                    docs.sort(key=lambda d, k=sort_by: str(d.data.get(k, '')))
            collections[name] = docs
        return collections

    def _read_pages_and_static(self, executor):
        page_paths = []
        sass_paths = []
        static_paths = []
        for path in self._walk(self.source):
            relative = self._relative(path)
            if is_special_path(relative):
                continue
            if is_sass_file(path):
                # Stylesheets without front matter are copied verbatim
                (sass_paths if has_front_matter(path) else static_paths).append(path)
            elif self._is_document_candidate(path) or has_front_matter(path):
                page_paths.append(path)
            else:
                static_paths.append(path)

        def load_document(p):
            return Document(p, self.source, DocumentType.PAGE, self.config)

        pages = self._load_in_batches(executor, page_paths, load_document, DOCUMENT_BATCH_SIZE)
        sass_files = self._load_in_batches(executor, sass_paths, load_document, DOCUMENT_BATCH_SIZE)
        static_files = self._load_in_batches(
            executor, static_paths, lambda p: StaticFile(p, self.source), STATIC_BATCH_SIZE)
        return pages, sass_files, static_files

    # -- accessors ---------------------------------------------------------

    def collection_output_enabled(self, name):
        options = self.config.get('collections', {}).get(name) or {}
        return options.get('output', True) is not False

    def get_layout(self, name):
        """Resolve a layout name through the theme search order to its loaded Document."""
        if not name:
            return None
        path = self.theme.resolve_layout(str(name))
        if path is None:
            return None
        return self._layout_paths.get(path)

    def get_include(self, name):
        path = self.theme.resolve_include(str(name)) if name else None
        if path is None:
            return None
        return self._include_paths.get(path)

    def get_collection(self, name):
        return self.collections.get(name, [])

    def get_all_documents(self):
        documents = list(self.pages) + list(self.posts)
        for docs in self.collections.values():
            documents.extend(docs)
        return documents

    def to_dict(self):
        """Template-facing `site` variable."""
        result = dict(self.config)
        collections = {name: [doc.to_dict() for doc in docs] for name, docs in self.collections.items()}
        result.update({
            'time': self.time,
            'pages': [page.to_dict() for page in self.pages],
            'posts': [post.to_dict() for post in self.posts],
            'collections': collections,
            'data': self.data,
            'static_files': [f.to_dict() for f in self.static_files],
        })
        for name, docs in collections.items():
            result.setdefault(name, docs)
        return result
