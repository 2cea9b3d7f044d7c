"""
Build orchestration: read, clean, render, copy, generate, persist.
"""

import os
import shutil
import logging
import tempfile
from datetime import datetime

import csscompressor
import rjsmin
from jinja2 import TemplateError

from .cache import CacheManager
from .document import Document, DocumentType, has_front_matter
from .errors import BuildError, FileSystemError, SiteError
from .paginator import generate_pagination, paginated_file_path
from .paths import is_path_within_base, to_posix
from .plugins import PluginRegistry, GeneratorResult
from .renderer import Renderer
from .stylesheets import SassProcessor, css_output_path, is_sass_file
from .timer import PerformanceTimer
from .urls import UrlGenerator


class Builder:
    """Runs one build of a Site into its destination directory."""

    def __init__(self, site, show_drafts=False, show_future=False, clean=True, incremental=False,
                 verbose=False, timing=False, registry=None, now=None):
        self.site = site
        self.show_drafts = show_drafts
        self.show_future = show_future
        self.clean = clean
        self.incremental = incremental
        self.verbose = verbose
        self.timing = timing
        self.registry = registry
        self.now = now
        self.logger = logging.getLogger('Builder')
        self.url_generator = UrlGenerator(site.config)
        self._reset_counters()

    def _reset_counters(self):
        self.pages_rendered = 0
        self.posts_rendered = 0
        self.documents_rendered = 0
        self.static_files_copied = 0
        self.static_files_skipped = 0
        self.plugin_files_written = 0
        self.paginated_pages_written = 0
        self.stylesheets_compiled = 0
        self.no_changes = False
        self._written = {}

    @property
    def destination(self):
        return self.site.destination

    def build(self):
        """
        Build the site.

        Returns:
            BuildTimings when timing was requested, otherwise None

        Raises:
            FileSystemError: Source missing or destination unusable
            BuildError: A document failed to render or write
        """
        self._reset_counters()
        timer = PerformanceTimer(enabled=self.timing)
        now = self.now or datetime.now()
        registry = self.registry if self.registry is not None else PluginRegistry.from_config(self.site.config)
        cache = CacheManager(self.site.source, config_path=self.site.config_path) if self.incremental else None

        timer.time('read', self.site.read)
        # Drafts and future posts are invisible to templates and generators too
        self.site.posts = self.filter_posts(self.site.posts, now)

        if self.clean and not self.incremental:
            timer.time('clean', self.clean_destination)

        try:
            os.makedirs(self.destination, exist_ok=True)
        except (IOError, OSError, PermissionError) as e:
            raise FileSystemError(f"Cannot create destination directory: {e}", file=self.destination, cause=e)

        timer.time('urls', self.generate_urls)
        renderer = Renderer(self.site)
        renderer.prepare()

        pages = list(self.site.pages)
        posts = list(self.site.posts)
        collection_docs = self.output_collection_documents()

        if cache is not None:
            pages = [d for d in pages if self.needs_render(d, cache, renderer)]
            posts = [d for d in posts if self.needs_render(d, cache, renderer)]
            collection_docs = [d for d in collection_docs if self.needs_render(d, cache, renderer)]
            if not (pages or posts or collection_docs):
                self.no_changes = True
                self.logger.info("No changes detected")

        if not self.no_changes:
            timer.time('render pages', lambda: self.render_documents(pages, renderer, cache), f"{len(pages)} pages")
            timer.time('render posts', lambda: self.render_documents(posts, renderer, cache), f"{len(posts)} posts")
            timer.time('render collections', lambda: self.render_documents(collection_docs, renderer, cache),
                       f"{len(collection_docs)} documents")
            self.pages_rendered = len(pages)
            self.posts_rendered = len(posts)
            timer.time('pagination', lambda: self.render_pagination(renderer))

        timer.time('stylesheets', lambda: self.process_sass_files(renderer))
        timer.time('static files', self.copy_static_files)
        timer.time('theme assets', lambda: self.copy_theme_assets(renderer))

        if not self.no_changes:
            timer.time('plugins', lambda: self.run_generators(registry, renderer, cache))

        if cache is not None:
            cache.prune(self._live_cache_keys(cache))
            cache.save()

        self.logger.info(
            f"Rendered {self.documents_rendered} documents, copied {self.static_files_copied} static files"
        )
        if self.timing:
            return timer.get_timings()
        return None

    # -- cleaning ----------------------------------------------------------

    def clean_destination(self):
        """Empty the destination directory, preserving keep_files entries."""
        destination = self.destination
        source = self.site.source
        if destination == source or is_path_within_base(source, destination):
            raise FileSystemError("Refusing to clean a destination that contains the source", file=destination)
        if not os.path.exists(destination):
            return

        keep_files = [to_posix(k).strip('/') for k in self.site.config.get('keep_files') or []]
        backup_dir = tempfile.mkdtemp(prefix='sitewright-keep-')
        preserved = []
        try:
            for pattern in keep_files:
                if not pattern:
                    continue
                kept_path = os.path.normpath(os.path.join(destination, pattern))
                if not is_path_within_base(kept_path, destination) or kept_path == destination:
                    self.logger.warning(f"Ignoring keep_files entry outside destination: {pattern}")
                    continue
                if os.path.lexists(kept_path):
                    backup_path = os.path.join(backup_dir, pattern)
                    os.makedirs(os.path.dirname(backup_path), exist_ok=True)
                    shutil.move(kept_path, backup_path)
                    preserved.append(pattern)

            shutil.rmtree(destination)
            os.makedirs(destination, exist_ok=True)

            for pattern in preserved:
                restored_path = os.path.join(destination, pattern)
                os.makedirs(os.path.dirname(restored_path), exist_ok=True)
                shutil.move(os.path.join(backup_dir, pattern), restored_path)
        except (IOError, OSError, PermissionError) as e:
            raise FileSystemError(f"Failed to clean destination: {e}", file=destination, cause=e)
        finally:
            shutil.rmtree(backup_dir, ignore_errors=True)

        if preserved:
            self.logger.debug(f"Preserved {', '.join(preserved)} while cleaning")

    # -- selection ---------------------------------------------------------

    def generate_urls(self):
        for document in self.site.pages + self.site.posts + self.output_collection_documents():
            document.url = self.url_generator.generate_url(document)

    def output_collection_documents(self):
        documents = []
        for name, docs in self.site.collections.items():
            if self.site.collection_output_enabled(name):
                documents.extend(docs)
        return documents

    def filter_posts(self, posts, now=None):
        now = now or datetime.now()
        return [
            post for post in posts
            if (post.published or self.show_drafts) and (post.date <= now or self.show_future)
        ]

    def dependency_key(self, path):
        """Cache key for a dependency: source-relative when possible, else absolute."""
        if is_path_within_base(path, self.site.source):
            return to_posix(os.path.relpath(path, self.site.source))
        return os.path.abspath(path)

    def needs_render(self, document, cache, renderer):
        key = document.relative_path
        if cache.has_changed(key) or cache.has_dependency_changes(key):
            return True
        for layout in renderer.layout_chain(document):
            if cache.has_changed(self.dependency_key(layout.path)):
                return True
        output_path = os.path.join(self.destination, self.url_generator.generate_output_path(document))
        return not os.path.exists(output_path)

    def _live_cache_keys(self, cache):
        keys = set()
        for document in self.site.get_all_documents():
            keys.add(document.relative_path)
            entry = cache.files.get(document.relative_path)
            if entry:
                keys.update(entry.dependencies)
        return keys

    # -- rendering ---------------------------------------------------------

    def write_output(self, relative_path, content, origin=None):
        """Write content under the destination, refusing paths that escape it."""
        target = self.url_generator.resolve_output_path(self.destination, relative_path)
        previous = self._written.get(target)
        if previous and previous != origin:
            self.logger.warning(f"Conflict: {origin} overwrites output of {previous} at {to_posix(relative_path)}")
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            f.write(content)
        self._written[target] = origin
        return target

    def render_document(self, document, renderer, cache=None):
        try:
            output, layouts = renderer.render_document(document)
            output_path = self.url_generator.generate_output_path(document)
            self.write_output(output_path, output, origin=document.relative_path)
        except (TemplateError, IOError, OSError, SiteError, ValueError, TypeError) as e:
            raise BuildError(f"Failed to build document: {e}", file=document.relative_path, cause=e)

        self.documents_rendered += 1
        if self.verbose:
            self.logger.debug(f"Rendered {document.relative_path} -> {output_path}")

        if cache is not None:
            dependencies = [self.dependency_key(layout.path) for layout in layouts]
            cache.update_file(document.relative_path, dependencies)
            for dependency in dependencies:
                cache.update_file(dependency)

    def render_documents(self, documents, renderer, cache=None):
        for document in documents:
            self.render_document(document, renderer, cache)

    def find_index_page(self):
        """The root index page, the only page that gets paginated."""
        for page in self.site.pages:
            name = os.path.splitext(page.relative_path)[0]
            if name == 'index':
                return page
        return None

    def render_pagination(self, renderer):
        """Render the root index once per page of posts when `paginate` is set."""
        paginators = generate_pagination(self.site.posts, self.site.config)
        if not paginators:
            return
        index = self.find_index_page()
        if index is None:
            self.logger.warning("Pagination is enabled but the site has no index page")
            return

        paginate_path = self.site.config.get('paginate_path')
        for paginator in paginators:
            relative_path = paginated_file_path(paginator.page, paginate_path)
            try:
                output, _ = renderer.render_document(index, paginator=paginator)
                self.write_output(relative_path, output, origin=index.relative_path)
            except (TemplateError, IOError, OSError, SiteError, ValueError, TypeError) as e:
                raise BuildError(f"Failed to build page {paginator.page} of the index: {e}",
                                 file=index.relative_path, cause=e)
            self.paginated_pages_written += 1
        self.logger.debug(f"Paginated {len(self.site.posts)} posts over {len(paginators)} pages")

    # -- stylesheets -------------------------------------------------------

    def compile_stylesheet(self, processor, renderer, document, relative_path):
        """
        Render a stylesheet's template tags, compile it and write the CSS.

        A failure is logged and the stylesheet skipped; returns True when
        the CSS was written.
        """
        content = document.content
        try:
            content = renderer.render_string(content, {'site': renderer.site_payload, 'page': document.to_dict()})
        except TemplateError as e:
            self.logger.warning(f"Template error in {relative_path}, compiling it unrendered: {e}")

        try:
            css = processor.process(document.path, content)
            self.write_output(css_output_path(relative_path), css, origin=relative_path)
        except (IOError, OSError, PermissionError, SiteError) as e:
            self.logger.warning(f"Failed to compile stylesheet {relative_path}: {e}")
            return False
        self.stylesheets_compiled += 1
        return True

    def process_sass_files(self, renderer):
        if not self.site.sass_files:
            return
        processor = SassProcessor(self.site.source, self.site.config, self.site.theme)
        for document in self.site.sass_files:
            self.compile_stylesheet(processor, renderer, document, document.relative_path)

    # -- static files ------------------------------------------------------

    def copy_file(self, source_path, relative_path):
        """
        Copy one file into the destination; returns False when it was up to date.

        CSS and JS are minified when `minify` is enabled.
        """
        target = self.url_generator.resolve_output_path(self.destination, relative_path)
        if os.path.exists(target) and os.path.getmtime(target) >= os.path.getmtime(source_path):
            return False
        os.makedirs(os.path.dirname(target), exist_ok=True)
        if self.site.config.get('minify') and self._minify(source_path, target):
            return True
        shutil.copy2(source_path, target)
        return True

    def _minify(self, source_path, target):
        lowered = source_path.lower()
        if lowered.endswith(('.min.css', '.min.js')) or not lowered.endswith(('.css', '.js')):
            return False
        try:
            with open(source_path, 'r', encoding='utf-8') as f:
                content = f.read()
            minified = csscompressor.compress(content) if lowered.endswith('.css') else rjsmin.jsmin(content)
            with open(target, 'w', encoding='utf-8') as f:
                f.write(minified)
            shutil.copystat(source_path, target)
            return True
        except (IOError, OSError, PermissionError, UnicodeDecodeError, ValueError) as e:
            self.logger.warning(f"Failed to minify {source_path}, copying as-is: {e}")
            return False

    def _copy_and_count(self, source_path, relative_path):
        try:
            if self.copy_file(source_path, relative_path):
                self.static_files_copied += 1
            else:
                self.static_files_skipped += 1
        except (IOError, OSError, PermissionError, SiteError) as e:
            self.logger.warning(f"Failed to copy static file {relative_path}: {e}")

    def copy_static_files(self):
        for static_file in self.site.static_files:
            self._copy_and_count(static_file.path, static_file.relative_path)

    def site_output_paths(self):
        """Destination-relative paths the site itself provides, which theme assets never replace."""
        paths = {f.relative_path for f in self.site.static_files}
        for document in self.site.get_all_documents():
            paths.add(document.relative_path)
            if document.url is not None:
                paths.add(to_posix(self.url_generator.generate_output_path(document)))
        for document in self.site.sass_files:
            paths.add(document.relative_path)
            paths.add(to_posix(css_output_path(document.relative_path)))
        for target in self._written:
            paths.add(to_posix(os.path.relpath(target, self.destination)))
        return paths

    def copy_theme_assets(self, renderer=None):
        site_paths = self.site_output_paths()
        theme = self.site.theme.theme
        processor = None
        for source_path, relative_path in self.site.theme.get_theme_static_files(site_paths):
            if is_sass_file(source_path) and has_front_matter(source_path):
                if css_output_path(relative_path) in site_paths or renderer is None:
                    continue
                try:
                    document = Document(source_path, theme.root, DocumentType.PAGE, self.site.config)
                except SiteError as e:
                    self.logger.warning(f"Failed to read theme stylesheet {relative_path}: {e}")
                    continue
                processor = processor or SassProcessor(self.site.source, self.site.config, self.site.theme)
                self.compile_stylesheet(processor, renderer, document, relative_path)
                continue
            self._copy_and_count(source_path, relative_path)

    # -- plugins -----------------------------------------------------------

    def run_generators(self, registry, renderer, cache=None):
        for generator in registry.get_generators():
            name = getattr(generator, 'name', type(generator).__name__)
            try:
                result = GeneratorResult.coerce(generator.generate(self.site))
            except Exception as e:
                self.logger.warning(f"Generator '{name}' failed: {e}")
                continue

            for generated in result.files:
                try:
                    self.write_output(generated.path, generated.content, origin=f"plugin:{name}")
                    self.plugin_files_written += 1
                except (IOError, OSError, PermissionError, SiteError) as e:
                    self.logger.warning(f"Generator '{name}' could not write {generated.path}: {e}")

            for document in result.documents:
                try:
                    if document.url is None:
                        document.url = self.url_generator.generate_url(document)
                    self.site.pages.append(document)
                    self.render_document(document, renderer)
                except SiteError as e:
                    self.logger.warning(f"Generator '{name}' document failed: {e}")
