"""
Template and Markdown rendering for documents.
"""

import os
import re
import logging
from datetime import datetime, date
from xml.sax.saxutils import escape

import mistune
from jinja2 import BaseLoader, Environment, TemplateNotFound

DEFAULT_MARKDOWN_PLUGINS = ('table', 'task_lists', 'strikethrough')


class CodeBlockRenderer(mistune.HTMLRenderer):
    """HTML renderer that tags fenced code blocks with their language."""

    def __init__(self, escape_html=False):
        super().__init__(escape=escape_html)

    def block_code(self, code, info=None):
        escaped_code = mistune.escape(code)
        language = info.split()[0] if info and info.strip() else None
        if language:
            return f'<pre><code class="language-{mistune.escape(language)}">{escaped_code}</code></pre>\n'
        return f'<pre><code>{escaped_code}</code></pre>\n'


class IncludeLoader(BaseLoader):
    """Loads `{% include %}` targets through the theme's site-over-theme lookup."""

    def __init__(self, theme, encoding='utf-8'):
        self.theme = theme
        self.encoding = encoding

    def get_source(self, environment, template):
        path = self.theme.resolve_include(template)
        if path is None:
            raise TemplateNotFound(template)
        mtime = os.path.getmtime(path)
        with open(path, 'r', encoding=self.encoding) as f:
            source = f.read()

        def uptodate():
            try:
                return os.path.getmtime(path) == mtime
            except OSError:
                return False

        return source, path, uptodate


def slugify(value):
    value = re.sub(r'[^\w\s-]', '', str(value).lower(), flags=re.UNICODE)
    return re.sub(r'[-\s_]+', '-', value).strip('-')


def _as_datetime(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return None


def _lookup(item, key):
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


class Renderer:
    """Renders a document's content, converts Markdown and applies its layouts."""

    def __init__(self, site):
        self.site = site
        self.logger = logging.getLogger('Renderer')
        self._markdown_processors = {}
        self._site_payload = None

        self.env = Environment(loader=IncludeLoader(site.theme), autoescape=False, keep_trailing_newline=True)
        self.env.filters.update({
            'relative_url': self.relative_url,
            'absolute_url': self.absolute_url,
            'date_to_xmlschema': self.date_to_xmlschema,
            'date_to_string': self.date_to_string,
            'slugify': slugify,
            'xml_escape': lambda value: escape(str(value)) if value is not None else '',
            'markdownify': lambda value: self.markdown(str(value or '')),
            'number_of_words': lambda value: len(str(value or '').split()),
            'where': self.where,
            'group_by': self.group_by,
        })

    def register_filter(self, name, func):
        self.env.filters[name] = func

    def register_global(self, name, value):
        self.env.globals[name] = value

    def markdown(self, text, plugins=None, escape_html=False):
        """Convert Markdown with a processor cached per option combination."""
        plugins = tuple(plugins) if plugins is not None else DEFAULT_MARKDOWN_PLUGINS
        key = (plugins, escape_html)
        processor = self._markdown_processors.get(key)
        if processor is None:
            processor = mistune.create_markdown(renderer=CodeBlockRenderer(escape_html), plugins=list(plugins))
            self._markdown_processors[key] = processor
        return processor(text)

    # -- filters -----------------------------------------------------------

    def relative_url(self, url):
        baseurl = (self.site.config.get('baseurl') or '').rstrip('/')
        url = str(url or '')
        if url.startswith(('http://', 'https://', '//')):
            return url
        if not url.startswith('/'):
            url = '/' + url
        return baseurl + url

    def absolute_url(self, url):
        url = str(url or '')
        if url.startswith(('http://', 'https://', '//')):
            return url
        site_url = (self.site.config.get('url') or '').rstrip('/')
        return site_url + self.relative_url(url)

    @staticmethod
    def date_to_xmlschema(value):
        dt = _as_datetime(value)
        return dt.isoformat() if dt else str(value or '')

    @staticmethod
    def date_to_string(value):
        dt = _as_datetime(value)
        return dt.strftime('%d %b %Y') if dt else str(value or '')

    @staticmethod
    def where(items, key, value):
        return [item for item in items or [] if _lookup(item, key) == value]

    @staticmethod
    def group_by(items, key):
        groups = {}
        for item in items or []:
            groups.setdefault(_lookup(item, key), []).append(item)
        return [{'name': name, 'items': members, 'size': len(members)} for name, members in groups.items()]

    # -- rendering ---------------------------------------------------------

    def prepare(self):
        """Snapshot the `site` template variable; call after URLs are assigned."""
        self._site_payload = self.site.to_dict()

    @property
    def site_payload(self):
        if self._site_payload is None:
            self.prepare()
        return self._site_payload

    def render_string(self, template, context):
        return self.env.from_string(template).render(**context)

    def layout_chain(self, document):
        """Return the layouts a document renders through, innermost first."""
        chain = []
        seen = set()
        name = document.layout
        while name:
            layout = self.site.get_layout(name)
            if layout is None:
                self.logger.warning(f"Layout '{name}' not found for {document.relative_path}")
                break
            if layout.path in seen:
                self.logger.warning(f"Layout cycle detected at '{name}' for {document.relative_path}")
                break
            seen.add(layout.path)
            chain.append(layout)
            name = layout.data.get('layout')
        return chain

    def render_document(self, document, paginator=None):
        """
        Render a document to its final output string.

        Args:
            document: Document to render
            paginator: Optional Paginator for one page of a paginated index

        Returns:
            Tuple of (output, layouts used)
        """
        page = document.to_dict()
        paginator_data = paginator.to_dict() if paginator is not None else None
        context = {'site': self.site_payload, 'page': page, 'paginator': paginator_data}

        content = self.render_string(document.content, context)
        if document.is_markdown():
            content = self.markdown(content)
        page['content'] = content

        layouts = self.layout_chain(document)
        for layout in layouts:
            context = {
                'site': self.site_payload,
                'page': page,
                'layout': layout.data,
                'content': content,
                'paginator': paginator_data,
            }
            content = self.render_string(layout.content, context)

        if paginator is None:
            document.output = content
        return content, layouts
