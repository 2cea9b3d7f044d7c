"""
Content model: parsed template documents and static assets.
"""

import os
import re
import logging
from datetime import datetime, date
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from .errors import FrontMatterError, FileSystemError
from .paths import resolve_within, to_posix
from .settings import frontmatter_defaults, markdown_extensions

FRONT_MATTER_RE = re.compile(r'\A\s*---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?', re.DOTALL | re.MULTILINE)
DELIMITER_LINE_RE = re.compile(r'^---[ \t]*\r?$', re.MULTILINE)
POST_FILENAME_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})-(.+)$')

FRONT_MATTER_WINDOW = 4096

DATE_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%dT%H:%M',
    '%Y-%m-%d',
)

logger = logging.getLogger('Document')


class DocumentType(Enum):
    PAGE = 'page'
    POST = 'post'
    LAYOUT = 'layout'
    INCLUDE = 'include'
    COLLECTION = 'collection'


def has_front_matter(path, window=FRONT_MATTER_WINDOW):
    """
    Check whether a file starts with a front matter block.

    Only the first `window` bytes are read so large binary assets can be
    classified without loading them.
    """
    try:
        with open(path, 'rb') as f:
            head = f.read(window)
    except (IOError, OSError, PermissionError):
        return False
    text = head.decode('utf-8-sig', errors='ignore').lstrip()
    if not text.startswith('---'):
        return False
    first_break = text.find('\n')
    if first_break == -1 or text[:first_break].rstrip() != '---':
        return False
    return DELIMITER_LINE_RE.search(text, first_break + 1) is not None


def parse_date(value):
    """Parse a front matter date value into a naive local datetime, or None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _as_list(value, split_scalar):
    if value is None or value == '':
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item) != '']
    if split_scalar:
        return str(value).split()
    return [str(value)]


def _normalize_terms(data, plural, singular):
    if plural in data and data[plural] not in (None, ''):
        return _as_list(data[plural], split_scalar=False)
    return _as_list(data.get(singular), split_scalar=True)


@dataclass
class FrontMatter:
    """Well-known front matter keys plus everything else under `extra`."""

    title: Optional[str] = None
    date: Optional[datetime] = None
    permalink: Optional[str] = None
    layout: Optional[str] = None
    collection: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    published: bool = True
    draft: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = ('title', 'date', 'permalink', 'layout', 'collection', 'categories',
                  'category', 'tags', 'tag', 'published', 'draft')

    @classmethod
    def from_dict(cls, data):
        title = data.get('title')
        permalink = data.get('permalink')
        layout = data.get('layout')
        return cls(
            title=str(title) if title is not None else None,
            date=parse_date(data.get('date')),
            permalink=str(permalink) if permalink else None,
            layout=str(layout) if layout else None,
            collection=data.get('collection'),
            categories=_normalize_terms(data, 'categories', 'category'),
            tags=_normalize_terms(data, 'tags', 'tag'),
            published=data.get('published', True) is not False,
            draft=bool(data.get('draft', False)),
            extra={k: v for k, v in data.items() if k not in cls.KNOWN_KEYS},
        )


def split_front_matter(text, path=None):
    """
    Split raw file text into (front matter dict, body).

    Raises:
        FrontMatterError: If the YAML block is malformed or not a mapping
    """
    if text.startswith('\ufeff'):
        text = text[1:]
    match = FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise FrontMatterError(f"Invalid YAML front matter: {e}", file=path, cause=e)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError("Front matter must be a mapping", file=path)
    return data, text[match.end():].lstrip()


class Document:
    """A content file with front matter that goes through the render pipeline."""

    def __init__(self, path, source, doc_type, config=None, collection=None):
        self.source = os.path.abspath(source)
        self.path = os.path.abspath(path)
        self.type = doc_type
        self.config = config or {}

        relative = os.path.relpath(self.path, self.source)
        resolve_within(self.source, relative)
        self.relative_path = to_posix(relative)

        filename = os.path.basename(self.path)
        self.basename, self.extension = os.path.splitext(filename)
        self.extension = self.extension.lower()
        self.collection = collection

        try:
            with open(self.path, 'r', encoding=self.config.get('encoding', 'utf-8')) as f:
                raw = f.read()
            self.mtime = os.path.getmtime(self.path)
        except (IOError, OSError, PermissionError) as e:
            raise FileSystemError(f"Failed to read document: {e}", file=self.relative_path, cause=e)
        except UnicodeDecodeError as e:
            raise FrontMatterError(f"Document is not valid text: {e}", file=self.relative_path, cause=e)

        own_data, self.content = split_front_matter(raw, self.relative_path)
        if doc_type in (DocumentType.PAGE, DocumentType.POST, DocumentType.COLLECTION):
            defaults = frontmatter_defaults(self.config, self.relative_path, doc_type.value, collection)
            self.data = dict(defaults)
            self.data.update(own_data)
        else:
            self.data = own_data

        self.front_matter = FrontMatter.from_dict(self.data)
        if self.front_matter.collection and not self.collection:
            self.collection = str(self.front_matter.collection)

        self.slug = self._derive_slug()
        self.date = self._resolve_date()
        self.url = None
        self.output = None

    def _derive_slug(self):
        explicit = self.data.get('slug')
        if explicit:
            return str(explicit)
        if self.type == DocumentType.POST:
            match = POST_FILENAME_RE.match(self.basename)
            if match:
                return match.group(4)
        return self.basename

    def _filename_date(self):
        match = POST_FILENAME_RE.match(self.basename)
        if not match:
            return None
        try:
            return datetime(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            logger.warning(f"Invalid date in filename: {self.relative_path}")
            return None

    def _resolve_date(self):
        if self.front_matter.date:
            return self.front_matter.date
        if self.type == DocumentType.POST:
            from_name = self._filename_date()
            if from_name:
                return from_name
        return datetime.fromtimestamp(self.mtime)

    @property
    def title(self):
        return self.front_matter.title or self.basename

    @property
    def layout(self):
        return self.front_matter.layout

    @property
    def permalink(self):
        return self.front_matter.permalink

    @property
    def categories(self):
        return self.front_matter.categories

    @property
    def tags(self):
        return self.front_matter.tags

    @property
    def published(self):
        return self.front_matter.published and not self.front_matter.draft

    def is_markdown(self):
        return self.extension in markdown_extensions(self.config)

    def is_html(self):
        return self.extension in ('.html', '.htm')

    @property
    def output_ext(self):
        if self.is_markdown() or self.is_html():
            return '.html'
        return self.extension

    def excerpt(self):
        separator = self.data.get('excerpt_separator') or self.config.get('excerpt_separator') or '\n\n'
        if 'excerpt' in self.data:
            return str(self.data['excerpt'])
        return self.content.split(separator, 1)[0].strip()

    def to_dict(self):
        """Template-facing view of the document."""
        result = dict(self.data)
        result.update({
            'path': self.relative_path,
            'url': self.url,
            'title': self.title,
            'date': self.date,
            'slug': self.slug,
            'categories': list(self.categories),
            'tags': list(self.tags),
            'layout': self.layout,
            'collection': self.collection,
            'published': self.published,
            'content': self.output if self.output is not None else self.content,
            'excerpt': self.excerpt(),
            'ext': self.extension,
        })
        return result

    def __repr__(self):
        return f"<Document {self.type.value} {self.relative_path}>"


class StaticFile:
    """A non-template asset that is copied verbatim."""

    def __init__(self, path, source):
        self.source = os.path.abspath(source)
        self.path = os.path.abspath(path)
        relative = os.path.relpath(self.path, self.source)
        resolve_within(self.source, relative)
        self.relative_path = to_posix(relative)
        try:
            stat = os.stat(self.path)
        except (IOError, OSError, PermissionError) as e:
            raise FileSystemError(f"Failed to stat static file: {e}", file=self.relative_path, cause=e)
        self.size = stat.st_size
        self.mtime = stat.st_mtime
        self.url = '/' + self.relative_path
        self.extension = os.path.splitext(self.path)[1].lower()

    def to_dict(self):
        return {
            'path': self.relative_path,
            'url': self.url,
            'name': os.path.basename(self.path),
            'extname': self.extension,
            'size': self.size,
            'modified_time': datetime.fromtimestamp(self.mtime),
        }

    def __repr__(self):
        return f"<StaticFile {self.relative_path}>"
