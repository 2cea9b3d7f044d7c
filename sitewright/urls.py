"""
Permalink and output-path generation.
"""

import os
import re
import logging

from .document import DocumentType
from .errors import PathTraversalError
from .paths import sanitize_permalink, is_path_within_base, to_posix

PERMALINK_STYLES = {
    'date': '/:categories/:year/:month/:day/:title.html',
    'pretty': '/:categories/:year/:month/:day/:title/',
    'ordinal': '/:year/:y_day/:title.html',
    'weekdate': '/:year/W:week/:weekday/:title.html',
    'none': '/:title.html',
}

COLLECTION_PERMALINK = '/:collection/:slug.html'

TOKEN_RE = re.compile(r':([a-z_]+)')

HTML_EXTENSIONS = ('.html', '.htm')


class UrlGenerator:
    """Computes document URLs and maps URLs to destination-relative files."""

    def __init__(self, config=None):
        self.config = config or {}
        self.logger = logging.getLogger('UrlGenerator')

    def generate_url(self, document):
        """Return the root-relative URL for a document, always starting with '/'."""
        if document.permalink:
            return sanitize_permalink(self.expand(document.permalink, document))

        if document.type == DocumentType.POST:
            style = self.config.get('permalink') or 'date'
            pattern = PERMALINK_STYLES.get(style, style)
            return sanitize_permalink(self.expand(pattern, document))

        if document.type == DocumentType.COLLECTION:
            options = (self.config.get('collections') or {}).get(document.collection) or {}
            pattern = options.get('permalink') or COLLECTION_PERMALINK
            pattern = PERMALINK_STYLES.get(pattern, pattern)
            return sanitize_permalink(self.expand(pattern, document))

        return self.page_url(document)

    def page_url(self, document):
        relative = document.relative_path
        directory, filename = os.path.split(relative)
        basename = os.path.splitext(filename)[0]
        if basename == 'index' and document.output_ext == '.html':
            if not directory:
                return '/'
            return sanitize_permalink(directory + '/')
        return sanitize_permalink(f"{directory}/{basename}{document.output_ext}")

    def placeholders(self, document):
        dt = document.date
        iso_year, iso_week, iso_weekday = dt.isocalendar()
        categories = '/'.join(c.strip('/') for c in document.categories if c.strip('/'))
        collection_path = ''
        if document.type == DocumentType.COLLECTION and document.collection:
            prefix = f"_{document.collection}/"
            collection_path = document.relative_path
            if collection_path.startswith(prefix):
                collection_path = collection_path[len(prefix):]
            collection_path = os.path.splitext(collection_path)[0]
        return {
            'year': f"{dt.year:04d}",
            'short_year': dt.strftime('%y'),
            'month': f"{dt.month:02d}",
            'i_month': str(dt.month),
            'short_month': dt.strftime('%b').lower(),
            'long_month': dt.strftime('%B').lower(),
            'day': f"{dt.day:02d}",
            'i_day': str(dt.day),
            'y_day': dt.strftime('%j'),
            'hour': f"{dt.hour:02d}",
            'minute': f"{dt.minute:02d}",
            'second': f"{dt.second:02d}",
            'week': f"{iso_week:02d}",
            'w_year': str(iso_year),
            'w_day': str(iso_weekday),
            # Sunday is 0
            'weekday': str(iso_weekday % 7),
            'short_day': dt.strftime('%a'),
            'long_day': dt.strftime('%A'),
            'title': document.slug,
            'slug': document.slug,
            'name': document.basename,
            'categories': categories,
            'collection': document.collection or '',
            'path': collection_path or document.basename,
            'output_ext': document.output_ext,
        }

    def expand(self, pattern, document):
        """Substitute :token placeholders; unknown tokens are left in place."""
        values = self.placeholders(document)

        def replace(match):
            token = match.group(1)
            if token in values:
                return values[token]
            return match.group(0)

        return TOKEN_RE.sub(replace, str(pattern))

    @staticmethod
    def url_to_output_path(url, keep_extension=None):
        """
        Map a URL to a destination-relative file path.

        Empty paths and paths ending in '/' get 'index.html'. HTML files and
        files ending in keep_extension are used as-is; anything else becomes
        a directory with an index.html inside.
        """
        path = sanitize_permalink(url).lstrip('/')
        if not path or path.endswith('/'):
            return path + 'index.html'
        lowered = path.lower()
        if lowered.endswith(HTML_EXTENSIONS):
            return path
        if keep_extension and keep_extension not in HTML_EXTENSIONS and lowered.endswith(keep_extension.lower()):
            return path
        return path + '/index.html'

    def generate_output_path(self, document):
        url = document.url if document.url is not None else self.generate_url(document)
        return self.url_to_output_path(url, document.output_ext)

    @staticmethod
    def resolve_output_path(destination, relative_path):
        """
        Join an output path under destination and verify it stays inside.

        Raises:
            PathTraversalError: If the normalized path escapes destination
        """
        destination = os.path.abspath(destination)
        target = os.path.normpath(os.path.join(destination, relative_path))
        if target == destination or not is_path_within_base(target, destination):
            raise PathTraversalError(f"Output path escapes destination: {relative_path}", file=to_posix(relative_path))
        return target
