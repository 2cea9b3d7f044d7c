"""Tests for URL and output path generation."""

import os
from datetime import datetime

import pytest

from sitewright.document import Document, DocumentType
from sitewright.errors import PathTraversalError
from sitewright.paths import is_path_within_base
from sitewright.urls import UrlGenerator


def make_doc(root, make_file, relative_path, content='', doc_type=DocumentType.PAGE, config=None, collection=None):
    path = make_file(root, relative_path, content)
    return Document(path, root, doc_type, config or {}, collection=collection)


class TestPostUrls:
    """Test cases for post permalink styles."""

    def test_date_style(self, temp_dir, make_file):
        """Test the default date style."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-01-15-hello.md', '---\ntitle: Hello\n---\n',
                       DocumentType.POST)
        assert UrlGenerator({}).generate_url(doc) == '/2024/01/15/hello.html'

    def test_date_style_with_categories(self, temp_dir, make_file):
        """Test that categories prefix the date path."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-01-15-hello.md', '---\ncategories: [news, tech]\n---\n',
                       DocumentType.POST)
        assert UrlGenerator({'permalink': 'date'}).generate_url(doc) == '/news/tech/2024/01/15/hello.html'

    @pytest.mark.parametrize('style,expected', [
        ('pretty', '/2024/01/15/hello/'),
        ('ordinal', '/2024/015/hello.html'),
        ('weekdate', '/2024/W03/1/hello.html'),
        ('none', '/hello.html'),
        ('/blog/:year/:slug/', '/blog/2024/hello/'),
    ])
    def test_other_styles(self, temp_dir, make_file, style, expected):
        """Test the remaining built-in styles and a custom pattern."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-01-15-hello.md', 'x', DocumentType.POST)
        assert UrlGenerator({'permalink': style}).generate_url(doc) == expected

    def test_explicit_permalink_tokens(self, temp_dir, make_file):
        """Test placeholder expansion in a front matter permalink."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-03-09-tokens.md',
                       '---\ndate: 2024-03-09 14:05:07\npermalink: /:short_year/:long_month/:hour-:minute-:second/:title\n---\n',
                       DocumentType.POST)
        assert UrlGenerator({}).generate_url(doc) == '/24/march/14-05-07/tokens'

    def test_weekdate_day_number(self, temp_dir, make_file):
        """Test that weekdate uses a numeric day of week with Sunday as 0."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-01-21-sunday.md', 'x', DocumentType.POST)
        assert UrlGenerator({'permalink': 'weekdate'}).generate_url(doc) == '/2024/W03/0/sunday.html'

    def test_month_names_lowercase(self, temp_dir, make_file):
        """Test that month name tokens are lower case."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-01-15-hello.md', '---\npermalink: /:short_month/:title/\n---\n',
                       DocumentType.POST)
        assert UrlGenerator({}).generate_url(doc) == '/jan/hello/'

    def test_unknown_token_left_in_place(self, temp_dir, make_file):
        """Test that unrecognised tokens survive expansion."""
        doc = make_doc(temp_dir, make_file, '_posts/2024-01-15-hello.md', '---\npermalink: /:nope/:title/\n---\n',
                       DocumentType.POST)
        assert UrlGenerator({}).generate_url(doc) == '/:nope/hello/'


class TestPageUrls:
    """Test cases for page URLs."""

    def test_markdown_page(self, temp_dir, make_file):
        """Test that Markdown extensions become .html."""
        doc = make_doc(temp_dir, make_file, 'docs/guide.md', 'x')
        assert UrlGenerator({}).generate_url(doc) == '/docs/guide.html'

    def test_index_collapses(self, temp_dir, make_file):
        """Test that index pages collapse to their directory."""
        root_index = make_doc(temp_dir, make_file, 'index.html', 'x')
        nested_index = make_doc(temp_dir, make_file, 'docs/index.md', 'x')
        generator = UrlGenerator({})
        assert generator.generate_url(root_index) == '/'
        assert generator.generate_url(nested_index) == '/docs/'

    def test_non_markup_extension_kept(self, temp_dir, make_file):
        """Test that a page like feed.xml keeps its extension."""
        doc = make_doc(temp_dir, make_file, 'feed.xml', '---\n---\n<rss/>')
        generator = UrlGenerator({})
        assert generator.generate_url(doc) == '/feed.xml'
        doc.url = generator.generate_url(doc)
        assert generator.generate_output_path(doc) == 'feed.xml'

    def test_explicit_permalink(self, temp_dir, make_file):
        """Test a page with a pretty permalink."""
        doc = make_doc(temp_dir, make_file, 'about.md', '---\npermalink: /custom/about-us/\n---\n')
        generator = UrlGenerator({})
        doc.url = generator.generate_url(doc)
        assert doc.url == '/custom/about-us/'
        assert generator.generate_output_path(doc) == 'custom/about-us/index.html'


class TestCollectionUrls:
    """Test cases for collection document URLs."""

    def test_default_collection_url(self, temp_dir, make_file):
        """Test the default collection pattern."""
        config = {'collections': {'recipes': {'output': True}}}
        doc = make_doc(temp_dir, make_file, '_recipes/cake.md', 'x', DocumentType.COLLECTION, config, 'recipes')
        assert UrlGenerator(config).generate_url(doc) == '/recipes/cake.html'

    def test_default_collection_url_uses_slug(self, temp_dir, make_file):
        """Test that the default pattern uses the slug and drops subdirectories."""
        config = {'collections': {'recipes': {}}}
        doc = make_doc(temp_dir, make_file, '_recipes/desserts/cake.md', '---\nslug: choc\n---\nx',
                       DocumentType.COLLECTION, config, 'recipes')
        assert UrlGenerator(config).generate_url(doc) == '/recipes/choc.html'

    def test_collection_permalink(self, temp_dir, make_file):
        """Test a collection-level permalink pattern."""
        config = {'collections': {'recipes': {'permalink': '/food/:path/'}}}
        doc = make_doc(temp_dir, make_file, '_recipes/desserts/cake.md', 'x', DocumentType.COLLECTION,
                       config, 'recipes')
        assert UrlGenerator(config).generate_url(doc) == '/food/desserts/cake/'


class TestOutputPaths:
    """Test cases for URL to output path mapping and containment."""

    @pytest.mark.parametrize('url,expected', [
        ('/', 'index.html'),
        ('', 'index.html'),
        ('/about/', 'about/index.html'),
        ('/about.html', 'about.html'),
        ('/page.htm', 'page.htm'),
        ('/about', 'about/index.html'),
        ('/2024/01/15/hello.html', '2024/01/15/hello.html'),
    ])
    def test_url_to_output_path(self, url, expected):
        """Test the URL to file mapping."""
        assert UrlGenerator.url_to_output_path(url) == expected

    @pytest.mark.parametrize('permalink', [
        '../../../etc/passwd',
        '/../../outside.html',
        '..\\..\\windows\\system.ini',
        '/a/../../../../b/',
        '/',
        '....//....//x',
        '/./././',
    ])
    def test_traversal_permalinks_stay_inside(self, temp_dir, make_file, permalink):
        """Test that any permalink maps inside the destination."""
        destination = os.path.join(temp_dir, '_site')
        doc = make_doc(temp_dir, make_file, 'evil.md', f"---\npermalink: '{permalink}'\n---\n")
        generator = UrlGenerator({})
        doc.url = generator.generate_url(doc)
        target = generator.resolve_output_path(destination, generator.generate_output_path(doc))
        assert is_path_within_base(target, destination)
        assert target != os.path.abspath(destination)

    def test_empty_permalink_uses_default(self, temp_dir, make_file):
        """Test that an empty permalink falls back to the page URL."""
        doc = make_doc(temp_dir, make_file, 'about.md', "---\npermalink: ''\n---\n")
        assert UrlGenerator({}).generate_url(doc) == '/about.html'

    def test_resolve_output_path_rejects_escape(self, temp_dir):
        """Test the final containment check."""
        destination = os.path.join(temp_dir, '_site')
        with pytest.raises(PathTraversalError):
            UrlGenerator.resolve_output_path(destination, '../escape.html')
        with pytest.raises(PathTraversalError):
            UrlGenerator.resolve_output_path(destination, '')
