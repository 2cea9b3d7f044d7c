"""Tests for the site reader."""

import os
from unittest.mock import patch

import pytest

from sitewright.document import DocumentType
from sitewright.errors import FileSystemError
from sitewright.site import Site


class TestSiteRead:
    """Test cases for reading a source tree."""

    def test_classification(self, site_dir):
        """Test that files land in the right buckets."""
        site = Site(site_dir, {'title': 'Test Site'}).read()
        assert [p.relative_path for p in site.pages] == ['about.md', 'index.html']
        assert [p.relative_path for p in site.posts] == ['_posts/2024-01-15-hello.md']
        assert set(site.layouts) >= {'default', 'default.html', 'post', 'post.html'}
        assert 'footer.html' in site.includes
        assert site.data['authors']['alice']['name'] == 'Alice'
        assert [f.relative_path for f in site.static_files] == ['assets/css/style.css']

    def test_config_and_underscore_files_skipped(self, site_dir):
        """Test that _config.yml and underscore directories are not pages or static files."""
        site = Site(site_dir, {}).read()
        paths = [d.relative_path for d in site.pages] + [f.relative_path for f in site.static_files]
        assert not any(p.startswith('_') for p in paths)

    def test_hidden_and_excluded_files(self, site_dir, make_file):
        """Test that hidden and excluded files are skipped."""
        make_file(site_dir, '.env', 'SECRET=1')
        make_file(site_dir, 'node_modules/pkg/index.js', 'x')
        make_file(site_dir, 'scripts/build.sh', 'x')
        make_file(site_dir, '.htaccess', 'Options -Indexes')
        site = Site(site_dir, {'exclude': ['scripts']}).read()
        static = [f.relative_path for f in site.static_files]
        assert '.env' not in static
        assert 'node_modules/pkg/index.js' not in static
        assert 'scripts/build.sh' not in static
        assert '.htaccess' in static

    def test_destination_not_read(self, site_dir, make_file):
        """Test that a previous build output inside the source is ignored."""
        make_file(site_dir, 'public/old.html', '<p>old</p>')
        site = Site(site_dir, {'destination': 'public'}).read()
        assert all(not d.relative_path.startswith('public/') for d in site.pages)

    def test_non_markup_file_with_front_matter_is_page(self, site_dir, make_file):
        """Test that front matter turns any file into a page."""
        make_file(site_dir, 'feed.xml', '---\nlayout: null\n---\n<rss></rss>')
        make_file(site_dir, 'robots.txt', 'User-agent: *')
        site = Site(site_dir, {}).read()
        assert 'feed.xml' in [p.relative_path for p in site.pages]
        assert 'robots.txt' in [f.relative_path for f in site.static_files]

    def test_stylesheets_with_front_matter(self, site_dir, make_file):
        """Test that SCSS with front matter is held for compilation and plain SCSS is static."""
        make_file(site_dir, 'assets/main.scss', '---\n---\n.a { b: c; }')
        make_file(site_dir, 'assets/plain.scss', '.a { b: c; }')
        site = Site(site_dir, {}).read()
        assert [d.relative_path for d in site.sass_files] == ['assets/main.scss']
        assert 'assets/main.scss' not in [p.relative_path for p in site.pages]
        assert 'assets/plain.scss' in [f.relative_path for f in site.static_files]

    def test_posts_sorted_newest_first(self, site_dir, make_file):
        """Test post ordering."""
        make_file(site_dir, '_posts/2023-05-01-older.md', 'old')
        make_file(site_dir, '_posts/2024-06-01-newer.md', 'new')
        site = Site(site_dir, {}).read()
        assert [p.slug for p in site.posts] == ['newer', 'hello', 'older']

    def test_bad_front_matter_skipped(self, site_dir, make_file):
        """Test that a malformed document is skipped without failing the read."""
        make_file(site_dir, 'broken.md', '---\ntitle: [oops\n---\nbody')
        site = Site(site_dir, {}).read()
        assert 'broken.md' not in [p.relative_path for p in site.pages]
        assert 'about.md' in [p.relative_path for p in site.pages]

    def test_collections(self, site_dir, make_file):
        """Test collection reading in configuration order."""
        make_file(site_dir, '_recipes/cake.md', '---\ntitle: Cake\n---\nMix.')
        make_file(site_dir, '_recipes/bread.md', '---\ntitle: Bread\n---\nKnead.')
        make_file(site_dir, '_team/alice.md', 'Alice')
        site = Site(site_dir, {'collections': {'team': {}, 'recipes': {'output': False}}}).read()
        assert list(site.collections) == ['team', 'recipes']
        recipes = site.get_collection('recipes')
        assert [d.relative_path for d in recipes] == ['_recipes/bread.md', '_recipes/cake.md']
        assert all(d.type == DocumentType.COLLECTION and d.collection == 'recipes' for d in recipes)
        assert not site.collection_output_enabled('recipes')
        assert site.collection_output_enabled('team')

    def test_data_formats(self, site_dir, make_file):
        """Test JSON, CSV and nested data directories."""
        make_file(site_dir, '_data/settings.json', '{"dark": true}')
        make_file(site_dir, '_data/people.csv', 'name,role\nAnn,dev\nBob,ops\n')
        make_file(site_dir, '_data/nav/main.yml', '- home\n- blog\n')
        make_file(site_dir, '_data/broken.yml', 'a: [\n')
        site = Site(site_dir, {}).read()
        assert site.data['settings'] == {'dark': True}
        assert site.data['people'] == [{'name': 'Ann', 'role': 'dev'}, {'name': 'Bob', 'role': 'ops'}]
        assert site.data['nav']['main'] == ['home', 'blog']
        assert 'broken' not in site.data

    def test_read_is_repeatable(self, site_dir):
        """Test that reading twice does not duplicate documents."""
        site = Site(site_dir, {})
        site.read()
        site.read()
        assert len(site.posts) == 1
        assert len(site.pages) == 2

    def test_missing_source(self, temp_dir):
        """Test that a missing source directory is a FileSystemError."""
        with pytest.raises(FileSystemError):
            Site(os.path.join(temp_dir, 'missing'), {}).read()

    def test_small_batches(self, site_dir, make_file):
        """Test that batching keeps every file and preserves order."""
        for i in range(7):
            make_file(site_dir, f'notes/n{i}.md', f'note {i}')
        with patch('sitewright.site.DOCUMENT_BATCH_SIZE', 2), patch('sitewright.site.STATIC_BATCH_SIZE', 1):
            site = Site(site_dir, {}).read()
        notes = [p.relative_path for p in site.pages if p.relative_path.startswith('notes/')]
        assert notes == [f'notes/n{i}.md' for i in range(7)]


class TestSiteTheme:
    """Test cases for theme integration in the reader."""

    @pytest.fixture
    def themed_site(self, site_dir, make_file):
        theme = os.path.join(site_dir, '_themes', 'basic')
        make_file(theme, '_layouts/default.html', 'THEME {{ content }}')
        make_file(theme, '_layouts/page.html', 'THEME PAGE {{ content }}')
        make_file(theme, '_includes/footer.html', 'theme footer')
        make_file(theme, '_data/authors.yml', 'alice:\n  name: Theme Alice\n  email: a@example.com\nbob:\n  name: Bob\n')
        make_file(theme, '_config.yml', 'title: Theme Title\nauthor: Theme Author\n')
        return site_dir

    def test_site_overrides_theme(self, themed_site):
        """Test layout/include precedence and theme config overlay."""
        site = Site(themed_site, {'theme': 'basic', 'title': 'Mine'}).read()
        assert site.get_layout('default').path == os.path.join(themed_site, '_layouts', 'default.html')
        assert site.get_layout('page').path.endswith(os.path.join('basic', '_layouts', 'page.html'))
        assert site.get_include('footer.html').path == os.path.join(themed_site, '_includes', 'footer.html')
        assert site.config['title'] == 'Mine'
        assert site.config['author'] == 'Theme Author'

    def test_theme_data_merged_under_site(self, themed_site):
        """Test that site data wins and theme data fills gaps."""
        site = Site(themed_site, {'theme': 'basic'}).read()
        assert site.data['authors']['alice'] == {'name': 'Alice', 'email': 'a@example.com'}
        assert site.data['authors']['bob'] == {'name': 'Bob'}

    def test_to_dict(self, themed_site):
        """Test the template-facing site dictionary."""
        site = Site(themed_site, {'theme': 'basic', 'collections': ['team']}).read()
        data = site.to_dict()
        assert data['title'] == 'Theme Title'
        assert len(data['posts']) == 1
        assert data['collections'] == {'team': []}
        assert data['data']['authors']['bob']['name'] == 'Bob'

    def test_layout_lookup_follows_theme_resolver(self, themed_site):
        """Test that layout and include accessors go through the theme's name resolution."""
        site = Site(themed_site, {'theme': 'basic'}).read()
        assert site.get_layout('page.html') is site.get_layout('page')
        assert site.get_layout('../_config') is None
        assert site.get_include('../_layouts/default.html') is None

        theme_page = os.path.join(themed_site, '_themes', 'basic', '_layouts', 'page.html')
        with patch.object(site.theme, 'resolve_layout', return_value=theme_page) as resolve:
            assert site.get_layout('default').path == theme_page
        resolve.assert_called_once_with('default')
