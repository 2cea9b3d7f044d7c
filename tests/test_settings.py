"""Tests for configuration loading, validation and front matter defaults."""

import json
import os
import pytest

from sitewright.errors import ConfigError
from sitewright.settings import (
    SiteSettings, merge_config, normalize_collections, markdown_extensions,
    validate_settings, frontmatter_defaults,
)


class TestSiteSettings:
    """Test cases for SiteSettings."""

    def test_defaults_without_config_file(self, temp_dir):
        """Test that defaults are returned when no config file exists."""
        settings = SiteSettings(temp_dir).load_settings()
        assert settings['destination'] == '_site'
        assert settings['permalink'] == 'date'
        assert '.git' in settings['keep_files']

    def test_yaml_config_file(self, temp_dir, make_file):
        """Test loading _config.yml and remembering its path."""
        make_file(temp_dir, '_config.yml', 'title: Blog\nexclude:\n  - drafts\n')
        loader = SiteSettings(temp_dir)
        settings = loader.load_settings()
        assert settings['title'] == 'Blog'
        assert 'drafts' in settings['exclude']
        assert 'node_modules' in settings['exclude']
        assert loader.config_file_path == os.path.abspath(os.path.join(temp_dir, '_config.yml'))

    def test_yml_preferred_over_json(self, temp_dir, make_file):
        """Test the config file search order."""
        make_file(temp_dir, '_config.json', json.dumps({'title': 'From JSON'}))
        make_file(temp_dir, '_config.yml', 'title: From YAML\n')
        assert SiteSettings(temp_dir).load_settings()['title'] == 'From YAML'

    def test_json_config_file(self, temp_dir, make_file):
        """Test loading a JSON config file."""
        make_file(temp_dir, '_config.json', json.dumps({'title': 'From JSON', 'port': 5000}))
        settings = SiteSettings(temp_dir).load_settings()
        assert settings['port'] == 5000

    def test_invalid_yaml_raises(self, temp_dir, make_file):
        """Test that malformed YAML raises ConfigError with the file context."""
        path = make_file(temp_dir, '_config.yml', 'title: [unclosed\n')
        with pytest.raises(ConfigError) as exc_info:
            SiteSettings(temp_dir).load_settings()
        assert path in str(exc_info.value)

    def test_missing_explicit_config(self, temp_dir):
        """Test that an explicitly requested missing config file is an error."""
        with pytest.raises(ConfigError):
            SiteSettings(temp_dir, config_file=os.path.join(temp_dir, 'nope.yml')).load_settings()

    def test_merge_with_args(self, temp_dir):
        """Test that explicit arguments override and None values are ignored."""
        loader = SiteSettings(temp_dir)
        loader.load_settings()
        merged = loader.merge_with_args({'port': 8080, 'host': None})
        assert merged['port'] == 8080
        assert merged['host'] == 'localhost'


class TestMergeConfig:
    """Test cases for layering defaults, theme and site configuration."""

    def test_site_wins_over_theme(self):
        """Test that site keys override theme keys which override defaults."""
        merged = merge_config({'title': 'Site'}, {'title': 'Theme', 'author': 'Theme Author'})
        assert merged['title'] == 'Site'
        assert merged['author'] == 'Theme Author'

    def test_exclude_is_deduplicated_union(self):
        """Test that exclude lists are combined without duplicates."""
        merged = merge_config({'exclude': ['vendor', 'scripts']})
        assert merged['exclude'].count('vendor') == 1
        assert 'scripts' in merged['exclude']
        assert '_site' in merged['exclude']

    def test_collections_list_normalized(self):
        """Test that a list of collection names becomes a mapping."""
        assert normalize_collections(['recipes', 'team']) == {'recipes': {}, 'team': {}}
        assert list(merge_config({'collections': ['b', 'a']})['collections']) == ['b', 'a']

    def test_markdown_extensions(self):
        """Test parsing of the markdown_ext setting."""
        assert markdown_extensions({'markdown_ext': 'md, markdown'}) == ['.md', '.markdown']
        assert '.mkd' in markdown_extensions({})


class TestValidateSettings:
    """Test cases for validate_settings."""

    def test_valid_defaults(self, temp_dir):
        """Test that default settings validate cleanly."""
        settings = merge_config({'source': temp_dir})
        errors, warnings = validate_settings(settings)
        assert errors == []

    def test_bad_port_and_theme(self, temp_dir):
        """Test that a bad port and a traversal theme name are reported."""
        settings = merge_config({'source': temp_dir, 'port': 70000, 'theme': '../../etc'})
        errors, _ = validate_settings(settings)
        assert any('port' in e for e in errors)
        assert any('theme' in e for e in errors)

    def test_absolute_theme_with_traversal(self, temp_dir):
        """Test that an absolute theme path with '..' segments is reported."""
        settings = merge_config({'source': temp_dir, 'theme': '/srv/site/../../etc'})
        errors, _ = validate_settings(settings)
        assert any('theme' in e for e in errors)

    @pytest.mark.parametrize('value', [0, -1, 'ten', True])
    def test_bad_paginate(self, temp_dir, value):
        """Test that paginate must be a positive integer."""
        errors, _ = validate_settings(merge_config({'source': temp_dir, 'paginate': value}))
        assert any('paginate' in e for e in errors)

    def test_sass_settings(self, temp_dir):
        """Test that sass options merge over defaults and an unknown style only warns."""
        settings = merge_config({'source': temp_dir, 'sass': {'style': 'fancy'}})
        assert settings['sass']['sass_dir'] == '_sass'
        errors, warnings = validate_settings(settings)
        assert errors == []
        assert any('fancy' in w for w in warnings)

    def test_destination_equal_to_source(self, temp_dir):
        """Test that building into the source directory is rejected."""
        settings = merge_config({'source': temp_dir, 'destination': '.'})
        errors, _ = validate_settings(settings)
        assert errors

    def test_unexcluded_destination_warns(self, temp_dir):
        """Test that a destination inside source that is not excluded is a warning."""
        settings = merge_config({'source': temp_dir, 'destination': 'public'})
        errors, warnings = validate_settings(settings)
        assert errors == []
        assert any('public' in w for w in warnings)


class TestFrontMatterDefaults:
    """Test cases for scoped front matter defaults."""

    def test_scopes_apply_in_order(self):
        """Test path and type scopes with later entries overriding earlier ones."""
        config = {'defaults': [
            {'scope': {'path': ''}, 'values': {'layout': 'default', 'meta': {'a': 1}}},
            {'scope': {'path': '', 'type': 'posts'}, 'values': {'layout': 'post', 'meta': {'b': 2}}},
            {'scope': {'path': 'docs'}, 'values': {'layout': 'doc'}},
        ]}
        post = frontmatter_defaults(config, '_posts/2024-01-01-a.md', 'post')
        assert post == {'layout': 'post', 'meta': {'a': 1, 'b': 2}}

        page = frontmatter_defaults(config, 'docs/intro.md', 'page')
        assert page['layout'] == 'doc'

        other = frontmatter_defaults(config, 'about.md', 'page')
        assert other['layout'] == 'default'

    def test_collection_type_and_glob(self):
        """Test collection-name type scopes and glob paths."""
        config = {'defaults': [
            {'scope': {'type': 'recipes'}, 'values': {'layout': 'recipe'}},
            {'scope': {'path': 'guides/*.md'}, 'values': {'toc': True}},
        ]}
        assert frontmatter_defaults(config, '_recipes/cake.md', 'collection', 'recipes') == {'layout': 'recipe'}
        assert frontmatter_defaults(config, 'guides/start.md', 'page') == {'toc': True}
        assert frontmatter_defaults(config, 'about.md', 'page') == {}
