"""Tests for post pagination."""

import pytest

from sitewright.paginator import (
    Paginator, generate_pagination, page_path, paginated_file_path, per_page,
)


class Post:
    def __init__(self, title):
        self.title = title

    def to_dict(self):
        return {'title': self.title}


def posts(count):
    return [Post(f"Post {n}") for n in range(1, count + 1)]


class TestGeneratePagination:
    """Test cases for splitting posts into pages."""

    def test_pages_and_links(self):
        """Test page sizes and neighbouring links across three pages."""
        pages = generate_pagination(posts(5), {'paginate': 2})
        assert [len(p.posts) for p in pages] == [2, 2, 1]
        assert all(p.total_posts == 5 and p.total_pages == 3 and p.per_page == 2 for p in pages)

        first, middle, last = pages
        assert (first.previous_page, first.next_page) == (None, 2)
        assert (first.previous_page_path, first.next_page_path) == (None, '/page2/')
        assert (middle.previous_page_path, middle.next_page_path) == ('/', '/page3/')
        assert (last.next_page, last.next_page_path) == (None, None)

    def test_posts_keep_order(self):
        """Test that each page holds a contiguous slice of the input."""
        pages = generate_pagination(posts(3), {'paginate': 2})
        assert [p.title for p in pages[0].posts] == ['Post 1', 'Post 2']
        assert [p.title for p in pages[1].posts] == ['Post 3']

    @pytest.mark.parametrize('value', [None, 0, -3, 'many', True])
    def test_disabled(self, value):
        """Test that missing or invalid paginate values turn pagination off."""
        assert generate_pagination(posts(4), {'paginate': value}) == []
        assert per_page({'paginate': value}) == 0

    def test_no_posts(self):
        """Test that an empty post list produces no pages."""
        assert generate_pagination([], {'paginate': 5}) == []

    def test_to_dict(self):
        """Test the template-facing form."""
        paginator = Paginator(posts=posts(1), total_posts=1, total_pages=1, per_page=10)
        data = paginator.to_dict()
        assert data['posts'] == [{'title': 'Post 1'}]
        assert data['page'] == 1
        assert data['next_page_path'] is None


class TestPaths:
    """Test cases for page URLs and output files."""

    def test_page_path(self):
        """Test URL shapes for the first and later pages."""
        assert page_path(1) == '/'
        assert page_path(3) == '/page3/'
        assert page_path(1, baseurl='/blog/') == '/blog/'
        assert page_path(2, 'posts/:num', '/blog') == '/blog/posts/2/'

    def test_paginated_file_path(self):
        """Test destination files for the first and later pages."""
        assert paginated_file_path(1) == 'index.html'
        assert paginated_file_path(2) == 'page2/index.html'
        assert paginated_file_path(4, '/archive/page-:num.html') == 'archive/page-4.html'
