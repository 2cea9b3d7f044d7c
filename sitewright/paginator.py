"""
Post pagination for the site's root index page.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_PAGINATE_PATH = '/page:num/'


@dataclass
class Paginator:
    """State of one paginated page, exposed to templates as `paginator`."""

    posts: List[Any] = field(default_factory=list)
    total_posts: int = 0
    total_pages: int = 0
    page: int = 1
    per_page: int = 0
    previous_page: Optional[int] = None
    next_page: Optional[int] = None
    previous_page_path: Optional[str] = None
    next_page_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'posts': [post.to_dict() for post in self.posts],
            'total_posts': self.total_posts,
            'total_pages': self.total_pages,
            'page': self.page,
            'per_page': self.per_page,
            'previous_page': self.previous_page,
            'next_page': self.next_page,
            'previous_page_path': self.previous_page_path,
            'next_page_path': self.next_page_path,
        }


def per_page(config) -> int:
    """Return the configured posts per page, or 0 when pagination is off."""
    value = config.get('paginate')
    if isinstance(value, bool):
        return 0
    try:
        value = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(value, 0)


def page_path(page_number, paginate_path=DEFAULT_PAGINATE_PATH, baseurl=''):
    """URL of a page number; page 1 is the site root."""
    base = (baseurl or '').rstrip('/')
    if page_number == 1:
        return base + '/'
    path = str(paginate_path or DEFAULT_PAGINATE_PATH).replace(':num', str(page_number))
    if not path.startswith('/'):
        path = '/' + path
    if not path.endswith('/'):
        path += '/'
    return base + path


def paginated_file_path(page_number, paginate_path=DEFAULT_PAGINATE_PATH):
    """Destination-relative file a page number is written to."""
    if page_number == 1:
        return 'index.html'
    path = str(paginate_path or DEFAULT_PAGINATE_PATH).replace(':num', str(page_number)).strip('/')
    if path.lower().endswith(('.html', '.htm')):
        return path
    return path + '/index.html'


def generate_pagination(posts, config) -> List[Paginator]:
    """
    Split posts into pages.

    Args:
        posts: Posts to paginate, already filtered and sorted newest first
        config: Site configuration (`paginate`, `paginate_path`, `baseurl`)

    Returns:
        One Paginator per page, or an empty list when pagination is off
    """
    size = per_page(config)
    if not size:
        return []

    paginate_path = config.get('paginate_path') or DEFAULT_PAGINATE_PATH
    baseurl = config.get('baseurl') or ''
    total_posts = len(posts)
    total_pages = math.ceil(total_posts / size)

    paginators = []
    for number in range(1, total_pages + 1):
        start = (number - 1) * size
        has_previous = number > 1
        has_next = number < total_pages
        paginators.append(Paginator(
            posts=list(posts[start:start + size]),
            total_posts=total_posts,
            total_pages=total_pages,
            page=number,
            per_page=size,
            previous_page=number - 1 if has_previous else None,
            next_page=number + 1 if has_next else None,
            previous_page_path=page_path(number - 1, paginate_path, baseurl) if has_previous else None,
            next_page_path=page_path(number + 1, paginate_path, baseurl) if has_next else None,
        ))
    return paginators
