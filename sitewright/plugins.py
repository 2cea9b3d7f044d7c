"""
Output generators and the registry the builder runs them from.
"""

import re
import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import formatdate
from typing import Any, List, Optional
from xml.sax.saxutils import escape

DEFAULT_PRIORITY = 50
FEED_LIMIT = 20


@dataclass
class GeneratedFile:
    path: str
    content: str


@dataclass
class GeneratorResult:
    files: List[GeneratedFile] = field(default_factory=list)
    documents: List[Any] = field(default_factory=list)

    @classmethod
    def coerce(cls, value) -> 'GeneratorResult':
        """Accept a GeneratorResult, a {files, documents} dict or None."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            files = []
            for item in value.get('files') or []:
                if isinstance(item, GeneratedFile):
                    files.append(item)
                else:
                    files.append(GeneratedFile(path=item['path'], content=item['content']))
            return cls(files=files, documents=list(value.get('documents') or []))
        raise TypeError(f"Unsupported generator result: {type(value).__name__}")


class Generator:
    """Base class for output generators."""

    name = 'generator'
    priority = DEFAULT_PRIORITY

    def generate(self, site) -> Optional[GeneratorResult]:
        raise NotImplementedError


class PluginRegistry:
    """An explicit set of generators, built fresh for each build."""

    def __init__(self):
        self.generators = []
        self.logger = logging.getLogger('PluginRegistry')

    def register_generator(self, generator):
        if not callable(getattr(generator, 'generate', None)):
            raise TypeError("A generator must provide a generate(site) method")
        self.generators.append(generator)
        return generator

    def get_generators(self):
        # Stable sort keeps registration order for equal priorities
        return sorted(self.generators, key=lambda g: getattr(g, 'priority', DEFAULT_PRIORITY))

    def __len__(self):
        return len(self.generators)

    @classmethod
    def from_config(cls, config):
        registry = cls()
        plugins = [str(name) for name in config.get('plugins') or []]
        for name in plugins:
            generator_class = BUILTIN_GENERATORS.get(name)
            if generator_class is None:
                registry.logger.warning(f"Unknown plugin: {name}")
                continue
            if any(isinstance(g, generator_class) for g in registry.generators):
                continue
            registry.register_generator(generator_class())
        return registry


def site_base_url(site):
    url = (site.config.get('url') or '').rstrip('/')
    baseurl = (site.config.get('baseurl') or '').strip('/')
    return f"{url}/{baseurl}" if baseurl else url


def _page_is_listable(document):
    return document.url and document.data.get('sitemap', True) is not False


class SitemapGenerator(Generator):
    name = 'sitemap'
    priority = 90

    def format_entry(self, url, lastmod):
        """Format a single sitemap entry."""
        return f'''<url>
<loc>{escape(url)}</loc>
<lastmod>{lastmod.strftime('%Y-%m-%d')}</lastmod>
</url>
'''

    def generate(self, site):
        base_url = site_base_url(site)
        sitemap_content = '''<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
'''
        documents = [d for d in site.pages if _page_is_listable(d)]
        documents += [p for p in site.posts if _page_is_listable(p)]
        for name, docs in site.collections.items():
            if site.collection_output_enabled(name):
                documents += [d for d in docs if _page_is_listable(d)]

        for document in documents:
            if not document.url.endswith(('/', '.html', '.htm')):
                continue
            sitemap_content += self.format_entry(base_url + document.url, document.date)

        sitemap_content += '</urlset>\n'
        return GeneratorResult(files=[GeneratedFile('sitemap.xml', sitemap_content)])


class FeedGenerator(Generator):
    name = 'feed'
    priority = 80

    @staticmethod
    def clean_description(raw):
        text = html.unescape(str(raw))
        text = re.sub(r'<.*?>', '', text)
        text = re.sub(r'\s+', ' ', text)
        return escape(text.strip())

    def generate(self, site):
        base_url = site_base_url(site)
        site_name = site.config.get('title') or base_url or 'Site'
        now = datetime.now()
        posts = [p for p in site.posts if p.published and p.date <= now]
        recent_posts = sorted(posts, key=lambda p: p.date, reverse=True)[:FEED_LIMIT]

        rss_content = f'''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>{escape(str(site_name))}</title>
<link>{escape(base_url + '/')}</link>
<description>{escape(str(site.config.get('description') or f'Latest posts from {site_name}'))}</description>
<lastBuildDate>{formatdate()}</lastBuildDate>
'''
        for post in recent_posts:
            link = base_url + (post.url or '')
            rss_content += f'''<item>
<title>{escape(post.title)}</title>
<link>{escape(link)}</link>
<guid>{escape(link)}</guid>
<pubDate>{formatdate(post.date.timestamp(), localtime=True)}</pubDate>
<description>{self.clean_description(post.excerpt())}</description>
</item>
'''
        rss_content += '</channel>\n</rss>\n'
        return GeneratorResult(files=[GeneratedFile('feed.xml', rss_content)])


BUILTIN_GENERATORS = {
    'sitemap': SitemapGenerator,
    'jekyll-sitemap': SitemapGenerator,
    'feed': FeedGenerator,
    'jekyll-feed': FeedGenerator,
}
