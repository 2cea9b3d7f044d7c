"""
sitewright - a static site builder.

sitewright reads a Jekyll-style source tree (pages, dated posts, collections,
layouts, includes, data files and theme assets), renders Markdown and HTML
documents through Jinja2 layouts, and writes the result to a destination
directory. Incremental builds re-render only what changed, and the dev
server rebuilds on change and reloads connected browsers.
"""

__version__ = "1.0.0"

from .builder import Builder
from .site import Site
from .errors import SiteError, FileSystemError, BuildError, FrontMatterError, ConfigError, PathTraversalError

__all__ = [
    'Builder', 'Site',
    'SiteError', 'FileSystemError', 'BuildError', 'FrontMatterError', 'ConfigError', 'PathTraversalError',
]
