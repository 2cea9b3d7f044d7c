"""
SCSS and Sass compilation through libsass.
"""

import os
import logging

import sass

from .errors import BuildError
from .settings import SASS_STYLES

SASS_EXTENSIONS = ('.scss', '.sass')


def is_sass_file(path):
    return os.path.splitext(path)[1].lower() in SASS_EXTENSIONS


def css_output_path(relative_path):
    """Destination-relative path of the stylesheet compiled from a .scss/.sass file."""
    return os.path.splitext(relative_path)[0] + '.css'


class SassProcessor:
    """
    Compiles stylesheets with the site's sass settings.

    Partials are looked up in the site sass directory, then the theme's, then
    any configured `load_paths`, then the directory of the file itself.
    """

    def __init__(self, source, config, theme):
        self.source = os.path.abspath(source)
        self.config = config
        self.theme = theme
        self.logger = logging.getLogger('SassProcessor')

    @property
    def options(self):
        return self.config.get('sass') or {}

    @property
    def output_style(self):
        style = self.options.get('style') or 'expanded'
        if style not in SASS_STYLES:
            self.logger.warning(f"Unknown sass style '{style}', using expanded")
            return 'expanded'
        return style

    def include_paths(self, path=None):
        paths = list(self.theme.get_sass_directories())
        for load_path in self.options.get('load_paths') or []:
            full = os.path.abspath(os.path.join(self.source, str(load_path)))
            if os.path.isdir(full):
                paths.append(full)
        if path:
            paths.append(os.path.dirname(os.path.abspath(path)))
        return paths

    def process(self, path, content):
        """
        Compile stylesheet source.

        Args:
            path: File the content came from; picks the syntax and adds its directory to the load paths
            content: SCSS or indented Sass source

        Returns:
            The compiled CSS

        Raises:
            BuildError: The stylesheet failed to compile
        """
        try:
            return sass.compile(
                string=content,
                include_paths=self.include_paths(path),
                output_style=self.output_style,
                indented=path.lower().endswith('.sass'),
            )
        except sass.CompileError as e:
            raise BuildError(f"Sass compilation failed: {e}", file=path, cause=e)
