"""
Exception types raised by the sitewright build pipeline.
"""


class SiteError(Exception):
    """Base class for every error raised while building a site."""

    def __init__(self, message, file=None, cause=None):
        super().__init__(message)
        self.message = message
        self.file = file
        self.cause = cause

    def __str__(self):
        if self.file:
            return f"{self.message} (file: {self.file})"
        return self.message


class FileSystemError(SiteError):
    """Raised when the source or destination tree cannot be read or written."""


class BuildError(SiteError):
    """Raised when a document fails to render or write."""


class FrontMatterError(SiteError):
    """Raised when a content file's front matter cannot be parsed."""


class ConfigError(SiteError):
    """Raised for invalid configuration values."""


class PathTraversalError(SiteError, ValueError):
    """Raised when a path or name would resolve outside its allowed root."""

    def __init__(self, message="Path traversal attempt detected", file=None, cause=None):
        super().__init__(message, file=file, cause=cause)
