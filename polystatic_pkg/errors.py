"""
Exception types raised while loading, resolving, rendering and writing a site.
"""

from typing import Optional


class PolystaticError(Exception):
    """Base class for every error Polystatic raises on purpose."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class ContentIOError(PolystaticError):
    """A file could not be read or written."""


class ParseError(PolystaticError):
    """Front matter or a configuration document is malformed."""


class PathError(PolystaticError):
    """A path escapes the content root or lacks the expected structure."""


class TemplateError(PolystaticError):
    """A layout is missing or the template engine failed."""


class BuildError(PolystaticError):
    """A build stage failed; the build stops at this stage."""

    def __init__(self, stage: str, message: str, path: Optional[str] = None):
        super().__init__(message, path)
        self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"
