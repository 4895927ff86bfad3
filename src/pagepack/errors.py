"""
Error types for pagepack builds.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class PagepackError(Exception):
    """Base exception for all pagepack errors."""

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}\n{self.message}"
        return self.message


class ConfigError(PagepackError):
    """
    Raised when the build configuration is invalid.

    Examples:
    - Unreadable or malformed pagepack.toml
    - Unknown minify mode
    """

    pass


class ResolveError(PagepackError):
    """
    Raised when an import cannot be resolved to a module.

    Examples:
    - Relative import pointing at a missing file
    - Root-absolute request with no matching file
    """

    pass


class BundleError(PagepackError):
    """
    Raised when the bundle engine fails.

    Examples:
    - Entry document missing
    - Stage hook raising during load or transform
    """

    pass


class MissingStylesheetError(BundleError):
    """Raised when styles were extracted but no stylesheet artifact exists."""

    pass


class CompilerServiceError(PagepackError):
    """
    Raised when an external compiler fails.

    Examples:
    - esbuild or terser binary not found
    - Non-zero exit or timeout while compiling
    """

    pass


@dataclass
class ErrorContext:
    """
    Source location for an error.

    Attributes:
        file: Path to the module where the error occurred
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """

    file: Path
    line: int = 1
    column: int = 1

    def format(self) -> str:
        """Format as ``file:line:column``."""
        return f"{self.file}:{self.line}:{self.column}"
