"""
pagepack - production builds for web applications.

Bundles a project from its ``index.html`` through an ordered pipeline of
transform stages and writes content-hashed artifacts, optionally as a
server-side bundle.
"""

__version__ = "0.1.0"

from .build import build, create_build_pipeline, ssr_build
from .config import BuildConfig, load_config
from .errors import (
    BundleError,
    CompilerServiceError,
    ConfigError,
    ErrorContext,
    MissingStylesheetError,
    PagepackError,
    ResolveError,
)
from .externals import resolve_external
from .models import BuildResult, OutputAsset, OutputChunk, WriteRecord, WriteType

__all__ = [
    "__version__",
    # Build
    "build",
    "ssr_build",
    "create_build_pipeline",
    "BuildConfig",
    "load_config",
    "resolve_external",
    # Results
    "BuildResult",
    "OutputAsset",
    "OutputChunk",
    "WriteRecord",
    "WriteType",
    # Errors
    "PagepackError",
    "ConfigError",
    "ResolveError",
    "BundleError",
    "MissingStylesheetError",
    "CompilerServiceError",
    "ErrorContext",
]
