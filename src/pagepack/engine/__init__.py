"""
Bundle engine boundary and the default in-process engine.
"""

from .base import (
    Bundle,
    BundleContext,
    BundleEngine,
    InputOptions,
    OutputOptions,
    WarningHandler,
    WarningSink,
)
from .graph import ModuleGraph, ModuleGraphEngine, rewrite_module, scan_imports

__all__ = [
    # Boundary
    "Bundle",
    "BundleContext",
    "BundleEngine",
    "InputOptions",
    "OutputOptions",
    "WarningHandler",
    "WarningSink",
    # Default engine
    "ModuleGraph",
    "ModuleGraphEngine",
    "rewrite_module",
    "scan_imports",
]
