"""
Project-level module resolution: aliases, custom resolvers and
root-absolute requests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..resolver import InternalResolver
from .base import StageCapability, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext


class ResolveStage(TransformStage):
    name = "pagepack:resolve"
    capabilities = StageCapability.RESOLVE

    def __init__(self, resolver: InternalResolver):
        self.resolver = resolver

    def resolve_id(self, source: str, importer: str | None, ctx: BundleContext) -> str | None:
        original = source
        source = self.resolver.alias(source) or source
        if source.startswith("/") and not source.startswith("//"):
            resolved = self.resolver.request_to_file(source)
            if resolved is not None:
                return str(resolved)
        if source != original:
            # Aliased to a package or relative path: let later stages resolve it.
            return ctx.resolve(source, importer, skip=self)
        return None
