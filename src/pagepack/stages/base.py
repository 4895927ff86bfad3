"""
Base class for transform stages.

A stage is one unit of the ordered pipeline handed to the bundle engine.
Each stage declares which hook families it takes part in; the engine only
calls hooks for the capabilities a stage declares, and always in pipeline
order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Flag, auto
from typing import TYPE_CHECKING

from ..sourcemap import SourceMap, TextEdits

if TYPE_CHECKING:
    from ..engine.base import BundleContext
    from ..models import OutputBundle, OutputChunk


class StageCapability(Flag):
    """Hook families a stage takes part in."""

    NONE = 0
    RESOLVE = auto()  # resolve_id / load
    TRANSFORM = auto()  # transform
    FINALIZE = auto()  # render_chunk / generate_bundle


@dataclass
class TransformResult:
    """Code returned by a transform or render hook, with an optional map."""

    code: str
    map: SourceMap | None = None


def prepend_code(prefix: str, code: str, source: str) -> TransformResult:
    """Put ``prefix`` in front of ``code``, with a map back onto ``code``."""
    edits = TextEdits(code)
    edits.prepend(prefix)
    return TransformResult(str(edits), edits.generate_map(source, hires=True))


class TransformStage:
    """
    Base class for all pipeline stages.

    Subclasses set ``name`` and ``capabilities`` and override the hooks
    they need. Every hook may return None to defer to the next stage.
    A transform or render hook that changes the code should return a map;
    without one the engine reports ``SOURCEMAP_BROKEN`` and drops the
    mappings of that module or chunk.

    Example:
        class BannerStage(TransformStage):
            name = "banner"
            capabilities = StageCapability.FINALIZE

            def render_chunk(self, code, chunk, ctx):
                return prepend_code("/* app */\\n", code, chunk.name)
    """

    name: str = "unnamed-stage"
    capabilities: StageCapability = StageCapability.NONE

    def has(self, capability: StageCapability) -> bool:
        return bool(self.capabilities & capability)

    def resolve_id(self, source: str, importer: str | None, ctx: BundleContext) -> str | None:
        return None

    def load(self, module_id: str, ctx: BundleContext) -> str | None:
        return None

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        return None

    def render_chunk(
        self, code: str, chunk: OutputChunk, ctx: BundleContext
    ) -> TransformResult | None:
        return None

    def generate_bundle(self, bundle: OutputBundle, ctx: BundleContext) -> None:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
