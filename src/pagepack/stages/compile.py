"""
Fast compilation of TypeScript and JSX through the compiler service.

Also minifies rendered chunks when the ``fast`` minify mode is selected.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..compiler_service import ensure_service
from .base import StageCapability, TransformResult, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext
    from ..models import OutputChunk

COMPILE_RE = re.compile(r"\.(tsx?|jsx)$")

JSX_PRESETS: dict[str, tuple[str, str]] = {
    "vue": ("jsx", "Fragment"),
    "preact": ("h", "Fragment"),
    "react": ("React.createElement", "React.Fragment"),
}


def resolve_jsx_options(jsx: str | dict[str, Any] | None) -> tuple[str | None, str | None]:
    """Return (factory, fragment) for a preset name or an explicit mapping."""
    if jsx is None:
        return None, None
    if isinstance(jsx, str):
        if jsx not in JSX_PRESETS:
            raise ValueError(f"Unknown jsx preset: {jsx}")
        return JSX_PRESETS[jsx]
    return jsx.get("factory"), jsx.get("fragment")


def loader_for(module_id: str) -> str | None:
    match = COMPILE_RE.search(module_id.split("?", 1)[0])
    return match.group(1) if match else None


class CompileStage(TransformStage):
    name = "pagepack:compile"
    capabilities = StageCapability.TRANSFORM | StageCapability.FINALIZE

    def __init__(
        self,
        root: Path,
        minify: bool = False,
        jsx: str | dict[str, Any] | None = "vue",
        sourcemap: bool = False,
    ):
        self.root = root
        self.minify = minify
        self.jsx_factory, self.jsx_fragment = resolve_jsx_options(jsx)
        self.sourcemap = sourcemap

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        loader = loader_for(module_id)
        if loader is None:
            return None
        result = ensure_service(self.root).transform(
            code,
            loader=loader,
            filename=module_id,
            jsx_factory=self.jsx_factory,
            jsx_fragment=self.jsx_fragment,
            sourcemap=self.sourcemap,
        )
        return TransformResult(result.code, result.map)

    def render_chunk(
        self, code: str, chunk: OutputChunk, ctx: BundleContext
    ) -> TransformResult | None:
        if not self.minify:
            return None
        result = ensure_service(self.root).transform(
            code, loader="js", minify=True, sourcemap=self.sourcemap
        )
        return TransformResult(result.code, result.map)
