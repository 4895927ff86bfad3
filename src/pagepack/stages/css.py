"""
Stylesheet extraction.

Stylesheet modules are collected at transform time and replaced by an
empty JS module. When a chunk is rendered, the styles of the modules it
contains are either extracted into a single ``style.<hash>.css`` asset or,
for non-entry chunks under code splitting, injected at runtime by a small
prelude.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from ..sourcemap import empty_map
from .asset import AssetRegistry, content_hash
from .base import StageCapability, TransformResult, TransformStage, prepend_code

if TYPE_CHECKING:
    from ..engine.base import BundleContext
    from ..models import OutputBundle, OutputChunk

logger = logging.getLogger(__name__)

CSS_RE = re.compile(r"\.(css|less|sass|scss|styl|stylus|postcss)(?:$|\?)")
URL_RE = re.compile(r"""url\(\s*(?P<q>["']?)(?P<url>[^"')]+)(?P=q)\s*\)""")

STYLE_MODULE = 'export default "";\n'


def is_css_request(module_id: str) -> bool:
    return CSS_RE.search(module_id) is not None


def minify_css(text: str) -> str:
    """Strip block comments, collapse whitespace, remove blank lines."""
    text = re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)
    lines = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            lines.append(re.sub(r"\s+", " ", stripped))
    return "\n".join(lines) + "\n"


def rewrite_urls(css: str, importer: Path, registry: AssetRegistry) -> str:
    """Point ``url()`` references at inlined or emitted assets."""

    def replace(match: re.Match[str]) -> str:
        location = registry.locate(match.group("url").strip(), importer)
        if location is None:
            return match.group(0)
        return f'url("{registry.url_for(location)}")'

    return URL_RE.sub(replace, css)


def style_injection(css: str) -> str:
    return (
        '(function () { const s = document.createElement("style"); '
        f"s.textContent = {json.dumps(css)}; document.head.appendChild(s); }})();"
    )


class CssStage(TransformStage):
    name = "pagepack:css"
    capabilities = StageCapability.TRANSFORM | StageCapability.FINALIZE

    def __init__(self, registry: AssetRegistry, code_split: bool = True, minify: bool = False):
        self.registry = registry
        self.code_split = code_split
        self.minify = minify
        self.styles: dict[str, str] = {}
        self.extracted: list[str] = []
        self.file_name: str | None = None

    @property
    def expects_stylesheet(self) -> bool:
        """True once styles were extracted for the stylesheet asset."""
        return bool(self.extracted)

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        if not is_css_request(module_id):
            return None
        importer = Path(module_id.split("?", 1)[0])
        self.styles[module_id] = rewrite_urls(code, importer, self.registry)
        return TransformResult(STYLE_MODULE, empty_map(module_id, STYLE_MODULE))

    def render_chunk(
        self, code: str, chunk: OutputChunk, ctx: BundleContext
    ) -> TransformResult | None:
        css = "\n".join(self.styles[m] for m in chunk.modules if m in self.styles)
        if not css:
            return None
        if self.code_split and not chunk.is_entry:
            return prepend_code(style_injection(css), code, chunk.name)
        self.extracted.append(css)
        return None

    def generate_bundle(self, bundle: OutputBundle, ctx: BundleContext) -> None:
        if not self.extracted:
            logger.debug("No stylesheet modules; no stylesheet emitted")
            return
        css = "\n".join(self.extracted)
        if self.minify:
            css = minify_css(css)
        self.file_name = f"style.{content_hash(css.encode('utf-8'))}.css"
        ctx.emit_asset(self.file_name, css, "style.css")
