"""
The entry document.

``index.html`` is loaded into the module graph as a virtual script that
imports every module script it references, with inline module scripts
served as virtual modules of their own. Local stylesheet links become
imports too. After bundling, ``render_index`` puts the generated
stylesheet, entry script and preload links back into the document.

The document is scanned with ``html.parser`` and edited in place, so
markup the build does not touch is written back byte for byte.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from html import escape
from html.parser import HTMLParser
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import BundleError
from ..models import OutputArtifact, OutputChunk
from .asset import AssetRegistry
from .base import StageCapability, TransformStage
from .css import is_css_request

if TYPE_CHECKING:
    from ..engine.base import BundleContext

logger = logging.getLogger(__name__)

ASSET_ATTRS: dict[str, tuple[str, ...]] = {
    "img": ("src",),
    "link": ("href",),
    "video": ("src", "poster"),
    "source": ("src",),
    "image": ("href", "xlink:href"),
    "use": ("href", "xlink:href"),
}

INLINE_QUERY = "?html-proxy&index="


@dataclass
class Tag:
    """A start tag (and for scripts, its body) located in the document."""

    name: str
    attrs: dict[str, str | None]
    start: int
    end: int
    body: str | None = None

    def get(self, name: str) -> str:
        return self.attrs.get(name) or ""


class TagScanner(HTMLParser):
    """Collect scripts and asset-bearing tags with their source offsets."""

    def __init__(self, html: str) -> None:
        super().__init__(convert_charrefs=True)
        self.html = html
        self.tags: list[Tag] = []
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", html)]
        self._script: Tag | None = None

    def _start_tag(self, tag: str, attrs: list[tuple[str, str | None]]) -> Tag:
        line, column = self.getpos()
        start = self._line_starts[line - 1] + column
        text = self.get_starttag_text() or ""
        return Tag(tag, dict(attrs), start, start + len(text))

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "script":
            self._script = self._start_tag(tag, attrs)
        elif tag in ASSET_ATTRS:
            self.tags.append(self._start_tag(tag, attrs))

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "script":
            found = self._start_tag(tag, attrs)
            found.body = ""
            self.tags.append(found)
        elif tag in ASSET_ATTRS:
            self.tags.append(self._start_tag(tag, attrs))

    def handle_endtag(self, tag: str) -> None:
        if tag != "script" or self._script is None:
            return
        script, self._script = self._script, None
        line, column = self.getpos()
        close = self._line_starts[line - 1] + column
        script.body = self.html[script.end : close]
        script.end = self.html.index(">", close) + 1
        self.tags.append(script)


def scan_tags(html: str) -> list[Tag]:
    """Return the tags of ``html`` in document order. Commented-out markup is skipped."""
    scanner = TagScanner(html)
    scanner.feed(html)
    scanner.close()
    return sorted(scanner.tags, key=lambda t: t.start)


def render_start_tag(tag: Tag, self_closing: bool = False) -> str:
    parts = [tag.name]
    for name, value in tag.attrs.items():
        parts.append(name if value is None else f'{name}="{escape(value)}"')
    return "<" + " ".join(parts) + (" />" if self_closing else ">")


def splice(html: str, edits: list[tuple[int, int, str]]) -> str:
    """Apply non-overlapping ``(start, end, text)`` replacements."""
    out: list[str] = []
    cursor = 0
    for start, end, text in sorted(edits):
        out.append(html[cursor:start])
        out.append(text)
        cursor = end
    out.append(html[cursor:])
    return "".join(out)


def is_local(url: str) -> bool:
    return not re.match(r"^(?:[a-z][a-z0-9+.-]*:|//)", url, re.I)


def inject_before(html: str, tag: str, snippet: str) -> str:
    """Insert ``snippet`` before the closing ``tag``, or append it."""
    match = re.search(rf"</{tag}\s*>", html, re.I)
    if match is None:
        return html + snippet
    return html[: match.start()] + snippet + html[match.start() :]


class HtmlStage(TransformStage):
    name = "pagepack:html"
    capabilities = StageCapability.RESOLVE

    def __init__(
        self,
        index_path: Path,
        registry: AssetRegistry,
        should_preload: Callable[[OutputChunk], bool] | None = None,
    ):
        self.index_path = index_path
        self.registry = registry
        self.should_preload = should_preload
        self.template: str | None = None
        self.inline_scripts: dict[str, str] = {}

    @property
    def entry_id(self) -> str:
        return str(self.index_path)

    def resolve_id(self, source: str, importer: str | None, ctx: BundleContext) -> str | None:
        if source == self.entry_id or source in self.inline_scripts:
            return source
        return None

    def load(self, module_id: str, ctx: BundleContext) -> str | None:
        if module_id in self.inline_scripts:
            return self.inline_scripts[module_id]
        if module_id != self.entry_id:
            return None
        if not self.index_path.is_file():
            raise BundleError(f"Entry document not found: {self.index_path}")
        html = self.index_path.read_text(encoding="utf-8")
        scripts: list[str] = []
        stylesheets: list[str] = []
        edits: list[tuple[int, int, str]] = []
        for tag in scan_tags(html):
            if tag.name == "script":
                imported = self._extract_script(tag)
                if imported is not None:
                    scripts.append(imported)
                    edits.append((tag.start, tag.end, ""))
            elif self._is_stylesheet(tag):
                stylesheets.append(tag.get("href"))
                edits.append((tag.start, tag.end, ""))
            else:
                rewritten = self._rewrite_asset(tag, html)
                if rewritten is not None:
                    edits.append((tag.start, tag.end, rewritten))
        self.template = splice(html, edits)
        imports = scripts + stylesheets
        logger.debug("Entry document imports: %s", imports)
        return "".join(f"import {json.dumps(spec)};\n" for spec in imports)

    def _extract_script(self, tag: Tag) -> str | None:
        """Module id a module script contributes, or None to leave it in place."""
        if tag.get("type") != "module":
            return None
        src = tag.attrs.get("src")
        if src is not None:
            return src if is_local(src) else None
        module_id = f"{self.entry_id}{INLINE_QUERY}{len(self.inline_scripts)}.js"
        self.inline_scripts[module_id] = tag.body or ""
        return module_id

    def _is_stylesheet(self, tag: Tag) -> bool:
        href = tag.get("href")
        return (
            tag.name == "link"
            and "stylesheet" in tag.get("rel").lower().split()
            and is_local(href)
            and is_css_request(href)
            and not self.registry.is_public(href)
        )

    def _rewrite_asset(self, tag: Tag, html: str) -> str | None:
        names = ASSET_ATTRS[tag.name]
        changed = False
        for name in names:
            value = tag.attrs.get(name)
            if not value:
                continue
            location = self.registry.locate(value, self.index_path)
            if location is None:
                continue
            tag.attrs[name] = self.registry.url_for(location)
            changed = True
        if not changed:
            return None
        return render_start_tag(tag, self_closing=html[tag.start : tag.end].endswith("/>"))

    def render_index(self, output: list[OutputArtifact], css_file_name: str | None) -> str:
        """
        Render the entry document for the generated artifacts.

        Args:
            output: Artifacts returned by the bundle engine
            css_file_name: Extracted stylesheet, if one was emitted

        Returns:
            The document with stylesheet, preload and entry script tags.
        """
        if self.template is None:
            raise BundleError("Entry document was never loaded")
        base = self.registry.public_base
        head: list[str] = []
        body: list[str] = []
        if css_file_name:
            href = base + self.registry.asset_path(css_file_name)
            head.append(f'<link rel="stylesheet" href="{href}">')
        for artifact in output:
            if not isinstance(artifact, OutputChunk):
                continue
            src = base + self.registry.asset_path(artifact.file_name)
            if artifact.is_entry:
                body.append(f'<script type="module" src="{src}"></script>')
            elif self.should_preload is not None and self.should_preload(artifact):
                head.append(f'<link rel="modulepreload" href="{src}">')
        html = self.template
        if head:
            html = inject_before(html, "head", "".join(head))
        if body:
            html = inject_before(html, "body", "".join(body))
        return html
