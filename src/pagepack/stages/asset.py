"""
Static assets referenced from scripts, stylesheets and the entry document.

An asset smaller than the inline limit becomes a base64 ``data:`` URI;
anything else is emitted once as ``<assetsDir>/<stem>.<hash><ext>`` and
referenced by its public URL. References to files in ``public/`` are kept
as written, since that directory is copied verbatim into the output.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import mimetypes
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .base import StageCapability, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext
    from ..models import OutputBundle

logger = logging.getLogger(__name__)

ASSET_RE = re.compile(
    r"\.(png|jpe?g|gif|svg|ico|webp|avif|mp4|webm|ogg|mp3|wav|flac|aac|"
    r"woff2?|eot|ttf|otf|pdf|txt)$",
    re.I,
)
HASH_LENGTH = 8
PUBLIC_PREFIX = "/@pagepack/public"


def is_asset(module_id: str) -> bool:
    return ASSET_RE.search(module_id.split("?", 1)[0]) is not None


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]


def data_uri(path: Path, content: bytes) -> str:
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


@dataclass
class AssetRegistry:
    """
    URL decisions for asset files, shared by every stage that references
    assets so each file is inlined or emitted exactly once.
    """

    root: Path
    public_base: str = "/"
    assets_dir: str = "_assets"
    inline_limit: int = 4096
    urls: dict[Path, str] = field(default_factory=dict)
    emitted: dict[str, bytes] = field(default_factory=dict)

    def is_public(self, request: str) -> bool:
        """True for a root-absolute request served from ``public/``."""
        if not request.startswith("/") or request.startswith("//"):
            return False
        return (self.root / "public" / request.lstrip("/")).is_file()

    def locate(self, request: str, importer: Path) -> Path | None:
        """File for a local asset reference, or None if it isn't one."""
        if re.match(r"^(?:[a-z][a-z0-9+.-]*:|//|#)", request, re.I):
            return None
        request = request.split("?", 1)[0].split("#", 1)[0]
        if not request or self.is_public(request):
            return None
        if request.startswith("/"):
            candidate = self.root / request.lstrip("/")
        else:
            candidate = importer.parent / request
        return candidate.resolve() if candidate.is_file() else None

    def url_for(self, path: Path) -> str:
        if path in self.urls:
            return self.urls[path]
        content = path.read_bytes()
        if len(content) < self.inline_limit:
            url = data_uri(path, content)
        else:
            file_name = f"{path.stem}.{content_hash(content)}{path.suffix}"
            self.emitted[file_name] = content
            url = self.public_base + self.asset_path(file_name)
            logger.debug("Asset %s -> %s", path, file_name)
        self.urls[path] = url
        return url

    def asset_path(self, file_name: str) -> str:
        """Path of an emitted asset relative to the output directory."""
        if self.assets_dir.strip("./"):
            return posixpath.join(self.assets_dir, file_name)
        return file_name


class AssetStage(TransformStage):
    name = "pagepack:asset"
    capabilities = StageCapability.RESOLVE | StageCapability.FINALIZE

    def __init__(self, registry: AssetRegistry):
        self.registry = registry

    def resolve_id(self, source: str, importer: str | None, ctx: BundleContext) -> str | None:
        if is_asset(source) and self.registry.is_public(source):
            # Public files are served as-is: import the URL, not the file.
            return PUBLIC_PREFIX + source
        return None

    def load(self, module_id: str, ctx: BundleContext) -> str | None:
        if module_id.startswith(PUBLIC_PREFIX + "/"):
            url = module_id[len(PUBLIC_PREFIX) :]
            return f"export default {_js_string(url)};\n"
        if not is_asset(module_id):
            return None
        path = Path(module_id.split("?", 1)[0])
        return f"export default {_js_string(self.registry.url_for(path))};\n"

    def generate_bundle(self, bundle: OutputBundle, ctx: BundleContext) -> None:
        for file_name, content in self.registry.emitted.items():
            ctx.emit_asset(file_name, content, file_name)


def _js_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
