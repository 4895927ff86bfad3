"""
Default minification of rendered chunks with ``terser``.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from ..compiler_service import find_binary
from ..errors import CompilerServiceError
from ..sourcemap import split_inline_source_map
from .base import StageCapability, TransformResult, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext
    from ..models import OutputChunk

logger = logging.getLogger(__name__)

_MINIFY_TIMEOUT = 120


class MinifyStage(TransformStage):
    name = "pagepack:minify"
    capabilities = StageCapability.FINALIZE

    def __init__(self, root: Path, module: bool = True, sourcemap: bool = False):
        self.root = root
        self.module = module
        self.sourcemap = sourcemap

    def command(self) -> list[str]:
        binary = find_binary("terser", self.root)
        if binary is None:
            raise CompilerServiceError(
                "terser is required for minification. "
                "Install it with: npm install -D terser, or build with minify=fast"
            )
        cmd = [str(binary), "--compress", "--mangle"]
        if self.module:
            cmd.append("--module")
        if self.sourcemap:
            cmd.extend(["--source-map", "url=inline"])
        return cmd

    def render_chunk(
        self, code: str, chunk: OutputChunk, ctx: BundleContext
    ) -> TransformResult | None:
        cmd = self.command()
        logger.debug("Minifying %s", chunk.name)
        try:
            result = subprocess.run(
                cmd,
                input=code,
                capture_output=True,
                text=True,
                timeout=_MINIFY_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise CompilerServiceError(f"terser timed out after {_MINIFY_TIMEOUT}s") from e
        if result.returncode != 0:
            logger.error("terser failed: %s", result.stderr)
            raise CompilerServiceError(f"Minifying {chunk.name} failed:\n{result.stderr.strip()}")
        if not self.sourcemap:
            return TransformResult(result.stdout)
        minified, source_map = split_inline_source_map(result.stdout)
        if source_map is None:
            raise CompilerServiceError(f"terser returned no source map for {chunk.name}")
        return TransformResult(minified, source_map)
