"""
Output writing.

Classifies the artifacts returned by the bundle engine, writes them below
the output directory and reports each write with its size.
"""

from __future__ import annotations

import gzip
import logging
import os
import shutil
from pathlib import Path

from rich.console import Console

from .errors import MissingStylesheetError
from .models import OutputArtifact, OutputAsset, OutputChunk, WriteRecord, WriteType

logger = logging.getLogger(__name__)

console = Console()

WRITE_COLORS: dict[WriteType, str] = {
    WriteType.JS: "cyan",
    WriteType.CSS: "magenta",
    WriteType.ASSET: "green",
    WriteType.HTML: "blue",
    WriteType.SOURCE_MAP: "dim",
}


def gzip_size(data: bytes) -> int:
    return len(gzip.compress(data, compresslevel=9))


def fmt_kb(n: int) -> str:
    return f"{n / 1024:.2f}kb"


def find_stylesheet(output: list[OutputArtifact], expected: bool) -> str | None:
    """
    Return the file name of the generated stylesheet.

    Raises:
        MissingStylesheetError: if styles were extracted but no stylesheet
            artifact was produced
    """
    for artifact in output:
        if isinstance(artifact, OutputAsset) and artifact.file_name.endswith(".css"):
            return artifact.file_name
    if expected:
        raise MissingStylesheetError(
            "Styles were extracted but the bundle contains no stylesheet"
        )
    return None


class BundleWriter:
    """Writes artifacts below ``out_dir`` and records every write."""

    def __init__(self, out_dir: Path, silent: bool = False, output: Console | None = None):
        self.out_dir = out_dir
        self.silent = silent
        self.console = output or console
        self.records: list[WriteRecord] = []

    def write(self, path: Path, content: str | bytes, write_type: WriteType) -> WriteRecord:
        """Write one file, creating parent directories as needed."""
        data = content.encode("utf-8") if isinstance(content, str) else content
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        record = WriteRecord(
            type=write_type,
            path=path,
            size=len(data),
            compressed_size=gzip_size(data),
        )
        self.records.append(record)
        if not self.silent:
            self.report(record)
        return record

    def report(self, record: WriteRecord) -> None:
        try:
            shown = os.path.relpath(record.path)
        except ValueError:
            shown = str(record.path)
        color = WRITE_COLORS[record.type]
        self.console.print(
            f"[dim]\\[write][/dim] [{color}]{shown}[/{color}] "
            f"{fmt_kb(record.size)}, gzip: {fmt_kb(record.compressed_size)}",
            highlight=False,
        )

    def copy_public(self, public_dir: Path) -> None:
        """Copy ``public/`` into the output root, verbatim."""
        if not public_dir.is_dir():
            return
        logger.debug("Copying %s", public_dir)
        shutil.copytree(public_dir, self.out_dir, dirs_exist_ok=True)


def write_bundle(
    output: list[OutputArtifact],
    *,
    root: Path,
    out_dir: Path,
    assets_dir: str,
    html: str = "",
    emit_index: bool = True,
    emit_assets: bool = True,
    silent: bool = False,
) -> list[WriteRecord]:
    """
    Write a build's artifacts to disk.

    The output directory is deleted and recreated first. Chunks (and their
    source maps) and, when enabled, assets go to ``<out_dir>/<assets_dir>``;
    the rendered document goes to ``<out_dir>/index.html``; ``public/`` is
    copied last.

    Returns:
        One record per written file, in write order.
    """
    if out_dir.exists():
        shutil.rmtree(out_dir)
    out_dir.mkdir(parents=True)
    assets_path = out_dir / assets_dir
    writer = BundleWriter(out_dir, silent=silent)

    for artifact in output:
        if isinstance(artifact, OutputChunk):
            path = assets_path / artifact.file_name
            code = artifact.code
            map_name = f"{path.name}.map"
            if artifact.map is not None:
                code += f"\n//# sourceMappingURL={map_name}"
            writer.write(path, code, WriteType.JS)
            if artifact.map is not None:
                writer.write(path.with_name(map_name), artifact.map.to_json(), WriteType.SOURCE_MAP)
        elif emit_assets:
            writer.write(assets_path / artifact.file_name, artifact.source, artifact.role)

    if emit_index and html:
        writer.write(out_dir / "index.html", html, WriteType.HTML)

    if emit_assets:
        writer.copy_public(root / "public")

    return writer.records
