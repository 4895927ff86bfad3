"""
Data models for the build pipeline.

These models describe what the bundle engine hands back (chunks and
assets), how written files are classified for diagnostics, and the
final result returned to callers of ``build``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from .sourcemap import SourceMap


class ArtifactType(StrEnum):
    """Kind of artifact produced by the bundle engine."""

    CHUNK = "chunk"
    ASSET = "asset"


class WriteType(StrEnum):
    """Classification of a written file, used for diagnostic output."""

    JS = "script"
    CSS = "stylesheet"
    ASSET = "asset"
    HTML = "document"
    SOURCE_MAP = "source-map"


@dataclass
class OutputChunk:
    """A unit of generated code."""

    file_name: str
    name: str
    code: str
    is_entry: bool = True
    map: SourceMap | None = None
    modules: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    facade_module_id: str | None = None

    @property
    def type(self) -> ArtifactType:
        return ArtifactType.CHUNK


@dataclass
class OutputAsset:
    """A static file emitted by a stage (stylesheet, image, font...)."""

    file_name: str
    source: str | bytes
    name: str | None = None

    @property
    def type(self) -> ArtifactType:
        return ArtifactType.ASSET

    @property
    def role(self) -> WriteType:
        """Media role inferred from the file extension."""
        return WriteType.CSS if self.file_name.endswith(".css") else WriteType.ASSET


OutputArtifact = OutputChunk | OutputAsset
OutputBundle = dict[str, OutputArtifact]


@dataclass
class BundleWarning:
    """A non-fatal diagnostic raised by the bundle engine."""

    code: str
    message: str
    module_id: str | None = None
    cycle: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"({self.code}) {self.message}"


@dataclass
class WriteRecord:
    """A single file written to the output directory."""

    type: WriteType
    path: Path
    size: int
    compressed_size: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "path": str(self.path),
            "size": self.size,
            "compressed_size": self.compressed_size,
        }


@dataclass
class BuildResult:
    """Result of one build invocation."""

    html: str
    assets: list[OutputArtifact] = field(default_factory=list)
    writes: list[WriteRecord] = field(default_factory=list)

    @property
    def chunks(self) -> list[OutputChunk]:
        return [a for a in self.assets if isinstance(a, OutputChunk)]

    @property
    def static_assets(self) -> list[OutputAsset]:
        return [a for a in self.assets if isinstance(a, OutputAsset)]
