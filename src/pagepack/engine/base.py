"""
Bundle engine boundary.

The orchestrator hands an engine an ordered stage list and an entry id
and later asks the returned ``Bundle`` for output artifacts in a given
module format. Anything satisfying these interfaces can stand in for the
default ``ModuleGraphEngine``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from typing import Any, Protocol

from ..errors import ConfigError
from ..externals import ExternalSpec, NoExternals
from ..models import BundleWarning, OutputArtifact
from ..stages.base import TransformStage

WarningSink = Callable[[BundleWarning], None]
WarningHandler = Callable[[BundleWarning, WarningSink], None]


@dataclass
class InputOptions:
    """Options for building the module graph."""

    input: str
    stages: list[TransformStage] = field(default_factory=list)
    external: ExternalSpec = field(default_factory=NoExternals)
    treeshake: dict[str, Any] = field(default_factory=dict)
    on_warn: WarningHandler | None = None
    preserve_entry_signatures: bool = False

    @classmethod
    def from_raw(
        cls,
        entry: str,
        raw: dict[str, Any],
        stages: list[TransformStage],
        **defaults: Any,
    ) -> InputOptions:
        """
        Build options from defaults overlaid with caller pass-through values.

        Caller stages are already part of ``stages``, so a raw ``stages``
        key never replaces the assembled pipeline.

        Raises:
            ConfigError: If ``raw`` holds a key these options do not define
        """
        unknown = set(raw) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigError(f"Unknown input options: {', '.join(sorted(unknown))}")
        values = {**defaults, **{k: v for k, v in raw.items() if k != "stages"}}
        values.setdefault("input", entry)
        values["stages"] = stages
        values["external"] = ExternalSpec.from_value(values.get("external"))
        return cls(**values)


@dataclass
class OutputOptions:
    """Options for rendering a bundle into artifacts."""

    format: str = "es"
    sourcemap: bool = False
    exports: str = "auto"
    entry_file_names: str = "[name].[hash].js"
    chunk_file_names: str = "[name].[hash].js"


class BundleContext(Protocol):
    """Services the engine exposes to stage hooks."""

    def emit_asset(self, file_name: str, source: str | bytes, name: str | None = None) -> str: ...

    def warn(self, code: str, message: str, module_id: str | None = None) -> None: ...

    def resolve(
        self, source: str, importer: str | None, skip: TransformStage | None = None
    ) -> str | None: ...


class Bundle(ABC):
    """A built module graph that can be rendered into artifacts."""

    @abstractmethod
    def generate(self, options: OutputOptions) -> list[OutputArtifact]:
        """Render the graph, returning chunks and assets in emission order."""
        ...


class BundleEngine(ABC):
    """Builds a module graph from an entry id through a stage list."""

    @abstractmethod
    def bundle(self, options: InputOptions) -> Bundle:
        ...
