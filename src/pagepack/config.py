"""
Build configuration.

Options can be given by their Python names (``out_dir``) or by their
camelCase names (``outDir``), so configuration written for the original
JavaScript tooling can be reused. Project defaults live in the ``[build]``
table of ``pagepack.toml``.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigError, ErrorContext
from .models import OutputChunk
from .stages.user_transforms import UserTransform

logger = logging.getLogger(__name__)

CONFIG_FILE = "pagepack.toml"

MinifyMode = bool | Literal["fast"]


class BuildConfig(BaseModel):
    """Options for one build."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
        extra="forbid",
    )

    root: Path = Field(default_factory=Path.cwd)
    base: str = "/"
    out_dir: Path | None = None
    assets_dir: str = "_assets"
    assets_inline_limit: int = Field(default=4096, ge=0)
    css_code_split: bool = True
    alias: dict[str, str] = Field(default_factory=dict)
    resolvers: list[Any] = Field(default_factory=list)

    # Raw pass-through options for the bundle engine
    input_options: dict[str, Any] = Field(default_factory=dict)
    output_options: dict[str, Any] = Field(default_factory=dict)

    emit_index: bool = True
    emit_assets: bool = True
    write: bool = True
    minify: MinifyMode = True
    silent: bool = False
    sourcemap: bool = False
    should_preload: Callable[[OutputChunk], bool] | None = None
    env: dict[str, str] = Field(default_factory=dict)
    mode: str = "production"
    ssr: bool = False

    jsx: str | dict[str, str] = "vue"
    transforms: list[UserTransform] = Field(default_factory=list)
    sfc_options: dict[str, Any] = Field(default_factory=dict)
    sfc_compiler_options: dict[str, Any] = Field(default_factory=dict)
    commonjs_named_exports: dict[str, list[str]] = Field(default_factory=dict)
    engine: Any = None

    @field_validator("root")
    @classmethod
    def resolve_root(cls, v: Path) -> Path:
        return Path(v).resolve()

    @field_validator("base")
    @classmethod
    def normalize_base(cls, v: str) -> str:
        """Ensure the public base path ends with a slash."""
        return v if v.endswith("/") else v + "/"

    @property
    def resolved_out_dir(self) -> Path:
        if self.out_dir is None:
            return self.root / "dist"
        return self.out_dir if self.out_dir.is_absolute() else self.root / self.out_dir

    @property
    def index_path(self) -> Path:
        return self.root / "index.html"


def read_config_file(root: Path) -> dict[str, Any]:
    """
    Read the ``[build]`` table of ``pagepack.toml``.

    Returns:
        The table's values, or an empty dict when there is no file.
    """
    toml_path = root / CONFIG_FILE
    if not toml_path.exists():
        return {}
    try:
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read config: {e}", ErrorContext(file=toml_path)) from e
    build = data.get("build", {})
    if not isinstance(build, dict):
        raise ConfigError("[build] must be a table", ErrorContext(file=toml_path))
    return build


def _by_field_name(values: dict[str, Any]) -> dict[str, Any]:
    """Key values by field name so camelCase and snake_case spellings merge."""
    aliases = {f.alias: name for name, f in BuildConfig.model_fields.items() if f.alias}
    return {aliases.get(key, key): value for key, value in values.items()}


def load_config(root: Path | str | None = None, **overrides: Any) -> BuildConfig:
    """
    Load the build configuration for a project.

    Args:
        root: Project root (defaults to the current directory)
        **overrides: Values taking precedence over the config file

    Returns:
        Validated BuildConfig
    """
    root = Path(root or os.getcwd()).resolve()
    values = _by_field_name(read_config_file(root))
    values.update(_by_field_name({k: v for k, v in overrides.items() if v is not None}))
    values["root"] = root
    try:
        config = BuildConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid build configuration:\n{e}") from e
    logger.debug("Loaded config for %s", root)
    return config
