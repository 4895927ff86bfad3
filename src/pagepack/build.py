"""
Production build.

``build`` bundles the project from its ``index.html`` through the stage
pipeline and writes the result; ``ssr_build`` runs the same build
reconfigured to produce a server-side CommonJS bundle.

Usage::

    from pagepack import build, load_config

    result = build(load_config("path/to/project"))
    print(result.html)
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, fields
from typing import Any

from rich.console import Console

from .compiler_service import compiler_service_scope
from .config import BuildConfig
from .engine import InputOptions, ModuleGraphEngine, OutputOptions
from .errors import ConfigError
from .externals import resolve_external
from .models import BuildResult
from .pipeline import create_base_stages, on_warning
from .resolver import InternalResolver
from .stages import (
    AssetRegistry,
    AssetStage,
    CssStage,
    HtmlStage,
    MinifyStage,
    TransformStage,
    create_dev_flag_replace_stage,
    create_env_replace_stage,
)
from .writer import find_stylesheet, write_bundle

logger = logging.getLogger(__name__)

console = Console()

PROGRESS_MESSAGE = "Building for production..."


@dataclass
class BuildPipeline:
    """The full stage list plus the stages the build reads back from."""

    stages: list[TransformStage]
    html: HtmlStage
    css: CssStage


def create_build_pipeline(config: BuildConfig) -> BuildPipeline:
    """
    Assemble every stage of a client build, in order.

    The base resolution/compilation stages come first, followed by the
    entry document, environment replacement, dev-flag replacement,
    stylesheet and asset extraction, and terser minification when
    ``minify`` is True (the ``fast`` mode minifies in the compile stage).
    """
    root = config.root
    resolver = InternalResolver(root, config.resolvers, config.alias)
    registry = AssetRegistry(
        root=root,
        public_base=config.base,
        assets_dir=config.assets_dir,
        inline_limit=config.assets_inline_limit,
    )
    html = HtmlStage(config.index_path, registry, config.should_preload)
    css = CssStage(registry, code_split=config.css_code_split, minify=bool(config.minify))

    user_stages = list(config.input_options.get("stages") or [])
    stages = create_base_stages(root, resolver, config, user_stages)
    stages.extend(
        [
            html,
            create_env_replace_stage(config.env, config.mode, config.base, config.sourcemap),
            create_dev_flag_replace_stage(config.sourcemap),
            css,
            AssetStage(registry),
        ]
    )
    if config.minify is True:
        output_format = config.output_options.get("format", "es")
        stages.append(
            MinifyStage(
                root, module=output_format in ("es", "esm"), sourcemap=config.sourcemap
            )
        )
    return BuildPipeline(stages=stages, html=html, css=css)


def _output_options(config: BuildConfig) -> OutputOptions:
    known = {f.name for f in fields(OutputOptions)}
    unknown = set(config.output_options) - known
    if unknown:
        raise ConfigError(f"Unknown output options: {', '.join(sorted(unknown))}")
    values: dict[str, Any] = {
        "format": "es",
        "sourcemap": config.sourcemap,
        "entry_file_names": "[name].[hash].js",
        "chunk_file_names": "[name].[hash].js",
        **config.output_options,
    }
    return OutputOptions(**values)


@contextmanager
def _progress(silent: bool) -> Iterator[None]:
    """Spinner on an interactive terminal, a plain line otherwise."""
    if silent:
        yield
        return
    if os.environ.get("DEBUG") or not console.is_terminal:
        console.print(PROGRESS_MESSAGE)
        yield
        return
    with console.status(PROGRESS_MESSAGE):
        yield


def build(config: BuildConfig) -> BuildResult:
    """
    Bundle and write a project for production.

    Args:
        config: Build configuration; with ``ssr`` set, runs ``ssr_build``

    Returns:
        The rendered ``index.html`` (empty when not emitted), the generated
        artifacts and the files written.
    """
    if config.ssr:
        return ssr_build(config.model_copy(update={"ssr": False}))

    start = time.perf_counter()
    with compiler_service_scope():
        with _progress(config.silent):
            pipeline = create_build_pipeline(config)
            engine = config.engine or ModuleGraphEngine()
            input_options = InputOptions.from_raw(
                str(config.index_path),
                config.input_options,
                pipeline.stages,
                preserve_entry_signatures=False,
                treeshake={"module_side_effects": "no-external"},
                on_warn=on_warning,
            )
            bundle = engine.bundle(input_options)
            output = bundle.generate(_output_options(config))

        css_file_name = find_stylesheet(output, pipeline.css.expects_stylesheet)
        html = ""
        if config.emit_index and pipeline.html.template is not None:
            html = pipeline.html.render_index(output, css_file_name)

        writes = []
        if config.write:
            writes = write_bundle(
                output,
                root=config.root,
                out_dir=config.resolved_out_dir,
                assets_dir=config.assets_dir,
                html=html,
                emit_index=config.emit_index,
                emit_assets=config.emit_assets,
                silent=config.silent,
            )

    if not config.silent:
        console.print(f"Build completed in {time.perf_counter() - start:.2f}s.")
    return BuildResult(html=html, assets=output, writes=writes)


def ssr_build(config: BuildConfig) -> BuildResult:
    """
    Build a server-side bundle.

    Runs ``build`` with a derived configuration: output in ``dist-ssr`` with
    assets at its root unless configured otherwise, components compiled for
    node, the UI framework kept external, CommonJS output with named
    exports and unhashed entry names, and no document, assets, CSS
    splitting or minification.
    """
    explicit = config.model_fields_set
    raw_input = config.input_options
    derived = config.model_copy(
        update={
            "out_dir": config.out_dir if "out_dir" in explicit else config.root / "dist-ssr",
            "assets_dir": config.assets_dir if "assets_dir" in explicit else ".",
            "sfc_options": {**config.sfc_options, "target": "node"},
            "input_options": {
                **raw_input,
                "external": resolve_external(raw_input.get("external")),
            },
            "output_options": {
                **config.output_options,
                "format": "cjs",
                "exports": "named",
                "entry_file_names": "[name].js",
            },
            "emit_index": False,
            "emit_assets": False,
            "css_code_split": False,
            "minify": False,
            "ssr": False,
        }
    )
    logger.debug("SSR build into %s", derived.resolved_out_dir)
    return build(derived)
