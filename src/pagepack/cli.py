"""
pagepack command line.

    pagepack build [ROOT] [options]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .build import build as run_build
from .config import load_config
from .errors import PagepackError

app = typer.Typer(
    help="Production builds for web applications",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"pagepack {__version__}")
        raise typer.Exit()


def parse_minify(value: str | None) -> bool | str | None:
    if value is None:
        return None
    lowered = value.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    if lowered == "fast":
        return "fast"
    raise typer.BadParameter("must be true, false or fast")


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
) -> None:
    """pagepack - bundle a project for production."""


@app.command()
def build(
    root: Annotated[
        Path,
        typer.Argument(help="Project root containing index.html", file_okay=False),
    ] = Path("."),
    base: Annotated[str | None, typer.Option("--base", help="Public base path")] = None,
    out_dir: Annotated[
        Path | None, typer.Option("--out-dir", help="Output directory (default: <root>/dist)")
    ] = None,
    assets_dir: Annotated[
        str | None, typer.Option("--assets-dir", help="Assets directory inside the output")
    ] = None,
    assets_inline_limit: Annotated[
        int | None,
        typer.Option("--assets-inline-limit", help="Inline assets smaller than this (bytes)"),
    ] = None,
    no_css_code_split: Annotated[
        bool, typer.Option("--no-css-code-split", help="Put all CSS in one file")
    ] = False,
    minify: Annotated[
        str | None, typer.Option("--minify", help="true, false or fast")
    ] = None,
    sourcemap: Annotated[bool, typer.Option("--sourcemap", help="Emit source maps")] = False,
    mode: Annotated[str | None, typer.Option("--mode", help="Build mode")] = None,
    ssr: Annotated[bool, typer.Option("--ssr", help="Build a server-side bundle")] = False,
    silent: Annotated[bool, typer.Option("--silent", help="No console output")] = False,
    no_write: Annotated[
        bool, typer.Option("--no-write", help="Build in memory without writing files")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Debug logging")] = False,
) -> None:
    """
    Build the project for production.

    Options given here override the [build] table of pagepack.toml.

    Example:
        pagepack build ./my-app --base /app/ --minify fast
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    overrides = {
        "base": base,
        "out_dir": out_dir,
        "assets_dir": assets_dir,
        "assets_inline_limit": assets_inline_limit,
        "minify": parse_minify(minify),
        "mode": mode,
        # Flags only override the file when given.
        "css_code_split": False if no_css_code_split else None,
        "sourcemap": True if sourcemap else None,
        "ssr": True if ssr else None,
        "silent": True if silent else None,
        "write": False if no_write else None,
    }
    try:
        config = load_config(root, **overrides)
        result = run_build(config)
    except PagepackError as e:
        console.print(f"[red]Build failed:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if not config.write and not config.silent:
        console.print(f"Built {len(result.assets)} artifacts (not written)")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
