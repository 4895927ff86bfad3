"""
Compiler service for the fast-compile stage.

Wraps the esbuild standalone binary. The service is process-wide: it is
started the first time a stage needs it and must be stopped at the end of
every build; a stopped service refuses further work.

Usage::

    from pagepack.compiler_service import compiler_service_scope, ensure_service

    with compiler_service_scope():
        result = ensure_service(root).transform(code, loader="ts")
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .errors import CompilerServiceError
from .sourcemap import SourceMap, split_inline_source_map

logger = logging.getLogger(__name__)

_TRANSFORM_TIMEOUT = 60


def find_binary(name: str, root: Path | None = None) -> Path | None:
    """Locate a node tool on PATH or in the project's ``node_modules/.bin``."""
    system_bin = shutil.which(name)
    if system_bin:
        return Path(system_bin)
    if root is not None:
        local = root / "node_modules" / ".bin" / name
        if local.exists():
            return local
    return None


@dataclass
class CompileResult:
    code: str
    map: SourceMap | None = None


class CompilerService:
    """A running esbuild service."""

    def __init__(self, binary: Path):
        self.binary = binary
        self.closed = False

    def _run(self, args: list[str], code: str) -> str:
        cmd = [str(self.binary), *args]
        logger.debug("Compiling: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                input=code,
                capture_output=True,
                text=True,
                timeout=_TRANSFORM_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise CompilerServiceError(f"esbuild timed out after {_TRANSFORM_TIMEOUT}s") from e
        except FileNotFoundError as e:
            raise CompilerServiceError(f"esbuild not found at {self.binary}") from e
        if result.returncode != 0:
            raise CompilerServiceError(f"esbuild failed:\n{result.stderr.strip()}")
        return result.stdout

    def transform(
        self,
        code: str,
        *,
        loader: str = "js",
        filename: str | None = None,
        minify: bool = False,
        jsx_factory: str | None = None,
        jsx_fragment: str | None = None,
        sourcemap: bool = False,
    ) -> CompileResult:
        """Compile one source text."""
        if self.closed:
            raise CompilerServiceError("Compiler service has been stopped")
        args = [f"--loader={loader}", "--target=es2019"]
        if filename:
            args.append(f"--sourcefile={filename}")
        if minify:
            args.append("--minify")
        if jsx_factory:
            args.append(f"--jsx-factory={jsx_factory}")
        if jsx_fragment:
            args.append(f"--jsx-fragment={jsx_fragment}")
        if sourcemap:
            args.append("--sourcemap=inline")
        output = self._run(args, code)
        if sourcemap:
            output, source_map = split_inline_source_map(output)
            return CompileResult(output, source_map)
        return CompileResult(output)

    def close(self) -> None:
        self.closed = True


_service: CompilerService | None = None
_lock = threading.Lock()


def ensure_service(root: Path | None = None) -> CompilerService:
    """Return the running service, starting it on first use."""
    global _service
    with _lock:
        if _service is None:
            binary = find_binary("esbuild", root)
            if binary is None:
                raise CompilerServiceError(
                    "esbuild is required to compile TypeScript/JSX. "
                    "Install it with: npm install -D esbuild"
                )
            logger.info("Starting compiler service (%s)", binary)
            _service = CompilerService(binary)
        return _service


def stop_service() -> None:
    """Stop the service if it is running. Safe to call when it never started."""
    global _service
    with _lock:
        if _service is not None:
            logger.debug("Stopping compiler service")
            _service.close()
            _service = None


def is_running() -> bool:
    return _service is not None


@contextmanager
def compiler_service_scope() -> Iterator[None]:
    """Release the compiler service when the block exits, however it exits."""
    try:
        yield
    finally:
        stop_service()
