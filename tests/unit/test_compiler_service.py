"""Tests for the compiler service wrapper."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pagepack import compiler_service
from pagepack.compiler_service import (
    CompilerService,
    compiler_service_scope,
    ensure_service,
    find_binary,
    is_running,
    stop_service,
)
from pagepack.errors import CompilerServiceError


@pytest.fixture(autouse=True)
def no_running_service():
    stop_service()
    yield
    stop_service()


class TestFindBinary:
    def test_on_path(self) -> None:
        with patch("pagepack.compiler_service.shutil.which", return_value="/usr/bin/esbuild"):
            assert find_binary("esbuild") == Path("/usr/bin/esbuild")

    def test_project_local(self, tmp_path: Path) -> None:
        local = tmp_path / "node_modules" / ".bin" / "esbuild"
        local.parent.mkdir(parents=True)
        local.write_text("")
        with patch("pagepack.compiler_service.shutil.which", return_value=None):
            assert find_binary("esbuild", tmp_path) == local

    def test_not_found(self, tmp_path: Path) -> None:
        with patch("pagepack.compiler_service.shutil.which", return_value=None):
            assert find_binary("esbuild", tmp_path) is None


class TestServiceLifecycle:
    def test_missing_binary(self, tmp_path: Path) -> None:
        with patch("pagepack.compiler_service.find_binary", return_value=None):
            with pytest.raises(CompilerServiceError, match="npm install -D esbuild"):
                ensure_service(tmp_path)
        assert not is_running()

    def test_started_once(self, tmp_path: Path) -> None:
        with patch("pagepack.compiler_service.find_binary", return_value=Path("/bin/esbuild")):
            first = ensure_service(tmp_path)
            second = ensure_service(tmp_path)
        assert first is second
        assert is_running()

    def test_stop_is_idempotent(self, tmp_path: Path) -> None:
        with patch("pagepack.compiler_service.find_binary", return_value=Path("/bin/esbuild")):
            service = ensure_service(tmp_path)
        stop_service()
        stop_service()
        assert service.closed
        assert not is_running()

    def test_scope_stops_on_error(self, tmp_path: Path) -> None:
        with patch("pagepack.compiler_service.find_binary", return_value=Path("/bin/esbuild")):
            with pytest.raises(RuntimeError):
                with compiler_service_scope():
                    ensure_service(tmp_path)
                    raise RuntimeError("boom")
        assert compiler_service._service is None


class TestTransform:
    def run_result(self, stdout: str = "", returncode: int = 0, stderr: str = "") -> MagicMock:
        return MagicMock(stdout=stdout, returncode=returncode, stderr=stderr)

    def test_arguments(self) -> None:
        service = CompilerService(Path("/bin/esbuild"))
        with patch("pagepack.compiler_service.subprocess.run") as run:
            run.return_value = self.run_result("let a=1;\n")
            result = service.transform(
                "let a: number = 1;",
                loader="ts",
                filename="/app/a.ts",
                jsx_factory="h",
                minify=True,
            )
        service.close()
        cmd = run.call_args.args[0]
        assert cmd[0] == "/bin/esbuild"
        assert "--loader=ts" in cmd
        assert "--sourcefile=/app/a.ts" in cmd
        assert "--minify" in cmd
        assert "--jsx-factory=h" in cmd
        assert run.call_args.kwargs["input"] == "let a: number = 1;"
        assert result.code == "let a=1;\n"
        assert result.map is None

    def test_failure(self) -> None:
        service = CompilerService(Path("/bin/esbuild"))
        with patch("pagepack.compiler_service.subprocess.run") as run:
            run.return_value = self.run_result(returncode=1, stderr="syntax error")
            with pytest.raises(CompilerServiceError, match="syntax error"):
                service.transform("let")
        service.close()

    def test_timeout(self) -> None:
        service = CompilerService(Path("/bin/esbuild"))
        with patch("pagepack.compiler_service.subprocess.run") as run:
            run.side_effect = subprocess.TimeoutExpired("esbuild", 60)
            with pytest.raises(CompilerServiceError, match="timed out"):
                service.transform("let a;")
        service.close()

    def test_closed_service(self) -> None:
        service = CompilerService(Path("/bin/esbuild"))
        service.close()
        with pytest.raises(CompilerServiceError, match="stopped"):
            service.transform("let a;")
