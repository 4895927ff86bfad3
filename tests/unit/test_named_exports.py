"""Tests for CommonJS named export discovery and package resolution."""

from __future__ import annotations

import json
from pathlib import Path

from pagepack.named_exports import (
    PACKAGES_TO_AUTO_DETECT_EXPORTS,
    STATIC_NAMED_EXPORTS,
    detect_exports,
    known_named_exports,
    scan_exports,
)
from pagepack.resolver import InternalResolver, resolve_from, split_package_request


def install(root: Path, name: str, files: dict[str, str], manifest: dict | None = None) -> Path:
    package_dir = root / "node_modules" / name
    package_dir.mkdir(parents=True)
    for rel, text in files.items():
        (package_dir / rel).parent.mkdir(parents=True, exist_ok=True)
        (package_dir / rel).write_text(text)
    if manifest is not None:
        (package_dir / "package.json").write_text(json.dumps(manifest))
    return package_dir


class TestScanExports:
    def test_assignments(self) -> None:
        code = "exports.a = 1;\nmodule.exports.b = 2;\nexports._private = 3;\n"
        assert scan_exports(code) == ["a", "b"]

    def test_define_property(self) -> None:
        code = 'Object.defineProperty(exports, "__esModule", { value: true });\n'
        code += "Object.defineProperty(exports, 'render', { get: f });\n"
        assert scan_exports(code) == ["render"]

    def test_object_literal(self) -> None:
        assert scan_exports("module.exports = { one, two: 2 };") == ["one", "two"]

    def test_nothing(self) -> None:
        assert scan_exports("console.log(1);") == []


class TestDetectExports:
    def test_installed_package(self, tmp_path: Path) -> None:
        install(tmp_path, "exenv", {"index.js": "exports.canUseDOM = true;"})
        assert detect_exports(tmp_path, "exenv") == ["canUseDOM"]

    def test_missing_package(self, tmp_path: Path) -> None:
        assert detect_exports(tmp_path, "exenv") is None

    def test_nothing_detected(self, tmp_path: Path) -> None:
        install(tmp_path, "exenv", {"index.js": "module.exports = factory();"})
        assert detect_exports(tmp_path, "exenv") is None


class TestKnownNamedExports:
    def test_static_fallback(self, tmp_path: Path) -> None:
        table = known_named_exports(tmp_path)
        assert set(table) == set(PACKAGES_TO_AUTO_DETECT_EXPORTS)
        assert "useState" in table["react/index.js"]
        assert table["prop-types"] == STATIC_NAMED_EXPORTS["prop-types"]

    def test_detection_beats_static(self, tmp_path: Path) -> None:
        install(tmp_path, "scheduler", {"index.js": "exports.unstable_now = now;"})
        table = known_named_exports(tmp_path)
        assert table["scheduler"] == ["unstable_now"]

    def test_declared_beats_detection(self, tmp_path: Path) -> None:
        install(tmp_path, "scheduler", {"index.js": "exports.unstable_now = now;"})
        table = known_named_exports(tmp_path, {"scheduler": ["custom"], "my-lib": ["x"]})
        assert table["scheduler"] == ["custom"]
        assert table["my-lib"] == ["x"]


class TestResolveFrom:
    def test_split_package_request(self) -> None:
        assert split_package_request("react") == ("react", "")
        assert split_package_request("react/index.js") == ("react", "index.js")
        assert split_package_request("@vue/shared/dist/x") == ("@vue/shared", "dist/x")

    def test_module_field_preferred(self, tmp_path: Path) -> None:
        install(
            tmp_path,
            "lib",
            {"esm.js": "", "cjs.js": ""},
            {"module": "esm.js", "main": "cjs.js"},
        )
        assert resolve_from(tmp_path, "lib") == (tmp_path / "node_modules/lib/esm.js").resolve()

    def test_index_fallback_and_subpath(self, tmp_path: Path) -> None:
        install(tmp_path, "lib", {"index.js": "", "util/a.js": ""})
        assert resolve_from(tmp_path, "lib").name == "index.js"
        assert resolve_from(tmp_path, "lib/util/a").name == "a.js"

    def test_walks_up_from_importer(self, tmp_path: Path) -> None:
        install(tmp_path, "lib", {"index.js": ""})
        importer = tmp_path / "src" / "deep" / "main.js"
        importer.parent.mkdir(parents=True)
        assert resolve_from(tmp_path / "elsewhere", "lib", importer) is not None

    def test_missing(self, tmp_path: Path) -> None:
        assert resolve_from(tmp_path, "nope") is None


class TestInternalResolver:
    def test_alias(self, tmp_path: Path) -> None:
        resolver = InternalResolver(tmp_path, alias={"@/": "/src/", "lib": "/vendor/lib.js"})
        assert resolver.alias("@/util") == "/src/util"
        assert resolver.alias("lib") == "/vendor/lib.js"
        assert resolver.alias("other") is None

    def test_request_to_file_tries_extensions(self, tmp_path: Path) -> None:
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.ts").write_text("")
        resolver = InternalResolver(tmp_path)
        assert resolver.request_to_file("/src/main") == tmp_path / "src" / "main.ts"

    def test_custom_resolver_first(self, tmp_path: Path) -> None:
        target = tmp_path / "custom.js"
        target.write_text("")

        class Custom:
            alias = {"x": "/custom.js"}

            def request_to_file(self, public_path: str, root: Path) -> Path | None:
                return target if public_path == "/virtual" else None

        resolver = InternalResolver(tmp_path, resolvers=[Custom()])
        assert resolver.request_to_file("/virtual") == target
        assert resolver.alias("x") == "/custom.js"
