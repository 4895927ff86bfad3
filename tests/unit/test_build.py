"""Tests for the build orchestrator."""

from __future__ import annotations

import json
import re
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pagepack.build import build, create_build_pipeline, ssr_build
from pagepack.compiler_service import CompileResult
from pagepack.config import BuildConfig
from pagepack.errors import BundleError, ConfigError
from pagepack.externals import ExternalList
from pagepack.models import OutputAsset, OutputChunk, WriteType
from pagepack.sourcemap import SourceMap


class TestClientBuild:
    def test_end_to_end_output(self, sample_config: BuildConfig) -> None:
        result = build(sample_config)
        out = sample_config.resolved_out_dir
        assets = sorted(p.name for p in (out / "_assets").iterdir())

        scripts = [a for a in assets if re.fullmatch(r"index\.[0-9a-f]{8}\.js", a)]
        styles = [a for a in assets if re.fullmatch(r"style\.[0-9a-f]{8}\.css", a)]
        assert len(scripts) == 1
        assert len(styles) == 1
        # The image is inlined, so nothing else is emitted
        assert len(assets) == 2

        html = (out / "index.html").read_text()
        assert f'href="/_assets/{styles[0]}"' in html
        assert f'src="/_assets/{scripts[0]}"' in html
        assert html == result.html

    def test_image_inlined_as_data_uri(self, sample_config: BuildConfig) -> None:
        result = build(sample_config)
        chunk = result.chunks[0]
        assert "data:image/png;base64," in chunk.code
        assert not any(a.file_name.endswith(".png") for a in result.static_assets)

    def test_env_and_hot_replaced(self, sample_config: BuildConfig) -> None:
        result = build(sample_config)
        code = result.chunks[0].code
        assert "process.env.NODE_ENV" not in code
        assert '"production"' in code

    def test_stylesheet_content(self, sample_config: BuildConfig) -> None:
        result = build(sample_config)
        css = next(a for a in result.static_assets if a.file_name.endswith(".css"))
        assert "color:   red" in css.source

    def test_minified_stylesheet(self, sample_project: Path) -> None:
        config = BuildConfig(root=sample_project, minify="fast", silent=True)
        with patch("pagepack.stages.compile.ensure_service") as service:
            service.return_value.transform.side_effect = lambda code, **kw: CompileResult(code)
            result = build(config)
        css = next(a for a in result.static_assets if a.file_name.endswith(".css"))
        assert "/* sample styles */" not in css.source
        assert "color: red;" in css.source

    def test_public_copied(self, sample_config: BuildConfig) -> None:
        build(sample_config)
        robots = sample_config.resolved_out_dir / "robots.txt"
        assert robots.read_text() == "User-agent: *\n"

    def test_write_records(self, sample_config: BuildConfig) -> None:
        result = build(sample_config)
        types = [record.type for record in result.writes]
        assert types == [WriteType.JS, WriteType.CSS, WriteType.HTML]
        for record in result.writes:
            assert record.size == record.path.stat().st_size
            assert record.compressed_size > 0

    def test_deterministic(self, sample_config: BuildConfig) -> None:
        first = build(sample_config)
        first_files = {
            p.relative_to(sample_config.resolved_out_dir): p.read_bytes()
            for p in sample_config.resolved_out_dir.rglob("*")
            if p.is_file()
        }
        second = build(sample_config)
        second_files = {
            p.relative_to(sample_config.resolved_out_dir): p.read_bytes()
            for p in sample_config.resolved_out_dir.rglob("*")
            if p.is_file()
        }
        assert [a.file_name for a in first.assets] == [a.file_name for a in second.assets]
        assert first_files == second_files

    def test_out_dir_recreated(self, sample_config: BuildConfig) -> None:
        out = sample_config.resolved_out_dir
        out.mkdir()
        (out / "stale.txt").write_text("old")
        build(sample_config)
        assert not (out / "stale.txt").exists()

    def test_no_write(self, sample_project: Path) -> None:
        config = BuildConfig(root=sample_project, minify=False, silent=True, write=False)
        result = build(config)
        assert not (sample_project / "dist").exists()
        assert result.writes == []
        assert "<script" in result.html

    def test_emit_index_disabled(self, sample_project: Path) -> None:
        config = BuildConfig(root=sample_project, minify=False, silent=True, emit_index=False)
        result = build(config)
        assert result.html == ""
        assert not (sample_project / "dist" / "index.html").exists()

    def test_custom_base_and_assets_dir(self, sample_project: Path) -> None:
        config = BuildConfig(
            root=sample_project,
            minify=False,
            silent=True,
            base="/app",
            assets_dir="static",
        )
        result = build(config)
        assert 'src="/app/static/index.' in result.html
        assert (sample_project / "dist" / "static").is_dir()

    def test_large_image_emitted(self, sample_project: Path) -> None:
        config = BuildConfig(
            root=sample_project, minify=False, silent=True, assets_inline_limit=10
        )
        result = build(config)
        images = [a for a in result.static_assets if a.file_name.endswith(".png")]
        assert len(images) == 1
        assert re.fullmatch(r"logo\.[0-9a-f]{8}\.png", images[0].file_name)
        assert f"/_assets/{images[0].file_name}" in result.chunks[0].code
        assert (sample_project / "dist" / "_assets" / images[0].file_name).is_file()

    def test_no_styles_no_stylesheet(self, sample_project: Path) -> None:
        (sample_project / "src" / "main.js").write_text('console.log("hi");\n')
        config = BuildConfig(root=sample_project, minify=False, silent=True)
        result = build(config)
        assert not any(a.file_name.endswith(".css") for a in result.static_assets)
        assert "stylesheet" not in result.html

    def test_sourcemap_written(self, sample_project: Path) -> None:
        config = BuildConfig(root=sample_project, minify=False, silent=True, sourcemap=True)
        result = build(config)
        chunk = result.chunks[0]
        js_path = sample_project / "dist" / "_assets" / chunk.file_name
        assert js_path.read_text().endswith(f"//# sourceMappingURL={chunk.file_name}.map")
        assert js_path.with_name(chunk.file_name + ".map").is_file()
        assert WriteType.SOURCE_MAP in [r.type for r in result.writes]

    def test_minified_sourcemap_matches_code(self, sample_project: Path) -> None:
        terser_map = SourceMap.from_segments([[(0, 0, 0, 0)]], ["index.js"]).to_url()
        config = BuildConfig(root=sample_project, minify=True, silent=True, sourcemap=True)
        with (
            patch("pagepack.stages.minify.find_binary", return_value=Path("/bin/terser")),
            patch("pagepack.stages.minify.subprocess.run") as run,
        ):
            run.return_value = MagicMock(
                returncode=0, stdout=f"x();\n//# sourceMappingURL={terser_map}", stderr=""
            )
            result = build(config)
        chunk = result.chunks[0]
        assert chunk.code == "x();"
        written = sample_project / "dist" / "_assets" / f"{chunk.file_name}.map"
        data = json.loads(written.read_text())
        assert data["mappings"].count(";") == chunk.code.count("\n")

    def test_unquoted_script_attributes(self, sample_project: Path) -> None:
        (sample_project / "index.html").write_text(
            "<html><body><script type=module src=/src/main.js></script></body></html>"
        )
        result = build(BuildConfig(root=sample_project, minify=False, silent=True))
        chunk = result.chunks[0]
        assert any(m.endswith("main.js") for m in chunk.modules)
        assert "src=/src/main.js" not in result.html
        assert f"/_assets/{chunk.file_name}" in result.html

    def test_commented_out_script_ignored(self, sample_project: Path) -> None:
        (sample_project / "index.html").write_text(
            '<!-- <script type="module" src="/src/old.js"></script> -->\n'
            '<body><script type="module" src="/src/main.js"></script></body>\n'
        )
        result = build(BuildConfig(root=sample_project, minify=False, silent=True))
        assert not any(m.endswith("old.js") for m in result.chunks[0].modules)
        assert result.html.startswith("<!-- <script")

    def test_unknown_input_option(self, sample_project: Path) -> None:
        config = BuildConfig(
            root=sample_project, minify=False, silent=True, input_options={"plugins": []}
        )
        with pytest.raises(ConfigError, match="plugins"):
            build(config)

    def test_progress_messages(self, sample_project: Path, capsys) -> None:
        config = BuildConfig(root=sample_project, minify=False)
        build(config)
        out = capsys.readouterr().out
        assert "Building for production..." in out
        assert "[write]" in out
        assert "Build completed in" in out

    def test_unknown_output_option(self, sample_project: Path) -> None:
        config = BuildConfig(
            root=sample_project, minify=False, silent=True, output_options={"dir": "x"}
        )
        with pytest.raises(ConfigError):
            build(config)


class TestCompilerServiceRelease:
    def test_released_on_success(self, sample_config: BuildConfig) -> None:
        with patch("pagepack.compiler_service.stop_service") as stop:
            build(sample_config)
        stop.assert_called_once()

    def test_released_on_failure(self, sample_project: Path) -> None:
        (sample_project / "index.html").unlink()
        config = BuildConfig(root=sample_project, minify=False, silent=True)
        with patch("pagepack.compiler_service.stop_service") as stop:
            with pytest.raises(BundleError):
                build(config)
        stop.assert_called_once()


class TestSsrBuild:
    def test_output_layout(self, sample_project: Path) -> None:
        config = BuildConfig(root=sample_project, ssr=True, silent=True)
        result = build(config)
        out = sample_project / "dist-ssr"
        assert (out / "index.js").is_file()
        assert not (out / "index.html").exists()
        assert not (out / "robots.txt").exists()
        assert not (sample_project / "dist").exists()
        assert result.html == ""

    def test_commonjs_output(self, sample_project: Path) -> None:
        result = ssr_build(BuildConfig(root=sample_project, silent=True))
        chunk = result.chunks[0]
        assert chunk.file_name == "index.js"
        assert chunk.code.startswith('"use strict";')
        assert "Object.defineProperty(exports" in chunk.code

    def test_no_assets_written(self, sample_project: Path) -> None:
        config = BuildConfig(root=sample_project, ssr=True, silent=True, assets_inline_limit=0)
        ssr_build(config)
        written = [p.name for p in (sample_project / "dist-ssr").iterdir()]
        assert written == ["index.js"]

    def test_framework_external(self, sample_project: Path) -> None:
        (sample_project / "src" / "main.js").write_text(
            'import { createSSRApp } from "vue";\nexport const app = createSSRApp({});\n'
        )
        result = ssr_build(BuildConfig(root=sample_project, silent=True))
        assert 'require("vue")' in result.chunks[0].code

    def test_explicit_out_dir_kept(self, sample_project: Path, tmp_path: Path) -> None:
        target = tmp_path / "server"
        ssr_build(BuildConfig(root=sample_project, silent=True, out_dir=target))
        assert (target / "index.js").is_file()
        assert not (sample_project / "dist-ssr").exists()

    def test_derived_config(self, sample_project: Path) -> None:
        seen = {}

        def fake_build(config: BuildConfig):
            seen["config"] = config
            return None

        with patch("pagepack.build.build", side_effect=fake_build):
            ssr_build(
                BuildConfig(
                    root=sample_project, ssr=True, input_options={"external": "lodash"}
                )
            )
        derived = seen["config"]
        assert derived.ssr is False
        assert derived.resolved_out_dir == sample_project / "dist-ssr"
        assert derived.assets_dir == "."
        assert derived.sfc_options["target"] == "node"
        assert derived.output_options == {
            "format": "cjs",
            "exports": "named",
            "entry_file_names": "[name].js",
        }
        assert derived.emit_index is False
        assert derived.emit_assets is False
        assert derived.css_code_split is False
        assert derived.minify is False
        external = derived.input_options["external"]
        assert isinstance(external, ExternalList)
        assert external.items[0] == "vue"
        assert external.items[-1] == "lodash"


class TestBuildPipeline:
    def test_client_stage_order(self, sample_config: BuildConfig) -> None:
        names = [s.name for s in create_build_pipeline(sample_config).stages]
        assert names[-5:] == [
            "pagepack:html",
            "pagepack:replace-env",
            "pagepack:replace-dev",
            "pagepack:css",
            "pagepack:asset",
        ]

    def test_terser_only_in_default_minify(self, sample_project: Path) -> None:
        for minify, expected in ((True, True), ("fast", False), (False, False)):
            config = BuildConfig(root=sample_project, minify=minify)
            names = [s.name for s in create_build_pipeline(config).stages]
            assert ("pagepack:minify" in names) is expected
            if expected:
                assert names[-1] == "pagepack:minify"

    def test_artifact_types(self, sample_config: BuildConfig) -> None:
        result = build(sample_config)
        assert isinstance(result.assets[0], OutputChunk)
        assert all(isinstance(a, OutputAsset) for a in result.assets[1:])
