"""Tests for build configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from pagepack.config import BuildConfig, load_config, read_config_file
from pagepack.errors import ConfigError


class TestBuildConfig:
    def test_defaults(self, tmp_path: Path) -> None:
        config = BuildConfig(root=tmp_path)
        assert config.base == "/"
        assert config.assets_dir == "_assets"
        assert config.assets_inline_limit == 4096
        assert config.minify is True
        assert config.mode == "production"
        assert config.resolved_out_dir == tmp_path.resolve() / "dist"
        assert config.index_path == tmp_path.resolve() / "index.html"

    def test_base_gets_trailing_slash(self, tmp_path: Path) -> None:
        assert BuildConfig(root=tmp_path, base="/app").base == "/app/"
        assert BuildConfig(root=tmp_path, base="/app/").base == "/app/"

    def test_camel_case_names(self, tmp_path: Path) -> None:
        config = BuildConfig(root=tmp_path, outDir="out", assetsInlineLimit=0, cssCodeSplit=False)
        assert config.resolved_out_dir == tmp_path.resolve() / "out"
        assert config.assets_inline_limit == 0
        assert config.css_code_split is False

    def test_absolute_out_dir(self, tmp_path: Path) -> None:
        config = BuildConfig(root=tmp_path, out_dir=tmp_path / "elsewhere")
        assert config.resolved_out_dir == tmp_path / "elsewhere"

    def test_fast_minify(self, tmp_path: Path) -> None:
        assert BuildConfig(root=tmp_path, minify="fast").minify == "fast"


class TestReadConfigFile:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_config_file(tmp_path) == {}

    def test_build_table(self, tmp_path: Path) -> None:
        (tmp_path / "pagepack.toml").write_text('[build]\nbase = "/x/"\noutDir = "out"\n')
        assert read_config_file(tmp_path) == {"base": "/x/", "outDir": "out"}

    def test_malformed(self, tmp_path: Path) -> None:
        (tmp_path / "pagepack.toml").write_text("[build\n")
        with pytest.raises(ConfigError, match="pagepack.toml"):
            read_config_file(tmp_path)

    def test_build_not_a_table(self, tmp_path: Path) -> None:
        (tmp_path / "pagepack.toml").write_text('build = "x"\n')
        with pytest.raises(ConfigError, match="table"):
            read_config_file(tmp_path)


class TestLoadConfig:
    def test_file_values_applied(self, tmp_path: Path) -> None:
        (tmp_path / "pagepack.toml").write_text(
            '[build]\nassetsDir = "static"\nsourcemap = true\n'
        )
        config = load_config(tmp_path)
        assert config.assets_dir == "static"
        assert config.sourcemap is True
        assert config.root == tmp_path.resolve()

    def test_overrides_win_over_camel_case_keys(self, tmp_path: Path) -> None:
        (tmp_path / "pagepack.toml").write_text('[build]\nassetsDir = "static"\n')
        config = load_config(tmp_path, assets_dir="files")
        assert config.assets_dir == "files"

    def test_none_overrides_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "pagepack.toml").write_text('[build]\nbase = "/x/"\n')
        assert load_config(tmp_path, base=None).base == "/x/"

    def test_unknown_option(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid build configuration"):
            load_config(tmp_path, bogus=1)

    def test_invalid_value(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(tmp_path, assets_inline_limit=-1)
