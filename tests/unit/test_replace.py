"""Tests for the replacement stages."""

from __future__ import annotations

from unittest.mock import MagicMock

from pagepack.stages.replace import (
    ReplaceStage,
    create_dev_flag_replace_stage,
    create_env_replace_stage,
    env_replacements,
    is_app_script,
    is_script,
)

ctx = MagicMock()


class TestPredicates:
    def test_is_script(self) -> None:
        for module_id in ("/a/b.js", "/a/b.ts", "/a/b.jsx", "/a/b.tsx"):
            assert is_script(module_id)
        for module_id in ("/a/b.css", "/a/b.vue", "/a/b.json", "/a/b.html"):
            assert not is_script(module_id)

    def test_is_app_script(self) -> None:
        assert is_app_script("/app/src/main.ts")
        assert is_app_script("/@pagepack/client.js")
        assert is_app_script("/@pagepack/anything")
        assert not is_app_script("/app/node_modules/antd/index.js")
        assert not is_app_script("/app/src/style.css")


class TestEnvReplacements:
    def test_table(self) -> None:
        table = env_replacements({"API": "https://x"}, "production", "/base/")
        assert table["process.env.API"] == '"https://x"'
        assert table["process.env.NODE_ENV"] == '"production"'
        assert table["process.env.BASE_URL"] == '"/base/"'
        assert table["process.env."] == "({})."
        assert table["import.meta.hot"] == "false"

    def test_mode_overrides_env_node_env(self) -> None:
        table = env_replacements({"NODE_ENV": "development"}, "staging", "/")
        assert table["process.env.NODE_ENV"] == '"staging"'


class TestEnvStage:
    def setup_method(self) -> None:
        self.stage = create_env_replace_stage({"API": "https://x"}, "production", "/")

    def test_name(self) -> None:
        assert self.stage.name == "pagepack:replace-env"

    def test_replaces_in_scripts(self) -> None:
        code = "const u = process.env.API;\nif (import.meta.hot) {}\n"
        result = self.stage.transform(code, "/app/src/main.js", ctx)
        assert result.code == 'const u = "https://x";\nif (false) {}\n'

    def test_unknown_env_key(self) -> None:
        result = self.stage.transform("process.env.OTHER", "/app/a.ts", ctx)
        assert result.code == "({}).OTHER"

    def test_longest_key_wins(self) -> None:
        result = self.stage.transform("process.env.NODE_ENV", "/app/a.js", ctx)
        assert result.code == '"production"'

    def test_dependencies_included(self) -> None:
        result = self.stage.transform("process.env.NODE_ENV", "/app/node_modules/x/i.js", ctx)
        assert result.code == '"production"'

    def test_non_script_untouched(self) -> None:
        assert self.stage.transform("process.env.API", "/app/src/style.css", ctx) is None
        assert self.stage.transform("process.env.API", "/app/src/App.vue", ctx) is None

    def test_no_match_returns_none(self) -> None:
        assert self.stage.transform("const a = 1;", "/app/a.js", ctx) is None

    def test_identifier_boundaries(self) -> None:
        assert self.stage.transform("myprocess.env.API", "/app/a.js", ctx) is None


class TestDevFlagStage:
    def setup_method(self) -> None:
        self.stage = create_dev_flag_replace_stage()

    def test_name(self) -> None:
        assert self.stage.name == "pagepack:replace-dev"

    def test_replaces_in_app_code(self) -> None:
        result = self.stage.transform("if (__DEV__) log();", "/app/src/main.js", ctx)
        assert result.code == "if (false) log();"

    def test_replaces_in_internal_modules(self) -> None:
        result = self.stage.transform("__DEV__", "/@pagepack/hmr", ctx)
        assert result.code == "false"

    def test_dependencies_untouched(self) -> None:
        code = "var __DEV__ = true;"
        assert self.stage.transform(code, "/app/node_modules/antd/lib/index.js", ctx) is None

    def test_does_not_replace_env(self) -> None:
        assert self.stage.transform("process.env.NODE_ENV", "/app/a.js", ctx) is None


class TestSourceMaps:
    def test_map_emitted_when_requested(self) -> None:
        stage = ReplaceStage(lambda _: True, {"FOO": "barbaz"}, sourcemap=True)
        result = stage.transform("a\nx = FOO;\n", "/app/a.js", ctx)
        assert result.map is not None
        segments = result.map.segments()
        # Second line maps back to the second original line
        assert segments[1][0][2] == 1

    def test_no_map_by_default(self) -> None:
        stage = ReplaceStage(lambda _: True, {"FOO": "bar"})
        assert stage.transform("FOO", "/app/a.js", ctx).map is None

    def test_empty_table(self) -> None:
        stage = ReplaceStage(lambda _: True, {})
        assert stage.transform("FOO", "/app/a.js", ctx) is None
