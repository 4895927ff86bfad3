"""
CommonJS interop.

Modules written against ``module.exports`` are wrapped into an ES module:
the original code runs inside a function receiving ``module`` and
``exports``, static ``require("x")`` calls become hoisted namespace
imports, and the final ``module.exports`` value becomes the default
export. Named exports come from the known-exports table for the package
plus any ``exports.NAME =`` assignments found in the code itself.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from ..named_exports import scan_exports
from ..resolver import resolve_from
from ..sourcemap import TextEdits
from .base import StageCapability, TransformResult, TransformStage
from .json_module import RESERVED_WORDS

if TYPE_CHECKING:
    from ..engine.base import BundleContext

logger = logging.getLogger(__name__)

COMMONJS_RE = re.compile(r"\.c?js$")
ESM_SYNTAX_RE = re.compile(r"^[ \t]*(?:import\s*[\w*{\"'$]|export\s*[\w*{$])", re.M)
CJS_SYNTAX_RE = re.compile(r"\bmodule\.exports\b|\bexports\.[\w$]+\s*=|(?<![\w$.])require\s*\(")
REQUIRE_RE = re.compile(r"""(?<![\w$.])require\s*\(\s*(["'])([^"'\n]+)\1\s*\)""")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")

INTEROP = "function __cjs_interop(m) { return m && m.__cjsModule ? m.default : m; }"


def is_commonjs(code: str) -> bool:
    return ESM_SYNTAX_RE.search(code) is None and CJS_SYNTAX_RE.search(code) is not None


def _exportable(name: str) -> bool:
    return (
        _IDENTIFIER_RE.match(name) is not None
        and name not in RESERVED_WORDS
        and not name.startswith("__cjs")
    )


class CommonJsStage(TransformStage):
    name = "pagepack:commonjs"
    capabilities = StageCapability.TRANSFORM

    def __init__(
        self,
        root: Path,
        named_exports: Mapping[str, list[str]] | None = None,
        sourcemap: bool = False,
    ):
        self.root = root
        self.named_exports = dict(named_exports or {})
        self.sourcemap = sourcemap
        self._by_path: dict[str, list[str]] | None = None

    def _table(self) -> dict[str, list[str]]:
        """Named-export table keyed by resolved file path."""
        if self._by_path is None:
            self._by_path = {}
            for key, names in self.named_exports.items():
                if key.startswith("."):
                    location: Path | None = (self.root / key).resolve()
                else:
                    location = resolve_from(self.root, key)
                if location is not None:
                    self._by_path[str(location)] = list(names)
        return self._by_path

    def exports_for(self, module_id: str, code: str) -> list[str]:
        path = module_id.split("?", 1)[0]
        names: dict[str, None] = dict.fromkeys(self._table().get(path, []))
        names.update(dict.fromkeys(scan_exports(code)))
        return [name for name in names if _exportable(name)]

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        path = module_id.split("?", 1)[0]
        if not COMMONJS_RE.search(path) or not is_commonjs(code):
            return None
        logger.debug("Wrapping CommonJS module %s", module_id)

        edits = TextEdits(code)
        deps: dict[str, str] = {}
        for match in REQUIRE_RE.finditer(code):
            ref = deps.setdefault(match.group(2), f"__cjs_dep_{len(deps)}")
            edits.overwrite(match.start(), match.end(), f"__cjs_interop({ref})")

        header = [f'import * as {ref} from "{spec}";' for spec, ref in deps.items()]
        header.append(INTEROP)
        header.append("const __cjs_module = { exports: {} };")
        header.append("(function (module, exports) {")
        edits.prepend("\n".join(header) + "\n")

        footer = [
            "",
            "}).call(__cjs_module.exports, __cjs_module, __cjs_module.exports);",
            "export const __cjsModule = true;",
            "export default __cjs_module.exports;",
        ]
        for name in self.exports_for(module_id, code):
            footer.append(f"export const {name} = __cjs_module.exports.{name};")
        edits.append("\n".join(footer) + "\n")

        return TransformResult(
            code=str(edits),
            map=edits.generate_map(module_id) if self.sourcemap else None,
        )
