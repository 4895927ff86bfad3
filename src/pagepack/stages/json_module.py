"""
JSON files as ES modules: a default export of the whole document plus a
``const`` export for every top-level key that is a valid identifier.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import BundleError, ErrorContext
from ..sourcemap import empty_map
from .base import StageCapability, TransformResult, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")
RESERVED_WORDS = frozenset(
    "break case catch class const continue debugger default delete do else enum export "
    "extends false finally for function if import in instanceof new null return super "
    "switch this throw true try typeof var void while with yield let static await".split()
)


def json_to_module(data: object, indent: int = 2) -> str:
    if not isinstance(data, dict):
        return f"export default {json.dumps(data, indent=indent)};\n"
    lines = []
    for key, value in data.items():
        if _IDENTIFIER_RE.match(key) and key not in RESERVED_WORDS:
            lines.append(f"export const {key} = {json.dumps(value, indent=indent)};")
    lines.append(f"export default {json.dumps(data, indent=indent)};")
    return "\n".join(lines) + "\n"


class JsonStage(TransformStage):
    name = "pagepack:json"
    capabilities = StageCapability.TRANSFORM

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        if not module_id.split("?", 1)[0].endswith(".json"):
            return None
        try:
            data = json.loads(code)
        except ValueError as e:
            raise BundleError(
                f"Could not parse JSON: {e}",
                ErrorContext(file=Path(module_id.split("?", 1)[0])),
            ) from e
        code = json_to_module(data)
        return TransformResult(code, empty_map(module_id, code))
