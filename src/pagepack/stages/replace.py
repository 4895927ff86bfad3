"""
Literal text replacement.

Replacement happens once per module at transform time, and only for
modules the stage's predicate accepts. Compiled component templates are
rendered into chunks later, so replacing at transform time keeps them out
of reach.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from ..sourcemap import TextEdits
from .base import StageCapability, TransformResult, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext

SCRIPT_RE = re.compile(r"\.(j|t)sx?$")
# Modules served by pagepack itself rather than the project.
INTERNAL_ID_PREFIX = "/@pagepack/"


def is_script(module_id: str) -> bool:
    return SCRIPT_RE.search(module_id) is not None


def is_app_script(module_id: str) -> bool:
    """Internal modules, or scripts that aren't installed dependencies."""
    return module_id.startswith(INTERNAL_ID_PREFIX) or (
        "node_modules" not in module_id and is_script(module_id)
    )


class ReplaceStage(TransformStage):
    """Replace every occurrence of each table key in accepted modules."""

    capabilities = StageCapability.TRANSFORM

    def __init__(
        self,
        test: Callable[[str], bool],
        replacements: Mapping[str, str],
        sourcemap: bool = False,
        name: str = "pagepack:replace",
    ):
        self.name = name
        self.test = test
        self.replacements = dict(replacements)
        self.sourcemap = sourcemap
        keys = sorted(self.replacements, key=len, reverse=True)
        self.pattern = (
            re.compile(r"\b(" + "|".join(re.escape(k) for k in keys) + r")\b") if keys else None
        )

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        if self.pattern is None or not self.test(module_id):
            return None
        edits = TextEdits(code)
        for match in self.pattern.finditer(code):
            edits.overwrite(match.start(), match.end(), self.replacements[match.group(1)])
        if not edits.has_changes:
            return None
        return TransformResult(
            code=str(edits),
            map=edits.generate_map(module_id, hires=True) if self.sourcemap else None,
        )


def env_replacements(env: Mapping[str, str], mode: str, public_base: str) -> dict[str, str]:
    """Replacement table for ``process.env`` references and HMR checks."""
    table = {f"process.env.{key}": json.dumps(value) for key, value in env.items()}
    table["process.env.NODE_ENV"] = json.dumps(mode)
    table["process.env.BASE_URL"] = json.dumps(public_base)
    table["process.env."] = "({})."
    table["import.meta.hot"] = "false"
    return table


def create_env_replace_stage(
    env: Mapping[str, str], mode: str, public_base: str, sourcemap: bool = False
) -> ReplaceStage:
    return ReplaceStage(
        is_script,
        env_replacements(env, mode, public_base),
        sourcemap,
        name="pagepack:replace-env",
    )


def create_dev_flag_replace_stage(sourcemap: bool = False) -> ReplaceStage:
    # Only non-dependency code: some libraries define __DEV__ themselves.
    return ReplaceStage(
        is_app_script,
        {"__DEV__": "false"},
        sourcemap,
        name="pagepack:replace-dev",
    )
