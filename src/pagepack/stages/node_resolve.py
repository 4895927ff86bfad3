"""
Bare dependency specifiers (``react``, ``lodash/debounce``) resolved
against ``node_modules``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..resolver import resolve_from
from .base import StageCapability, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext

logger = logging.getLogger(__name__)


def is_bare(source: str) -> bool:
    return not source.startswith((".", "/", "\0")) and ":" not in source


class NodeResolveStage(TransformStage):
    name = "pagepack:node-resolve"
    capabilities = StageCapability.RESOLVE

    def __init__(self, root: Path):
        self.root = root

    def resolve_id(self, source: str, importer: str | None, ctx: BundleContext) -> str | None:
        if not is_bare(source):
            return None
        importer_path = Path(importer.split("?", 1)[0]) if importer else None
        if importer_path is not None and not importer_path.is_absolute():
            importer_path = None
        found = resolve_from(self.root, source, importer_path)
        if found is None:
            logger.debug("No installed module for %s", source)
            return None
        return str(found)
