"""
Pipeline assembly.

``create_base_stages`` is the single place that knows the order stages run
in. The order is significant: each stage sees the module text, and the
module ids, left by the stages before it.

1. caller stages, so they see untransformed ids
2. project resolution (aliases, custom resolvers) before anything reads files
3. fast compilation of TypeScript/JSX
4. single-file components
5. JSON modules
6. caller content transforms
7. node_modules resolution
8. CommonJS interop

The build adds the client stages after these (see ``build.py``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .models import BundleWarning
from .named_exports import known_named_exports
from .resolver import InternalResolver
from .stages import (
    CommonJsStage,
    CompileStage,
    JsonStage,
    NodeResolveStage,
    ResolveStage,
    SfcStage,
    TransformStage,
    UserTransformStage,
)

if TYPE_CHECKING:
    from .config import BuildConfig
    from .engine.base import WarningSink

logger = logging.getLogger(__name__)

# Warnings the engine raises for code that is fine in practice.
WARNING_IGNORE_LIST = frozenset({"CIRCULAR_DEPENDENCY", "THIS_IS_UNDEFINED"})


def on_warning(warning: BundleWarning, warn: WarningSink) -> None:
    """Drop ignored warning categories, pass everything else to ``warn``."""
    if warning.code in WARNING_IGNORE_LIST:
        logger.debug("Ignored warning %s", warning)
        return
    warn(warning)


def create_base_stages(
    root: Path,
    resolver: InternalResolver,
    config: BuildConfig,
    user_stages: list[TransformStage] | None = None,
) -> list[TransformStage]:
    """
    Build the ordered list of resolution and compilation stages.

    Args:
        root: Project root
        resolver: Internal resolver built from the alias table and resolvers
        config: Resolved build configuration
        user_stages: Caller stages, placed first

    Returns:
        Stages in the order the engine must run them.
    """
    stages: list[TransformStage | None] = [
        *(user_stages or []),
        ResolveStage(resolver),
        CompileStage(
            root,
            minify=config.minify == "fast",
            jsx=config.jsx,
            sourcemap=config.sourcemap,
        ),
        SfcStage(
            root,
            options=config.sfc_options,
            compiler_options=config.sfc_compiler_options,
            is_production=config.mode == "production",
        ),
        JsonStage(),
        UserTransformStage(config.transforms) if config.transforms else None,
        NodeResolveStage(root),
        CommonJsStage(
            root,
            named_exports=known_named_exports(root, config.commonjs_named_exports),
            sourcemap=config.sourcemap,
        ),
    ]
    assembled = [stage for stage in stages if stage is not None]
    logger.debug("Base stages: %s", [stage.name for stage in assembled])
    return assembled
