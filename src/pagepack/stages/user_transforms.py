"""
Caller-declared content transforms.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .base import StageCapability, TransformResult, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext


@dataclass
class UserTransform:
    """
    A content transform applied to modules whose id passes ``test``.

    Both callables receive the file path and the query string (without
    ``?``) of the module id; ``transform`` also receives the current code
    and returns the new code.
    """

    test: Callable[[str, str], bool]
    transform: Callable[[str, str, str], str]


def split_id(module_id: str) -> tuple[str, str]:
    path, _, query = module_id.partition("?")
    return path, query


class UserTransformStage(TransformStage):
    name = "pagepack:transforms"
    capabilities = StageCapability.TRANSFORM

    def __init__(self, transforms: list[UserTransform]):
        self.transforms = list(transforms)

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        path, query = split_id(module_id)
        result = code
        for t in self.transforms:
            if t.test(path, query):
                result = t.transform(result, path, query)
        if result == code:
            return None
        return TransformResult(result)
