"""
Pipeline stages.

Each module holds one concrete stage; ``base`` defines the interface the
bundle engine drives.
"""

from .asset import AssetRegistry, AssetStage
from .base import StageCapability, TransformResult, TransformStage
from .commonjs import CommonJsStage
from .compile import CompileStage
from .css import CssStage
from .html import HtmlStage
from .json_module import JsonStage
from .minify import MinifyStage
from .node_resolve import NodeResolveStage
from .replace import ReplaceStage, create_dev_flag_replace_stage, create_env_replace_stage
from .resolve import ResolveStage
from .sfc import SfcStage
from .user_transforms import UserTransform, UserTransformStage

__all__ = [
    "AssetRegistry",
    "AssetStage",
    "CommonJsStage",
    "CompileStage",
    "CssStage",
    "HtmlStage",
    "JsonStage",
    "MinifyStage",
    "NodeResolveStage",
    "ReplaceStage",
    "ResolveStage",
    "SfcStage",
    "StageCapability",
    "TransformResult",
    "TransformStage",
    "UserTransform",
    "UserTransformStage",
    "create_dev_flag_replace_stage",
    "create_env_replace_stage",
]
