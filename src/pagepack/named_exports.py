"""
Named exports for legacy (CommonJS) dependencies.

CommonJS modules have no statically declared exports, so ``import
{ useState } from "react"`` needs a list of the names the package
exposes. Well-known packages are covered by a static table; when a
package is installed, its entry file is also scanned for
``exports.NAME =`` style assignments. Detection is best effort: any
failure just means "no declared names".
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from .resolver import resolve_from

logger = logging.getLogger(__name__)

PACKAGES_TO_AUTO_DETECT_EXPORTS = [
    "react/index.js",
    "react-dom/index.js",
    "react-is",
    "prop-types",
    "scheduler",
    "rxjs",
    "exenv",
    "body-scroll-lock",
]

# Exports of the CommonJS builds of the packages above.
STATIC_NAMED_EXPORTS: dict[str, list[str]] = {
    "react/index.js": [
        "Children",
        "Component",
        "Fragment",
        "Profiler",
        "PureComponent",
        "StrictMode",
        "Suspense",
        "cloneElement",
        "createContext",
        "createElement",
        "createFactory",
        "createRef",
        "forwardRef",
        "isValidElement",
        "lazy",
        "memo",
        "useCallback",
        "useContext",
        "useDebugValue",
        "useEffect",
        "useImperativeHandle",
        "useLayoutEffect",
        "useMemo",
        "useReducer",
        "useRef",
        "useState",
        "version",
    ],
    "react-dom/index.js": [
        "createPortal",
        "findDOMNode",
        "flushSync",
        "hydrate",
        "render",
        "unmountComponentAtNode",
        "unstable_batchedUpdates",
        "unstable_renderSubtreeIntoContainer",
        "version",
    ],
    "react-is": [
        "AsyncMode",
        "ContextConsumer",
        "ContextProvider",
        "Element",
        "ForwardRef",
        "Fragment",
        "Lazy",
        "Memo",
        "Portal",
        "Profiler",
        "StrictMode",
        "Suspense",
        "isContextConsumer",
        "isContextProvider",
        "isElement",
        "isForwardRef",
        "isFragment",
        "isLazy",
        "isMemo",
        "isPortal",
        "isValidElementType",
    ],
    "prop-types": [
        "any",
        "array",
        "arrayOf",
        "bool",
        "checkPropTypes",
        "element",
        "elementType",
        "exact",
        "func",
        "instanceOf",
        "node",
        "number",
        "object",
        "objectOf",
        "oneOf",
        "oneOfType",
        "resetWarningCache",
        "shape",
        "string",
        "symbol",
    ],
    "scheduler": [
        "unstable_IdlePriority",
        "unstable_ImmediatePriority",
        "unstable_LowPriority",
        "unstable_NormalPriority",
        "unstable_UserBlockingPriority",
        "unstable_cancelCallback",
        "unstable_getCurrentPriorityLevel",
        "unstable_next",
        "unstable_now",
        "unstable_runWithPriority",
        "unstable_scheduleCallback",
        "unstable_shouldYield",
        "unstable_wrapCallback",
    ],
    "rxjs": [
        "BehaviorSubject",
        "Observable",
        "ReplaySubject",
        "Subject",
        "Subscription",
        "combineLatest",
        "concat",
        "defer",
        "empty",
        "from",
        "fromEvent",
        "interval",
        "merge",
        "of",
        "throwError",
        "timer",
        "zip",
    ],
    "exenv": ["canUseDOM", "canUseEventListeners", "canUseViewport", "canUseWorkers"],
    "body-scroll-lock": ["clearAllBodyScrollLocks", "disableBodyScroll", "enableBodyScroll"],
}

_EXPORT_ASSIGN_RE = re.compile(r"\b(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*=")
_DEFINE_PROPERTY_RE = re.compile(
    r"Object\.defineProperty\(\s*(?:module\.)?exports\s*,\s*[\"']([A-Za-z_$][\w$]*)[\"']"
)
_EXPORT_OBJECT_RE = re.compile(r"module\.exports\s*=\s*\{([^{}]*)\}")
_OBJECT_KEY_RE = re.compile(r"(?:^|,)\s*([A-Za-z_$][\w$]*)\s*(?=[:,]|$)")


def scan_exports(code: str) -> list[str]:
    """Collect names assigned onto ``exports`` in CommonJS source."""
    names: dict[str, None] = {}
    for match in _EXPORT_ASSIGN_RE.finditer(code):
        names[match.group(1)] = None
    for match in _DEFINE_PROPERTY_RE.finditer(code):
        names[match.group(1)] = None
    for match in _EXPORT_OBJECT_RE.finditer(code):
        for key in _OBJECT_KEY_RE.finditer(match.group(1)):
            names[key.group(1)] = None
    names.pop("__esModule", None)
    return [name for name in names if not name.startswith("_")]


def detect_exports(root: Path, module_id: str) -> list[str] | None:
    """
    Detect the public top-level exports of an installed dependency.

    Returns:
        Non-private export names, or None when the module cannot be
        located or read, or exposes nothing detectable.
    """
    try:
        location = resolve_from(root, module_id)
        if location is None or not location.exists():
            return None
        names = scan_exports(location.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Export detection failed for %s: %s", module_id, e)
        return None
    return names or None


def known_named_exports(
    root: Path,
    declared: Mapping[str, list[str]] | None = None,
) -> dict[str, list[str]]:
    """
    Build the named-export table handed to the CommonJS stage.

    Caller-declared names take precedence; auto-detected packages fall
    back to the installed file, then to the static table.
    """
    table = {key: list(names) for key, names in (declared or {}).items()}
    for module_id in PACKAGES_TO_AUTO_DETECT_EXPORTS:
        table[module_id] = (
            table.get(module_id)
            or detect_exports(root, module_id)
            or list(STATIC_NAMED_EXPORTS.get(module_id, []))
        )
    return table
