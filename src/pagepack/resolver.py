"""
Module request resolution.

``InternalResolver`` maps public request paths (``/src/main.js``) and
aliased ids onto files below the project root. ``resolve_from`` finds a
dependency file inside ``node_modules`` the way a Node-style lookup does.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

SUPPORTED_EXTS = [".mjs", ".js", ".ts", ".jsx", ".tsx", ".json"]


@runtime_checkable
class Resolver(Protocol):
    """Custom resolver supplied through the ``resolvers`` option."""

    def request_to_file(self, public_path: str, root: Path) -> Path | None: ...


def _with_extensions(path: Path) -> Path | None:
    """Return ``path`` or the first extension/index variant that is a file."""
    if path.is_file():
        return path
    for ext in SUPPORTED_EXTS:
        candidate = path.with_name(path.name + ext)
        if candidate.is_file():
            return candidate
    if path.is_dir():
        for ext in SUPPORTED_EXTS:
            candidate = path / f"index{ext}"
            if candidate.is_file():
                return candidate
    return None


def split_package_request(request: str) -> tuple[str, str]:
    """Split ``@scope/pkg/sub/path`` into (``@scope/pkg``, ``sub/path``)."""
    parts = request.split("/")
    if request.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2]), "/".join(parts[2:])
    return parts[0], "/".join(parts[1:])


def _package_entry(package_dir: Path) -> Path | None:
    manifest = package_dir / "package.json"
    if manifest.is_file():
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.debug("Unreadable package.json in %s", package_dir)
            data = {}
        for field_name in ("module", "main"):
            entry = data.get(field_name)
            if isinstance(entry, str) and entry:
                found = _with_extensions(package_dir / entry)
                if found:
                    return found
    return _with_extensions(package_dir / "index")


def resolve_from(root: Path, request: str, importer: Path | None = None) -> Path | None:
    """
    Resolve a bare dependency request to a file.

    Walks ``node_modules`` directories from the importer's directory (or
    ``root``) up to the filesystem root.

    Args:
        root: Project root, used when there is no importer
        request: Bare specifier, e.g. ``react`` or ``react/index.js``
        importer: File doing the import

    Returns:
        Path to the resolved file, or None if nothing matches.
    """
    package_name, subpath = split_package_request(request)
    start = importer.parent if importer else root
    for directory in [start, *start.parents]:
        package_dir = directory / "node_modules" / package_name
        if not package_dir.is_dir():
            continue
        if subpath:
            found = _with_extensions(package_dir / subpath)
        else:
            found = _package_entry(package_dir)
        if found:
            return found.resolve()
    return None


class InternalResolver:
    """Alias table plus custom resolvers, rooted at the project root."""

    def __init__(
        self,
        root: Path,
        resolvers: Sequence[Resolver] = (),
        alias: Mapping[str, str] | None = None,
    ):
        self.root = root
        self.resolvers = list(resolvers)
        self.alias_table = dict(alias or {})
        for resolver in self.resolvers:
            extra = getattr(resolver, "alias", None)
            if isinstance(extra, Mapping):
                self.alias_table.update(extra)

    def alias(self, request: str) -> str | None:
        """Apply the alias table. Keys ending in ``/`` alias a directory prefix."""
        if request in self.alias_table:
            return self.alias_table[request]
        for key, target in self.alias_table.items():
            if key.endswith("/") and request.startswith(key):
                return target.rstrip("/") + "/" + request[len(key) :]
        return None

    def request_to_file(self, public_path: str) -> Path | None:
        """Map a root-absolute request to an existing file."""
        for resolver in self.resolvers:
            found = resolver.request_to_file(public_path, self.root)
            if found:
                found_file = _with_extensions(Path(found))
                if found_file:
                    return found_file
        return _with_extensions(self.root / public_path.lstrip("/"))
