"""
External dependency specifications.

The bundle engine decides whether an import stays external using one of
four shapes supplied by the caller: nothing, a list of ids/patterns, a
predicate, or a single id/pattern. Server-rendering builds must always
externalize the UI framework, so ``resolve_external`` merges the
mandatory entries into whatever shape the caller used.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigError

Pattern = str | re.Pattern[str]
ExternalPredicate = Callable[[str, str | None, bool], bool]

FRAMEWORK_PACKAGE = "vue"
FRAMEWORK_SCOPE_RE = re.compile(r"^@vue/")

REQUIRED_EXTERNALS: tuple[Pattern, ...] = (FRAMEWORK_PACKAGE, FRAMEWORK_SCOPE_RE)


def _matches(pattern: Pattern, source: str) -> bool:
    if isinstance(pattern, re.Pattern):
        return pattern.search(source) is not None
    return pattern == source


class ExternalSpec(ABC):
    """Base class for the four external specification shapes."""

    @abstractmethod
    def is_external(self, source: str, importer: str | None, is_resolved: bool) -> bool: ...

    @abstractmethod
    def with_required(self, required: Sequence[Pattern]) -> ExternalSpec:
        """Return a spec that also treats ``required`` as external."""

    @staticmethod
    def from_value(value: Any) -> ExternalSpec:
        """Normalize a raw ``external`` option into a spec."""
        if value is None:
            return NoExternals()
        if isinstance(value, ExternalSpec):
            return value
        if isinstance(value, (str, re.Pattern)):
            return SingleExternal(value)
        if callable(value):
            return PredicateExternals(value)
        if isinstance(value, (list, tuple)):
            return ExternalList(list(value))
        raise ConfigError(f"Unsupported external option: {value!r}")


@dataclass(frozen=True)
class NoExternals(ExternalSpec):
    def is_external(self, source: str, importer: str | None, is_resolved: bool) -> bool:
        return False

    def with_required(self, required: Sequence[Pattern]) -> ExternalSpec:
        return ExternalList(list(required))


@dataclass(frozen=True)
class ExternalList(ExternalSpec):
    items: list[Pattern] = field(default_factory=list)

    def is_external(self, source: str, importer: str | None, is_resolved: bool) -> bool:
        return any(_matches(item, source) for item in self.items)

    def with_required(self, required: Sequence[Pattern]) -> ExternalSpec:
        return ExternalList([*required, *self.items])


@dataclass(frozen=True)
class SingleExternal(ExternalSpec):
    item: Pattern

    def is_external(self, source: str, importer: str | None, is_resolved: bool) -> bool:
        return _matches(self.item, source)

    def with_required(self, required: Sequence[Pattern]) -> ExternalSpec:
        return ExternalList([*required, self.item])


@dataclass(frozen=True)
class PredicateExternals(ExternalSpec):
    predicate: ExternalPredicate

    def is_external(self, source: str, importer: str | None, is_resolved: bool) -> bool:
        return bool(self.predicate(source, importer, is_resolved))

    def with_required(self, required: Sequence[Pattern]) -> ExternalSpec:
        user_predicate = self.predicate

        def merged(source: str, importer: str | None, is_resolved: bool) -> bool:
            if any(_matches(pattern, source) for pattern in required):
                return True
            return user_predicate(source, importer, is_resolved)

        return PredicateExternals(merged)


def resolve_external(user_external: Any = None) -> ExternalSpec:
    """Merge the framework packages into the caller's external option."""
    return ExternalSpec.from_value(user_external).with_required(REQUIRED_EXTERNALS)
