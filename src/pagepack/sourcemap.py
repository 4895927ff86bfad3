"""
Source map support for the build pipeline.

Provides the v3 source map model, the base64 VLQ codec, a small
edit-tracking string (``TextEdits``) used by stages that rewrite module
text, and composition of maps produced by consecutive stages.

Maps are line-accurate: every generated line that originates from source
text carries a segment pointing at its original line. Stages asking for
``hires`` output also get a segment at every edit boundary.
"""

from __future__ import annotations

import base64
import bisect
import json
import re
from dataclasses import dataclass, field
from typing import Any

# (generated column, source index, original line, original column)
Segment = tuple[int, int, int, int]

_B64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_B64_INDEX = {c: i for i, c in enumerate(_B64)}

_INLINE_MAP_RE = re.compile(
    r"\n?//# sourceMappingURL=data:application/json;(?:charset=utf-8;)?base64,"
    r"([A-Za-z0-9+/=]+)\s*$"
)


def _encode_vlq(value: int) -> str:
    vlq = (-value << 1) | 1 if value < 0 else value << 1
    out = []
    while True:
        digit = vlq & 31
        vlq >>= 5
        if vlq:
            digit |= 32
        out.append(_B64[digit])
        if not vlq:
            return "".join(out)


def _decode_vlq(text: str) -> list[int]:
    values = []
    shift = 0
    acc = 0
    for char in text:
        digit = _B64_INDEX[char]
        acc += (digit & 31) << shift
        if digit & 32:
            shift += 5
            continue
        values.append(-(acc >> 1) if acc & 1 else acc >> 1)
        shift = 0
        acc = 0
    return values


def encode_mappings(lines: list[list[Segment]]) -> str:
    """Encode decoded segments into a v3 ``mappings`` string."""
    prev_source = prev_line = prev_col = 0
    encoded_lines = []
    for segments in lines:
        prev_gen_col = 0
        encoded = []
        for gen_col, source, line, col in segments:
            encoded.append(
                _encode_vlq(gen_col - prev_gen_col)
                + _encode_vlq(source - prev_source)
                + _encode_vlq(line - prev_line)
                + _encode_vlq(col - prev_col)
            )
            prev_gen_col, prev_source, prev_line, prev_col = gen_col, source, line, col
        encoded_lines.append(",".join(encoded))
    return ";".join(encoded_lines)


def decode_mappings(mappings: str) -> list[list[Segment]]:
    """Decode a v3 ``mappings`` string. Segments without a source are dropped."""
    source = line = col = 0
    lines: list[list[Segment]] = []
    for encoded_line in mappings.split(";"):
        gen_col = 0
        segments: list[Segment] = []
        for encoded in filter(None, encoded_line.split(",")):
            values = _decode_vlq(encoded)
            gen_col += values[0]
            if len(values) < 4:
                continue
            source += values[1]
            line += values[2]
            col += values[3]
            segments.append((gen_col, source, line, col))
        lines.append(segments)
    return lines


@dataclass
class SourceMap:
    """A v3 source map."""

    sources: list[str]
    mappings: str
    sources_content: list[str | None] = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    file: str | None = None
    version: int = 3

    @classmethod
    def from_segments(
        cls,
        lines: list[list[Segment]],
        sources: list[str],
        sources_content: list[str | None] | None = None,
        file: str | None = None,
    ) -> SourceMap:
        return cls(
            sources=list(sources),
            mappings=encode_mappings(lines),
            sources_content=list(sources_content or []),
            file=file,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceMap:
        return cls(
            sources=list(data.get("sources", [])),
            mappings=data.get("mappings", ""),
            sources_content=list(data.get("sourcesContent", [])),
            names=list(data.get("names", [])),
            file=data.get("file"),
            version=data.get("version", 3),
        )

    def segments(self) -> list[list[Segment]]:
        return decode_mappings(self.mappings)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "sources": self.sources,
            "sourcesContent": self.sources_content,
            "names": self.names,
            "mappings": self.mappings,
        }
        if self.file:
            data["file"] = self.file
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_url(self) -> str:
        """Return the map as a base64 ``data:`` URL."""
        payload = base64.b64encode(self.to_json().encode("utf-8")).decode("ascii")
        return f"data:application/json;charset=utf-8;base64,{payload}"

    def __str__(self) -> str:
        return self.to_json()


def identity_map(source: str, code: str, content: str | None = None) -> SourceMap:
    """Map every line of ``code`` onto the same line of ``source``."""
    lines = [[(0, 0, i, 0)] for i in range(code.count("\n") + 1)]
    return SourceMap.from_segments(lines, [source], [content if content is not None else code])


def empty_map(source: str, code: str) -> SourceMap:
    """Map for generated text with no counterpart in ``source``."""
    lines: list[list[Segment]] = [[] for _ in range(code.count("\n") + 1)]
    return SourceMap.from_segments(lines, [source], [None])


def compose(outer: SourceMap, inner: SourceMap) -> SourceMap:
    """
    Chain two maps.

    ``outer`` maps the final code onto an intermediate text whose own map
    onto the original sources is ``inner``.
    """
    inner_lines = inner.segments()
    composed: list[list[Segment]] = []
    for segments in outer.segments():
        out: list[Segment] = []
        for gen_col, _source, line, col in segments:
            if line >= len(inner_lines) or not inner_lines[line]:
                continue
            candidates = inner_lines[line]
            cols = [seg[0] for seg in candidates]
            idx = max(bisect.bisect_right(cols, col) - 1, 0)
            _, src, orig_line, orig_col = candidates[idx]
            out.append((gen_col, src, orig_line, orig_col))
        composed.append(out)
    return SourceMap.from_segments(composed, inner.sources, inner.sources_content, outer.file)


def split_inline_source_map(code: str) -> tuple[str, SourceMap | None]:
    """Strip a trailing inline ``sourceMappingURL`` comment and decode it."""
    match = _INLINE_MAP_RE.search(code)
    if not match:
        return code, None
    data = json.loads(base64.b64decode(match.group(1)).decode("utf-8"))
    return code[: match.start()], SourceMap.from_dict(data)


class TextEdits:
    """
    Edit-tracking string.

    Records overwrites against the original text so the result can be
    rendered together with a source map of the edits.
    """

    def __init__(self, original: str):
        self.original = original
        self._edits: list[tuple[int, int, str]] = []
        self._prefix = ""
        self._suffix = ""

    @property
    def has_changes(self) -> bool:
        return bool(self._edits or self._prefix or self._suffix)

    def overwrite(self, start: int, end: int, text: str) -> None:
        for s, e, _ in self._edits:
            if start < e and s < end:
                raise ValueError(f"Overlapping edit at {start}:{end}")
        self._edits.append((start, end, text))

    def prepend(self, text: str) -> None:
        self._prefix = text + self._prefix

    def append(self, text: str) -> None:
        self._suffix += text

    def _pieces(self) -> list[tuple[str, int | None, bool]]:
        pieces: list[tuple[str, int | None, bool]] = []
        if self._prefix:
            pieces.append((self._prefix, None, False))
        cursor = 0
        for start, end, text in sorted(self._edits):
            if start > cursor:
                pieces.append((self.original[cursor:start], cursor, True))
            pieces.append((text, start, False))
            cursor = end
        if cursor < len(self.original):
            pieces.append((self.original[cursor:], cursor, True))
        if self._suffix:
            pieces.append((self._suffix, None, False))
        return pieces

    def __str__(self) -> str:
        return "".join(text for text, _, _ in self._pieces())

    def generate_map(self, source: str, *, hires: bool = False) -> SourceMap:
        line_starts = [0] + [m.end() for m in re.finditer("\n", self.original)]

        def position(offset: int) -> tuple[int, int]:
            line = bisect.bisect_right(line_starts, offset) - 1
            return line, offset - line_starts[line]

        lines: list[list[Segment]] = [[]]
        gen_col = 0

        def add(col: int, offset: int) -> None:
            current = lines[-1]
            if current and current[-1][0] == col:
                return
            orig_line, orig_col = position(offset)
            current.append((col, 0, orig_line, orig_col))

        for text, offset, is_original in self._pieces():
            parts = text.split("\n")
            for index, part in enumerate(parts):
                if index:
                    lines.append([])
                    gen_col = 0
                if offset is not None and (hires or gen_col == 0):
                    if is_original:
                        consumed = sum(len(p) + 1 for p in parts[:index])
                        add(gen_col, offset + consumed)
                    else:
                        add(gen_col, offset)
                gen_col += len(part)
        return SourceMap.from_segments(lines, [source], [self.original])
