"""
Default bundle engine.

Walks static imports from the entry, runs every module through the stage
hooks, and renders the graph as a single chunk in which each module is a
factory registered under its root-relative path. Import and export
statements are rewritten into registry lookups line-for-line, so module
line numbers survive into the chunk and its source map.
"""

from __future__ import annotations

import hashlib
import logging
import os
import posixpath
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import BundleError, ErrorContext, ResolveError
from ..models import BundleWarning, OutputArtifact, OutputAsset, OutputBundle, OutputChunk
from ..sourcemap import SourceMap, compose, identity_map
from ..stages.base import StageCapability, TransformStage
from .base import Bundle, BundleEngine, InputOptions, OutputOptions

logger = logging.getLogger(__name__)

HASH_LENGTH = 8

_QUOTED = r"""(?P<q>["'])(?P<src>[^"'\n]+)(?P=q)"""
IMPORT_FROM_RE = re.compile(
    r"^[ \t]*import\s+(?P<clause>\*\s*as\s+[\w$]+|\{[^}]*\}|[\w$]+"
    r"(?:\s*,\s*(?:\{[^}]*\}|\*\s*as\s+[\w$]+))?)\s*from\s*" + _QUOTED + r"[ \t]*;?",
    re.M,
)
BARE_IMPORT_RE = re.compile(r"^[ \t]*import\s*" + _QUOTED + r"[ \t]*;?", re.M)
EXPORT_FROM_RE = re.compile(
    r"^[ \t]*export\s*(?P<clause>\*(?:\s*as\s+[\w$]+)?|\{[^}]*\})\s*from\s*"
    + _QUOTED
    + r"[ \t]*;?",
    re.M,
)
EXPORT_LIST_RE = re.compile(r"^[ \t]*export\s*\{(?P<names>[^}]*)\}[ \t]*;?", re.M)
EXPORT_DECL_RE = re.compile(
    r"^(?P<indent>[ \t]*)export\s+(?P<default>default\s+)?"
    r"(?P<kw>(?:async\s+)?function(?:\s*\*\s*|\s+)|class\s+|const\s+|let\s+|var\s+)"
    r"(?P<name>[A-Za-z_$][\w$]*)",
    re.M,
)
EXPORT_DEFAULT_RE = re.compile(r"^(?P<indent>[ \t]*)export\s+default\s+", re.M)

RUNTIME = """\
const __modules = Object.create(null);
const __cache = Object.create(null);
function __define(id, factory) { __modules[id] = factory; }
function __require(id) {
  if (id in __cache) return __cache[id].exports;
  const module = (__cache[id] = { exports: {} });
  Object.defineProperty(module.exports, "__esModule", { value: true });
  __modules[id].call(undefined, module, module.exports);
  return module.exports;
}
function __default(m) {
  return m && (m.__esModule || m[Symbol.toStringTag] === "Module") ? m.default : m;
}
function __export(target, getters) {
  for (const k in getters) Object.defineProperty(target, k, { enumerable: true, get: getters[k] });
}
function __exportStar(target, source) {
  for (const k in source) {
    if (k !== "default" && !(k in target)) {
      Object.defineProperty(target, k, { enumerable: true, get: () => source[k] });
    }
  }
}
"""


def scan_imports(code: str) -> list[str]:
    """Return static import specifiers in source order, without duplicates."""
    found: list[tuple[int, str]] = []
    for pattern in (IMPORT_FROM_RE, BARE_IMPORT_RE, EXPORT_FROM_RE):
        found.extend((m.start(), m.group("src")) for m in pattern.finditer(code))
    seen: dict[str, None] = {}
    for _, spec in sorted(found):
        seen.setdefault(spec, None)
    return list(seen)


def _split_names(names: str) -> list[tuple[str, str]]:
    """Parse ``a, b as c`` into [(imported, local)]."""
    pairs = []
    for part in re.sub(r"/\*.*?\*/|//[^\n]*", "", names, flags=re.S).split(","):
        part = " ".join(part.split())
        if not part:
            continue
        if " as " in part:
            imported, local = part.split(" as ", 1)
            pairs.append((imported.strip(), local.strip()))
        else:
            pairs.append((part, part))
    return pairs


def _pad(original: str, replacement: str) -> str:
    """Keep the line count of ``original`` so later lines don't shift."""
    return replacement + "\n" * original.count("\n")


def rewrite_module(code: str, dep_ref: Callable[[str], str]) -> str:
    """
    Rewrite ES module syntax into registry calls.

    Args:
        code: Module source after all transforms
        dep_ref: Maps an import specifier to a JS expression evaluating to
            that module's exports object

    Returns:
        Factory body code with the same number of lines.
    """
    getters: list[str] = []
    counter = iter(range(1_000_000))

    def export_from(m: re.Match[str]) -> str:
        clause = m.group("clause").strip()
        ref = dep_ref(m.group("src"))
        if clause == "*":
            return _pad(m.group(0), f"__exportStar(exports, {ref});")
        temp = f"__reexport_{next(counter)}"
        if clause.startswith("*"):
            getters.append(f"{clause.split()[-1]}: () => {temp}")
        else:
            for imported, local in _split_names(clause[1:-1]):
                getters.append(f"{_prop(local)}: () => {temp}[{_js_str(imported)}]")
        return _pad(m.group(0), f"const {temp} = {ref};")

    def import_from(m: re.Match[str]) -> str:
        clause = m.group("clause").strip()
        ref = dep_ref(m.group("src"))
        if clause.startswith(("{", "*")):
            default, rest = "", clause
        else:
            default, _, rest = clause.partition(",")
            default, rest = default.strip(), rest.strip()
        statements = []
        if default and rest:
            temp = f"__import_{next(counter)}"
            statements.append(f"const {temp} = {ref};")
            ref = temp
        if default:
            statements.append(f"const {default} = __default({ref});")
        if rest.startswith("*"):
            statements.append(f"const {rest.split()[-1]} = {ref};")
        elif rest.startswith("{"):
            bindings = ", ".join(
                local if imported == local else f"{_prop(imported)}: {local}"
                for imported, local in _split_names(rest[1:-1])
            )
            statements.append(f"const {{ {bindings} }} = {ref};")
        return _pad(m.group(0), " ".join(statements))

    def bare_import(m: re.Match[str]) -> str:
        return _pad(m.group(0), f"{dep_ref(m.group('src'))};")

    def export_list(m: re.Match[str]) -> str:
        for local, exported in _split_names(m.group("names")):
            getters.append(f"{_prop(exported)}: () => {local}")
        return _pad(m.group(0), "")

    def export_decl(m: re.Match[str]) -> str:
        name = m.group("name")
        exported = "default" if m.group("default") else name
        getters.append(f"{exported}: () => {name}")
        return f"{m.group('indent')}{m.group('kw')}{name}"

    code = EXPORT_FROM_RE.sub(export_from, code)
    code = IMPORT_FROM_RE.sub(import_from, code)
    code = BARE_IMPORT_RE.sub(bare_import, code)
    code = EXPORT_LIST_RE.sub(export_list, code)
    code = EXPORT_DECL_RE.sub(export_decl, code)
    code = EXPORT_DEFAULT_RE.sub(lambda m: f"{m.group('indent')}exports.default = ", code)
    if getters:
        # Same line as the first statement so line numbers are unchanged.
        code = f"__export(exports, {{ {', '.join(getters)} }}); " + code
    return code


def _js_str(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _prop(name: str) -> str:
    return name if re.fullmatch(r"[A-Za-z_$][\w$]*", name) else _js_str(name)


def _is_path_request(source: str) -> bool:
    return source.startswith((".", "/")) or os.path.isabs(source)


@dataclass
class Dependency:
    specifier: str
    module_id: str
    external: bool = False


@dataclass
class Module:
    id: str
    key: str
    original: str
    code: str
    maps: list[SourceMap] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    # Name of the first stage that changed the code without a map.
    map_broken_by: str | None = None

    def source_map(self) -> SourceMap | None:
        """Compose the stage maps onto the loaded text, or None if a stage broke it."""
        if self.map_broken_by is not None:
            return None
        current = identity_map(self.key, self.original)
        for stage_map in self.maps:
            current = compose(stage_map, current)
        return current


class _Context:
    """``BundleContext`` implementation handed to stage hooks."""

    def __init__(self, graph: ModuleGraph):
        self.graph = graph
        self.pending: OutputBundle = {}
        self.output: OutputBundle | None = None

    def emit_asset(self, file_name: str, source: str | bytes, name: str | None = None) -> str:
        target = self.output if self.output is not None else self.pending
        target[file_name] = OutputAsset(file_name=file_name, source=source, name=name)
        return file_name

    def warn(self, code: str, message: str, module_id: str | None = None) -> None:
        self.graph.warn(BundleWarning(code=code, message=message, module_id=module_id))

    def resolve(
        self, source: str, importer: str | None, skip: TransformStage | None = None
    ) -> str | None:
        return self.graph.resolve(source, importer, skip)


class ModuleGraph(Bundle):
    """The module graph built by ``ModuleGraphEngine``."""

    def __init__(self, options: InputOptions):
        self.options = options
        self.modules: dict[str, Module] = {}
        self.order: list[str] = []
        self.externals: list[str] = []
        self.ctx = _Context(self)
        entry = Path(options.input.split("?", 1)[0])
        self.base_dir = entry.parent if entry.is_absolute() else Path.cwd()

    def _stages(self, capability: StageCapability) -> list[TransformStage]:
        return [s for s in self.options.stages if s.has(capability)]

    def warn(self, warning: BundleWarning) -> None:
        if self.options.on_warn is not None:
            self.options.on_warn(warning, _log_warning)
        else:
            _log_warning(warning)

    def key_for(self, module_id: str) -> str:
        path, sep, query = module_id.partition("?")
        if not os.path.isabs(path):
            return module_id
        key = Path(os.path.relpath(path, self.base_dir)).as_posix()
        return key + sep + query

    # -- graph construction -------------------------------------------------

    def resolve(
        self, source: str, importer: str | None, skip: TransformStage | None = None
    ) -> str | None:
        for stage in self._stages(StageCapability.RESOLVE):
            if stage is skip:
                continue
            resolved = stage.resolve_id(source, importer, self.ctx)
            if resolved is not None:
                return resolved
        if _is_path_request(source):
            if os.path.isabs(source) and Path(source).is_file():
                return source
            if importer is not None:
                base = posixpath.dirname(Path(importer.split("?", 1)[0]).as_posix())
                candidate = Path(posixpath.normpath(posixpath.join(base, source)))
                if candidate.is_file():
                    return str(candidate)
        return None

    def _load(self, module_id: str) -> str:
        for stage in self._stages(StageCapability.RESOLVE):
            loaded = stage.load(module_id, self.ctx)
            if loaded is not None:
                return loaded
        path = Path(module_id.split("?", 1)[0])
        if not path.is_file():
            raise BundleError(f"Could not load {module_id}: file not found")
        return path.read_text(encoding="utf-8")

    def _transform(self, module: Module) -> None:
        for stage in self._stages(StageCapability.TRANSFORM):
            result = stage.transform(module.code, module.id, self.ctx)
            if result is None:
                continue
            if result.map is not None:
                module.maps.append(result.map)
            elif result.code != module.code and module.map_broken_by is None:
                module.map_broken_by = stage.name
            module.code = result.code

    def build(self) -> None:
        entry = self.resolve(self.options.input, None)
        if entry is None:
            raise BundleError(f"Could not resolve entry module {self.options.input}")
        if self.options.treeshake:
            logger.debug("Tree-shaking options ignored: %s", self.options.treeshake)
        self.entry_id = entry
        self._visit(entry, [])

    def _visit(self, module_id: str, stack: list[str]) -> None:
        if module_id in stack:
            cycle = [*stack[stack.index(module_id) :], module_id]
            self.warn(
                BundleWarning(
                    code="CIRCULAR_DEPENDENCY",
                    message="Circular dependency: "
                    + " -> ".join(self.key_for(m) for m in cycle),
                    module_id=module_id,
                    cycle=cycle,
                )
            )
            return
        if module_id in self.modules:
            return

        code = self._load(module_id)
        module = Module(id=module_id, key=self.key_for(module_id), original=code, code=code)
        self.modules[module_id] = module
        self._transform(module)

        external = self.options.external
        for specifier in scan_imports(module.code):
            if external.is_external(specifier, module_id, False):
                module.dependencies.append(Dependency(specifier, specifier, external=True))
                continue
            resolved = self.resolve(specifier, module_id)
            if resolved is None:
                if _is_path_request(specifier):
                    raise ResolveError(
                        f"Could not resolve '{specifier}'",
                        ErrorContext(file=Path(module_id.split("?", 1)[0])),
                    )
                self.warn(
                    BundleWarning(
                        code="UNRESOLVED_IMPORT",
                        message=f"'{specifier}' is imported by {module.key}, "
                        "but could not be resolved; treating it as external",
                        module_id=module_id,
                    )
                )
                module.dependencies.append(Dependency(specifier, specifier, external=True))
                continue
            if external.is_external(resolved, module_id, True):
                module.dependencies.append(Dependency(specifier, specifier, external=True))
                continue
            module.dependencies.append(Dependency(specifier, resolved))

        stack.append(module_id)
        for dep in module.dependencies:
            if dep.external:
                if dep.module_id not in self.externals:
                    self.externals.append(dep.module_id)
            else:
                self._visit(dep.module_id, stack)
        stack.pop()
        self.order.append(module_id)

    # -- output -------------------------------------------------------------

    def generate(self, options: OutputOptions) -> list[OutputArtifact]:
        if options.format not in ("es", "esm", "cjs"):
            raise BundleError(f"Unsupported output format: {options.format}")
        is_cjs = options.format == "cjs"
        external_refs = {name: f"__ext_{i}" for i, name in enumerate(self.externals)}

        lines: list[str] = []
        if is_cjs:
            lines.append('"use strict";')
        for name, ref in external_refs.items():
            if is_cjs:
                lines.append(f"const {ref} = require({_js_str(name)});")
            else:
                lines.append(f"import * as {ref} from {_js_str(name)};")
        lines.extend(RUNTIME.rstrip("\n").split("\n"))

        segments: list[list[tuple[int, int, int, int]]] = [[] for _ in lines]
        sources: list[str] = []
        contents: list[str | None] = []

        for module_id in self.order:
            module = self.modules[module_id]
            targets = {
                dep.specifier: external_refs[dep.module_id]
                if dep.external
                else f"__require({_js_str(self.modules[dep.module_id].key)})"
                for dep in module.dependencies
            }
            body = rewrite_module(module.code, lambda spec, t=targets: t[spec])
            lines.append(f"__define({_js_str(module.key)}, function (module, exports) {{")
            segments.append([])
            body_lines = body.split("\n")
            module_map = module.source_map() if options.sourcemap else None
            if options.sourcemap and module_map is None:
                self.ctx.warn(
                    "SOURCEMAP_BROKEN",
                    f"Sourcemap is likely to be incorrect: {module.map_broken_by} "
                    f"transformed {module.key} without generating a sourcemap",
                    module.id,
                )
            if module_map is not None:
                index_map = {}
                for i, source in enumerate(module_map.sources):
                    if source not in sources:
                        sources.append(source)
                        content = module_map.sources_content
                        contents.append(content[i] if i < len(content) else None)
                    index_map[i] = sources.index(source)
                mapped = module_map.segments()
                for i in range(len(body_lines)):
                    line_segments = mapped[i] if i < len(mapped) else []
                    segments.append([(c, index_map[s], ln, col) for c, s, ln, col in line_segments])
            else:
                segments.extend([] for _ in body_lines)
            lines.extend(body_lines)
            lines.append("});")
            segments.append([])

        entry_key = _js_str(self.modules[self.entry_id].key)
        if is_cjs:
            lines.append(f"const __entry = __require({entry_key});")
            if options.exports != "none":
                lines.append(
                    "for (const k in __entry) Object.defineProperty(exports, k, "
                    "{ enumerable: true, get: () => __entry[k] });"
                )
        else:
            lines.append(f"__require({entry_key});")
        code = "\n".join(lines) + "\n"

        name = Path(self.entry_id.split("?", 1)[0]).stem
        chunk = OutputChunk(
            file_name="",
            name=name,
            code=code,
            is_entry=True,
            modules=list(self.order),
            imports=list(self.externals),
            facade_module_id=self.entry_id,
        )
        if options.sourcemap:
            chunk.map = SourceMap.from_segments(segments, sources, contents)

        for stage in self._stages(StageCapability.FINALIZE):
            result = stage.render_chunk(chunk.code, chunk, self.ctx)
            if result is None:
                continue
            if chunk.map is not None and result.map is not None:
                chunk.map = compose(result.map, chunk.map)
            elif chunk.map is not None and result.code != chunk.code:
                self.ctx.warn(
                    "SOURCEMAP_BROKEN",
                    f"Sourcemap is likely to be incorrect: {stage.name} "
                    f"changed chunk {chunk.name} without generating a sourcemap",
                )
                chunk.map = None
            chunk.code = result.code

        digest = hashlib.sha256(chunk.code.encode("utf-8")).hexdigest()[:HASH_LENGTH]
        template = options.entry_file_names if chunk.is_entry else options.chunk_file_names
        chunk.file_name = template.replace("[name]", chunk.name).replace("[hash]", digest)
        if chunk.map is not None:
            chunk.map.file = chunk.file_name

        output: OutputBundle = {chunk.file_name: chunk, **self.ctx.pending}
        self.ctx.output = output
        try:
            for stage in self._stages(StageCapability.FINALIZE):
                stage.generate_bundle(output, self.ctx)
        finally:
            self.ctx.output = None
        return list(output.values())


def _log_warning(warning: BundleWarning) -> None:
    logger.warning("%s", warning)


class ModuleGraphEngine(BundleEngine):
    """In-process engine used when no other engine is configured."""

    def bundle(self, options: InputOptions) -> ModuleGraph:
        graph = ModuleGraph(options)
        graph.build()
        return graph
