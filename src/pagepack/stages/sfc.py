"""
Single-file component compilation.

``.vue`` files are compiled by an ``SfcCompiler``. The default compiler
runs the project's own ``@vue/compiler-sfc`` in a ``node`` subprocess.
Each style block becomes a virtual stylesheet module imported by the
compiled component, so style extraction works the same as for ``.css``
imports.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from ..errors import CompilerServiceError
from ..resolver import resolve_from
from ..sourcemap import SourceMap, TextEdits, compose
from .base import StageCapability, TransformResult, TransformStage

if TYPE_CHECKING:
    from ..engine.base import BundleContext

logger = logging.getLogger(__name__)

_COMPILE_TIMEOUT = 60
STYLE_QUERY = "?vue&type=style"

_NODE_COMPILE_SCRIPT = r"""
const sfc = require(process.argv[1]);
let input = "";
process.stdin.on("data", (d) => (input += d));
process.stdin.on("end", async () => {
  const { source, filename, options } = JSON.parse(input);
  const id = options.id;
  const ssr = options.target === "node";
  const { descriptor, errors } = sfc.parse(source, { filename });
  if (errors.length) {
    console.error(errors.map(String).join("\n"));
    process.exit(1);
  }
  const scoped = descriptor.styles.some((s) => s.scoped);
  let code = "const __sfc__ = {};";
  let map = null;
  if (descriptor.script || descriptor.scriptSetup) {
    const script = sfc.compileScript(descriptor, {
      id,
      isProd: options.isProduction,
      sourceMap: true,
    });
    code = sfc.rewriteDefault(script.content, "__sfc__");
    map = script.map || null;
  }
  if (descriptor.template) {
    const fn = ssr ? "ssrRender" : "render";
    const tpl = sfc.compileTemplate({
      source: descriptor.template.content,
      filename,
      id,
      scoped,
      ssr,
      isProd: options.isProduction,
      transformAssetUrls: options.transformAssetUrls,
      compilerOptions: { ...options.compilerOptions, scopeId: scoped ? `data-v-${id}` : undefined },
    });
    code += "\n" + tpl.code.replace(`export function ${fn}`, `function ${fn}`);
    code += `\n__sfc__.${fn} = ${fn};`;
  }
  if (scoped) code += `\n__sfc__.__scopeId = "data-v-${id}";`;
  const styles = [];
  const modules = {};
  for (const style of descriptor.styles) {
    const result = await sfc.compileStyleAsync({
      source: style.content,
      filename,
      id: `data-v-${id}`,
      scoped: style.scoped,
      modules: !!style.module,
      modulesOptions: options.cssModulesOptions,
      preprocessLang: options.preprocessStyles ? style.lang : undefined,
    });
    if (result.errors.length) {
      console.error(result.errors.map(String).join("\n"));
      process.exit(1);
    }
    if (style.module) modules[style.module === true ? "$style" : style.module] = result.modules;
    styles.push({ code: result.code, scoped: !!style.scoped, module: !!style.module });
  }
  if (Object.keys(modules).length) code += `\n__sfc__.__cssModules = ${JSON.stringify(modules)};`;
  code += "\nexport default __sfc__;";
  process.stdout.write(JSON.stringify({ code, map, styles }));
});
"""


@dataclass
class SfcStyle:
    code: str
    scoped: bool = False
    module: bool = False


@dataclass
class SfcResult:
    code: str
    styles: list[SfcStyle] = field(default_factory=list)
    map: SourceMap | None = None


class SfcCompiler(Protocol):
    def compile(self, source: str, filename: str, options: dict[str, Any]) -> SfcResult: ...


class NodeSfcCompiler:
    """Compile components with ``@vue/compiler-sfc`` from the project's dependencies."""

    def __init__(self, root: Path):
        self.root = root

    def compile(self, source: str, filename: str, options: dict[str, Any]) -> SfcResult:
        node = shutil.which("node")
        compiler = resolve_from(self.root, "@vue/compiler-sfc")
        if node is None or compiler is None:
            raise CompilerServiceError(
                f"Cannot compile {filename}: node and @vue/compiler-sfc are required. "
                "Install with: npm install -D @vue/compiler-sfc"
            )
        payload = json.dumps({"source": source, "filename": filename, "options": options})
        try:
            result = subprocess.run(
                [node, "-e", _NODE_COMPILE_SCRIPT, str(compiler)],
                input=payload,
                capture_output=True,
                text=True,
                timeout=_COMPILE_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise CompilerServiceError(f"Compiling {filename} timed out") from e
        if result.returncode != 0:
            raise CompilerServiceError(f"Failed to compile {filename}:\n{result.stderr.strip()}")
        data = json.loads(result.stdout)
        return SfcResult(
            code=data["code"],
            map=SourceMap.from_dict(data["map"]) if data.get("map") else None,
            styles=[SfcStyle(**style) for style in data.get("styles", [])],
        )


def hash_filename(filename: str) -> str:
    return hashlib.sha256(filename.encode("utf-8")).hexdigest()[:8]


def scoped_class_name(local: str, filename: str) -> str:
    """CSS-module class name for ``local`` declared in ``filename``."""
    return f"{local}_{hash_filename(filename)}"


class SfcStage(TransformStage):
    name = "pagepack:sfc"
    capabilities = StageCapability.RESOLVE | StageCapability.TRANSFORM

    def __init__(
        self,
        root: Path,
        options: dict[str, Any] | None = None,
        compiler_options: dict[str, Any] | None = None,
        is_production: bool = True,
        compiler: SfcCompiler | None = None,
    ):
        self.root = root
        self.options = dict(options or {})
        self.compiler_options = dict(compiler_options or {})
        self.is_production = is_production
        self.compiler = compiler or NodeSfcCompiler(root)
        self.styles: dict[str, str] = {}

    def compile_options(self, filename: str) -> dict[str, Any]:
        """Options handed to the compiler for one component file."""
        path = Path(filename)
        relative = (
            path.relative_to(self.root).as_posix() if path.is_relative_to(self.root) else filename
        )
        file_hash = hash_filename(relative)
        return {
            **self.options,
            "id": file_hash,
            "target": self.options.get("target", "browser"),
            "isProduction": self.is_production,
            "transformAssetUrls": {"includeAbsolute": True},
            "preprocessStyles": True,
            "compilerOptions": self.compiler_options,
            "cssModulesOptions": {
                "generateScopedName": scoped_class_name("[local]", relative),
                **self.options.get("cssModulesOptions", {}),
            },
        }

    def resolve_id(self, source: str, importer: str | None, ctx: BundleContext) -> str | None:
        return source if source in self.styles else None

    def load(self, module_id: str, ctx: BundleContext) -> str | None:
        return self.styles.get(module_id)

    def transform(self, code: str, module_id: str, ctx: BundleContext) -> TransformResult | None:
        if "?" in module_id or not module_id.endswith(".vue"):
            return None
        logger.debug("Compiling component %s", module_id)
        result = self.compiler.compile(code, module_id, self.compile_options(module_id))
        imports = []
        for index, style in enumerate(result.styles):
            style_id = f"{module_id}{STYLE_QUERY}&index={index}&lang.css"
            self.styles[style_id] = style.code
            imports.append(f'import "{style_id}";\n')
        edits = TextEdits(result.code)
        edits.prepend("".join(imports))
        if result.map is None:
            return TransformResult(str(edits))
        return TransformResult(str(edits), compose(edits.generate_map(module_id), result.map))
