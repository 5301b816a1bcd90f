"""Last-resort loading by rewriting the configuration into a simpler module.

The source is reduced to something that runs without the host project's
build setup: type-only syntax and relative imports are removed, exports are
rewritten to CommonJS (scripts) or plain module globals (Python), and the
result runs from a temporary directory inside the host project with the
working directory and dependency search path pointed at the project.
"""

import ast
import contextlib
import importlib.util
import logging
import os
import re
import sys
import tempfile
from pathlib import Path
from types import ModuleType

from authstudio.config.node import NodeRunner

logger = logging.getLogger(__name__)

SCRIPT_SUFFIXES = (".ts", ".js", ".mjs", ".cjs", ".mts", ".cts")
_DEPENDENCY_DIRS = ("node_modules", ".venv", "venv")
_PROJECT_MARKERS = ("package.json", "pyproject.toml", "setup.cfg")

_IMPORT = re.compile(
    r"^[ \t]*import\s+(?P<type>type\s+)?(?P<clause>[\s\S]*?)\s+from\s+[\"'](?P<spec>[^\"']+)[\"'][ \t]*;?",
    re.MULTILINE,
)
_SIDE_EFFECT_IMPORT = re.compile(r"^[ \t]*import\s+[\"'](?P<spec>[^\"']+)[\"'][ \t]*;?", re.MULTILINE)
_TYPE_DECLARATION = re.compile(r"^[ \t]*(?:export\s+)?(?:declare\s+)?interface\s+[\w$]+[^{]*\{", re.MULTILINE)
_TYPE_ALIAS = re.compile(r"^[ \t]*(?:export\s+)?type\s+[\w$]+(?:<[^=]*>)?\s*=[^;]*;", re.MULTILINE)
_ANNOTATED_BINDING = re.compile(r"\b(const|let|var)\s+([\w$]+)\s*:\s*[^=;]+?=(?!=)")
_ASSERTION = re.compile(r"\s+(?:as\s+const|satisfies\s+[\w$.]+(?:<[^>]*>)?)\b")
_EXPORT_DEFAULT = re.compile(r"^([ \t]*)export\s+default\s+", re.MULTILINE)
_EXPORT_BINDING = re.compile(r"^([ \t]*)export\s+(const|let|var)\s+([\w$]+)\s*=", re.MULTILINE)
_EXPORT_DECLARATION = re.compile(r"^([ \t]*)export\s+(async\s+function|function|class)\s+([\w$]+)", re.MULTILINE)
_EXPORT_LIST = re.compile(r"^[ \t]*export\s*\{([^}]*)\}\s*;?", re.MULTILINE)
_MAGIC_LINK = re.compile(r"magic", re.IGNORECASE)


def find_project_root(path: Path) -> Path:
    """Return the nearest ancestor holding a dependency directory or project marker."""
    start = path if path.is_dir() else path.parent
    for directory in (start, *start.parents):
        if any((directory / name).is_dir() for name in _DEPENDENCY_DIRS):
            return directory
        if any((directory / name).is_file() for name in _PROJECT_MARKERS):
            return directory
    return start


def _bindings(clause: str) -> list[tuple[str, str]]:
    """(imported, local) pairs for an import clause."""
    clause = clause.strip()
    pairs = []
    named = re.search(r"\{([^}]*)\}", clause)
    if named:
        for item in named.group(1).split(","):
            item = re.sub(r"^\s*type\s+", "", item).strip()
            if not item:
                continue
            imported, _, local = item.partition(" as ")
            pairs.append((imported.strip(), (local or imported).strip()))
        clause = clause[: named.start()] + clause[named.end():]

    for part in clause.split(","):
        part = part.strip()
        if part.startswith("* as "):
            pairs.append(("*", part[5:].strip()))
        elif part:
            pairs.append(("default", part))
    return pairs


def _stub(local: str) -> str:
    if _MAGIC_LINK.search(local):
        return f"const {local} = async () => {{}};"
    return f"const {local} = undefined;"


def _require(clause: str, spec: str) -> str:
    lines = []
    named = []
    for imported, local in _bindings(clause):
        if imported == "*":
            lines.append(f"const {local} = require({spec!r});")
        elif imported == "default":
            lines.append(f"const {local} = ((m) => (m && m.__esModule ? m.default : m))(require({spec!r}));")
        else:
            named.append(imported if imported == local else f"{imported}: {local}")
    if named:
        lines.append(f"const {{ {', '.join(named)} }} = require({spec!r});")
    return "\n".join(lines) or f"require({spec!r});"


def _strip_blocks(source: str, pattern: re.Pattern) -> str:
    while match := pattern.search(source):
        depth = 0
        index = match.end() - 1
        while index < len(source):
            if source[index] == "{":
                depth += 1
            elif source[index] == "}":
                depth -= 1
                if depth == 0:
                    break
            index += 1
        source = source[: match.start()] + source[index + 1:]
    return source


def rewrite_script(source: str) -> str:
    """Rewrite an ES module/TypeScript source into plain CommonJS."""

    def replace_import(match: re.Match) -> str:
        if match.group("type"):
            return ""
        clause, spec = match.group("clause"), match.group("spec")
        if spec.startswith("."):
            return "\n".join(_stub(local) for _, local in _bindings(clause))
        return _require(clause, spec)

    source = _IMPORT.sub(replace_import, source)
    source = _SIDE_EFFECT_IMPORT.sub(
        lambda m: "" if m.group("spec").startswith(".") else f"require({m.group('spec')!r});", source
    )
    source = _strip_blocks(source, _TYPE_DECLARATION)
    source = _TYPE_ALIAS.sub("", source)
    source = _ANNOTATED_BINDING.sub(r"\1 \2 =", source)
    source = _ASSERTION.sub("", source)

    exported = []
    source = _EXPORT_BINDING.sub(lambda m: f"{m.group(1)}{m.group(2)} {m.group(3)} = exports.{m.group(3)} =", source)
    source = _EXPORT_DEFAULT.sub(r"\1module.exports.default = ", source)

    def replace_declaration(match: re.Match) -> str:
        exported.append(match.group(3))
        return f"{match.group(1)}{match.group(2)} {match.group(3)}"

    source = _EXPORT_DECLARATION.sub(replace_declaration, source)

    def replace_list(match: re.Match) -> str:
        names = []
        for item in match.group(1).split(","):
            local, _, public = item.strip().partition(" as ")
            if local:
                names.append(f"{(public or local).strip()}: {local.strip()}")
        return f"Object.assign(module.exports, {{ {', '.join(names)} }});"

    source = _EXPORT_LIST.sub(replace_list, source)
    source += "".join(f"\nexports.{name} = {name};" for name in exported)
    return source


class _PythonRewriter(ast.NodeTransformer):
    def visit_ClassDef(self, node: ast.ClassDef):
        # Class-level annotations are runtime data for dataclasses and models
        return node

    def visit_If(self, node: ast.If):
        test = node.test
        name = test.id if isinstance(test, ast.Name) else getattr(test, "attr", None)
        if name == "TYPE_CHECKING":
            return node.orelse or None
        return self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom):
        if node.level == 0:
            return node

        stubs = []
        for alias in node.names:
            local = alias.asname or alias.name
            if local == "*":
                continue
            if _MAGIC_LINK.search(local):
                stubs.append(
                    ast.parse(f"async def {local}(*args, **kwargs):\n    return None").body[0]
                )
            else:
                stubs.append(ast.Assign(targets=[ast.Name(local, ast.Store())], value=ast.Constant(None)))
        return [ast.copy_location(stub, node) for stub in stubs] or None

    def visit_AnnAssign(self, node: ast.AnnAssign):
        if node.value is None:
            return None
        return ast.copy_location(ast.Assign(targets=[node.target], value=node.value), node)


def rewrite_python(source: str) -> str:
    """Remove type-only code and relative imports from a Python module."""
    tree = _PythonRewriter().visit(ast.parse(source))
    ast.fix_missing_locations(tree)
    return ast.unparse(tree)


@contextlib.contextmanager
def host_environment(root: Path, extra_path: Path | None = None):
    """Point the working directory and import path at ``root`` for the duration."""
    saved_cwd = os.getcwd()
    saved_path = list(sys.path)
    saved_env = dict(os.environ)
    try:
        os.chdir(root)
        sys.path[:0] = [str(path) for path in (extra_path, root) if path is not None]
        yield
    finally:
        os.chdir(saved_cwd)
        sys.path[:] = saved_path
        os.environ.clear()
        os.environ.update(saved_env)


def _execute_python(path: Path, root: Path, workdir: Path) -> ModuleType:
    file = workdir / f"{path.stem}_rewritten.py"
    file.write_text(rewrite_python(path.read_text(encoding="utf-8")), encoding="utf-8")

    name = f"_authstudio_rewritten_{workdir.name.strip('.').replace('-', '_')}"
    spec = importlib.util.spec_from_file_location(name, file)
    module = importlib.util.module_from_spec(spec)
    with host_environment(root, workdir):
        spec.loader.exec_module(module)
    return module


async def load_rewritten(path: Path, node: NodeRunner) -> ModuleType | dict:
    """Rewrite and execute ``path`` from a temporary directory in its project.

    Returns:
        The executed module for Python sources, or the evaluated options
        mapping for scripts
    """
    root = find_project_root(path)
    with tempfile.TemporaryDirectory(prefix=".authstudio-", dir=path.parent) as workdir:
        workdir = Path(workdir)
        logger.debug(f"Rewriting {path} into {workdir}")

        if path.suffix == ".py":
            return _execute_python(path, root, workdir)

        file = workdir / f"{path.stem}.cjs"
        file.write_text(rewrite_script(path.read_text(encoding="utf-8")), encoding="utf-8")
        node_path = os.pathsep.join(
            filter(None, [str(root / "node_modules"), os.environ.get("NODE_PATH")])
        )
        return await node.evaluate(file, mode="commonjs", cwd=root, env={"NODE_PATH": node_path})
