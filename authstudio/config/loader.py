"""Loads a host project's configuration module through a chain of strategies.

Strategies run strictly in order and the first that yields a usable export
wins:

1. Native: execute ``.py`` files directly, parse ``.json`` documents.
2. Transpiled: bind relative imports to pre-resolved sibling files, via an
   AST pass for Python or the host's ``jiti`` for TypeScript/JavaScript.
   Execution errors produce a degraded module carrying the source.
3. Extracted: parse the options literal out of the raw source.
4. Rewritten: run a simplified copy of the module from a temporary directory.
"""

import hashlib
import importlib.util
import json
import logging
import os
import re
import sys
import types
from pathlib import Path
from typing import Any

from authstudio.config.extractor import ConfigExtractor, find_export
from authstudio.config.importer import HostImporter
from authstudio.config.literal import parse_literal, to_plain
from authstudio.config.node import NodeRunner
from authstudio.config.rewrite import SCRIPT_SUFFIXES, load_rewritten
from authstudio.config.types import DegradedModule, LoadKind, LoadResult
from authstudio.exceptions import ConfigExtractionError, ConfigLoadError, UnsupportedSourceError

logger = logging.getLogger(__name__)

_PYTHON_RELATIVE = (
    re.compile(r"^[ \t]*from\s+\.(?P<module>\w+)[\w.]*\s+import\s", re.MULTILINE),
    re.compile(r"^[ \t]*from\s+\.\s+import\s+\(?(?P<names>[\w \t,]+)\)?", re.MULTILINE),
    re.compile(r"import_module\(\s*[\"']\.(?P<module>\w+)[\w.]*[\"']"),
)
_SCRIPT_RELATIVE = re.compile(
    r"(?:\bfrom\s+|\bimport\s*\(\s*|\brequire\s*\(\s*|^[ \t]*import\s+)[\"'](?P<spec>\./[^\"']+)[\"']",
    re.MULTILINE,
)
_SCRIPT_EXTENSIONS = (".ts", ".js", ".mjs", ".cjs")

__all__ = [
    "LoadKind",
    "LoadResult",
    "DegradedModule",
    "ModuleLoader",
    "scan_python_imports",
    "scan_script_imports",
    "tsconfig_aliases",
]


def scan_python_imports(source: str, directory: Path) -> dict[str, Path]:
    """Map same-directory modules referenced by relative imports to their files."""
    names = []
    for pattern in _PYTHON_RELATIVE:
        for match in pattern.finditer(source):
            if "names" in match.groupdict() and match.group("names"):
                for name in match.group("names").split(","):
                    name = name.split(" as ")[0].strip()
                    if name:
                        names.append(name)
            else:
                names.append(match.group("module"))

    aliases = {}
    for name in names:
        for candidate in (directory / f"{name}.py", directory / name / "__init__.py"):
            if candidate.is_file():
                aliases[name] = candidate.resolve()
                break
    return aliases


def scan_script_imports(source: str, directory: Path) -> dict[str, str]:
    """Map relative script specifiers to file URLs of the files they resolve to."""
    aliases = {}
    for match in _SCRIPT_RELATIVE.finditer(source):
        spec = match.group("spec")
        if spec in aliases:
            continue

        name = spec[2:]
        candidates = [directory / name] if Path(name).suffix in _SCRIPT_EXTENSIONS else []
        candidates += [directory / f"{name}{ext}" for ext in _SCRIPT_EXTENSIONS]
        candidates += [directory / name / f"index{ext}" for ext in _SCRIPT_EXTENSIONS]

        for candidate in candidates:
            if candidate.is_file():
                aliases[spec] = candidate.resolve().as_uri()
                break
        else:
            logger.debug(f"Could not resolve {spec} from {directory}")
    return aliases


def _reference_path(directory: Path, reference: str) -> Path:
    resolved = (directory / reference).resolve()
    if reference.endswith(".json") or resolved.is_file():
        return resolved
    return resolved / "tsconfig.json"


def _read_tsconfig(path: Path) -> dict[str, Any]:
    # tsconfig files are JSON with comments and trailing commas
    document = to_plain(parse_literal(path.read_text(encoding="utf-8")))
    if not isinstance(document, dict):
        raise ConfigExtractionError("tsconfig is not an object")
    return document


def tsconfig_aliases(tsconfig: Path, visited: set[Path] | None = None) -> dict[str, str]:
    """Map ``compilerOptions.paths`` aliases to directories, following ``references``.

    Aliases declared by the file itself take precedence over those of the
    projects it references. Each file is read at most once.
    """
    visited = set() if visited is None else visited
    tsconfig = tsconfig.resolve()
    if tsconfig in visited:
        return {}
    visited.add(tsconfig)

    if not tsconfig.is_file():
        logger.warning(f"Referenced tsconfig not found: {tsconfig}")
        return {}
    try:
        document = _read_tsconfig(tsconfig)
    except (ConfigExtractionError, OSError, UnicodeDecodeError) as exc:
        logger.warning(f"Error parsing tsconfig at {tsconfig}: {exc}")
        return {}

    options = document.get("compilerOptions") or {}
    base_url = tsconfig.parent / str(options.get("baseUrl") or ".")
    aliases = {}
    for alias, targets in (options.get("paths") or {}).items():
        for target in targets if isinstance(targets, list) else []:
            target = str(target).removesuffix("*")
            resolved = os.path.normpath(base_url / target)
            aliases[alias.removesuffix("*")] = resolved + "/" if target.endswith("/") else resolved

    for reference in document.get("references") or []:
        if not isinstance(reference, dict) or not reference.get("path"):
            continue
        referenced = tsconfig_aliases(_reference_path(tsconfig.parent, str(reference["path"])), visited)
        for alias, target in referenced.items():
            aliases.setdefault(alias, target)
    return aliases


def find_tsconfig(directory: Path) -> Path | None:
    """Return the nearest ``tsconfig.json`` at or above ``directory`` within its project."""
    for current in (directory, *directory.parents):
        candidate = current / "tsconfig.json"
        if candidate.is_file():
            return candidate
        if (current / "package.json").is_file():
            return None
    return None


class ModuleLoader:
    """Loads configuration modules, trying each strategy in turn."""

    def __init__(self, node: NodeRunner | None = None, extractor: ConfigExtractor | None = None):
        self.node = node or NodeRunner()
        self.extractor = extractor or ConfigExtractor()

    async def load(self, path: str | Path) -> LoadResult:
        """Load the configuration at ``path``.

        Returns:
            The first successful result, or a FAILED result carrying the
            error of the native strategy
        """
        path = Path(path).resolve()
        attempts: list[str] = []
        first_error: BaseException | None = None
        degraded: DegradedModule | None = None

        for kind, strategy in (
            (LoadKind.NATIVE, self._load_native),
            (LoadKind.TRANSPILED, self._load_transpiled),
        ):
            attempts.append(kind.value)
            try:
                module = await strategy(path)
            except Exception as exc:
                first_error = first_error or exc
                logger.debug(f"{kind.value} load of {path} failed: {exc!r}")
                continue

            if isinstance(module, DegradedModule):
                degraded = module
                first_error = first_error or module.error
                continue
            if find_export(module) is None:
                first_error = first_error or ConfigLoadError("No auth export found", str(path))
                logger.debug(f"{kind.value} load of {path} has no auth export")
                continue

            logger.info(f"Loaded {path} ({kind.value})")
            return LoadResult(kind, path, module, attempts=attempts)

        attempts.append(LoadKind.EXTRACTED.value)
        try:
            options = self._extract(path, degraded)
        except (ConfigExtractionError, OSError, UnicodeDecodeError) as exc:
            logger.debug(f"Extraction from {path} failed: {exc}")
        else:
            logger.info(f"Extracted configuration from {path}")
            return LoadResult(LoadKind.EXTRACTED, path, options, attempts=attempts)

        attempts.append(LoadKind.REWRITTEN.value)
        try:
            module = await self._load_rewritten(path)
        except Exception as exc:
            logger.debug(f"Rewritten load of {path} failed: {exc!r}")
        else:
            logger.info(f"Loaded {path} from a rewritten copy")
            return LoadResult(LoadKind.REWRITTEN, path, module, attempts=attempts)

        logger.warning(f"Could not load auth configuration {path}: {first_error!r}")
        return LoadResult(LoadKind.FAILED, path, error=first_error, attempts=attempts)

    async def _load_native(self, path: Path) -> Any:
        if path.suffix == ".json":
            module = types.ModuleType(path.stem)
            module.__file__ = str(path)
            module.default = json.loads(path.read_text(encoding="utf-8"))
            return module

        if path.suffix != ".py":
            raise UnsupportedSourceError(f"{path.suffix} files cannot be executed natively", str(path))

        digest = hashlib.sha1(str(path).encode()).hexdigest()[:10]
        name = f"_authstudio_config_{digest}"
        spec = importlib.util.spec_from_file_location(name, path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            del sys.modules[name]
            raise
        return module

    async def _load_transpiled(self, path: Path) -> Any:
        source = path.read_text(encoding="utf-8")

        if path.suffix == ".py":
            aliases = scan_python_imports(source, path.parent)
            try:
                return HostImporter(path.parent, aliases).load_module(path)
            except Exception as exc:
                logger.debug(f"Executing {path} failed, keeping its source: {exc!r}")
                return DegradedModule(path, source, exc)

        if path.suffix not in SCRIPT_SUFFIXES:
            raise UnsupportedSourceError(f"No transpiler for {path.suffix} files", str(path))
        if not self.node.available:
            raise ConfigLoadError(f"Node binary {self.node.binary!r} not found", str(path))

        aliases = scan_script_imports(source, path.parent)
        if tsconfig := find_tsconfig(path.parent):
            aliases = {**tsconfig_aliases(tsconfig), **aliases}
        try:
            return await self.node.evaluate(path, mode="jiti", aliases=aliases)
        except ConfigLoadError as exc:
            logger.debug(f"Transpiling {path} failed, keeping its source: {exc.message}")
            return DegradedModule(path, source, exc)

    def _extract(self, path: Path, degraded: DegradedModule | None) -> dict[str, Any]:
        source = degraded.source if degraded else path.read_text(encoding="utf-8")
        return self.extractor.extract_source(source, python=path.suffix == ".py")

    async def _load_rewritten(self, path: Path) -> Any:
        if path.suffix != ".py" and path.suffix not in SCRIPT_SUFFIXES:
            raise UnsupportedSourceError(f"Cannot rewrite {path.suffix} files", str(path))

        module = await load_rewritten(path, self.node)
        if find_export(module) is None:
            raise ConfigLoadError("Rewritten module has no auth export", str(path))
        return module
