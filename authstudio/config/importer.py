"""
Host package importer.

Python configuration modules commonly import their siblings with relative
imports, which fail when the file is executed on its own. This module loads
such files as members of a synthetic package: relative imports are rewritten
onto the package name by an AST pass, and a meta path finder serves the
package's members from pre-resolved files in the host project without
modifying sys.path.
"""

import ast
import hashlib
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType

logger = logging.getLogger(__name__)

type Aliases = dict[str, Path]


def package_name_for(directory: Path) -> str:
    digest = hashlib.sha1(str(directory).encode()).hexdigest()[:10]
    return f"_authstudio_host_{digest}"


class RelativeImportRewriter(ast.NodeTransformer):
    """Rewrites relative imports into absolute imports of a synthetic package."""

    def __init__(self, package: str):
        self.package = package
        self.rewritten = 0

    def visit_ImportFrom(self, node: ast.ImportFrom):
        if node.level == 0:
            return node

        # Parent-relative imports leave the configuration directory
        if node.level > 1:
            raise ImportError(f"Cannot resolve parent relative import at line {node.lineno}")

        self.rewritten += 1
        module = f"{self.package}.{node.module}" if node.module else self.package
        return ast.copy_location(ast.ImportFrom(module=module, names=node.names, level=0), node)

    def visit_Call(self, node: ast.Call):
        self.generic_visit(node)
        if not _is_import_module_call(node) or not node.args:
            return node

        target = node.args[0]
        if isinstance(target, ast.Constant) and isinstance(target.value, str):
            name = target.value
            if name.startswith(".") and not name.startswith(".."):
                self.rewritten += 1
                node.args = [ast.copy_location(ast.Constant(f"{self.package}{name}"), target)]
                node.keywords = [kw for kw in node.keywords if kw.arg != "package"]
        return node


def _is_import_module_call(node: ast.Call) -> bool:
    func = node.func
    if isinstance(func, ast.Attribute):
        return func.attr == "import_module"
    return isinstance(func, ast.Name) and func.id == "import_module"


def translate(source: str, filename: str, package: str):
    """Compile ``source`` with its relative imports bound to ``package``."""
    tree = ast.parse(source, filename=filename)
    tree = RelativeImportRewriter(package).visit(tree)
    ast.fix_missing_locations(tree)
    return compile(tree, filename, "exec", dont_inherit=True)


class HostMetaPathFinder(importlib.abc.MetaPathFinder):
    def __init__(self, package: str, directory: Path, aliases: Aliases | None = None):
        self.package = package
        self.directory = directory
        self.aliases = dict(aliases or {})

    def find_spec(self, fullname, path, target=None):
        parts = fullname.split(".")
        if parts[0] != self.package:
            return

        if len(parts) == 1:
            return importlib.util.spec_from_loader(
                fullname, HostPackageInjector(self.directory), is_package=True
            )

        file = self.aliases.get(".".join(parts[1:])) if len(parts) == 2 else None
        if file is None:
            file = self._resolve(Path(self.directory, *parts[1:]))
        if file is None:
            return

        is_package = file.name == "__init__.py"
        spec = importlib.util.spec_from_loader(
            fullname,
            HostSourceFileLoader(fullname, str(file), self.package),
            is_package=is_package,
        )
        if is_package:
            spec.submodule_search_locations = [str(file.parent)]
        return spec

    @staticmethod
    def _resolve(path: Path) -> Path | None:
        if (path / "__init__.py").is_file():
            return path / "__init__.py"
        if path.with_suffix(".py").is_file():
            return path.with_suffix(".py")
        return None

    @classmethod
    def inject(cls, package: str, directory: Path, aliases: Aliases | None = None) -> "HostMetaPathFinder":
        for finder in sys.meta_path:
            if isinstance(finder, cls) and finder.package == package:
                finder.aliases.update(aliases or {})
                return finder

        finder = cls(package, directory, aliases)
        sys.meta_path.insert(0, finder)
        return finder


class HostSourceFileLoader(importlib.machinery.SourceFileLoader):
    def __init__(self, fullname, path, package):
        super().__init__(fullname, path)
        self.package = package

    def get_code(self, fullname):
        # Bypasses the bytecode cache so nothing is written into the host project
        source = importlib.util.decode_source(self.get_data(self.path))
        return translate(source, self.path, self.package)


class HostPackageInjector(importlib.abc.Loader):
    def __init__(self, path):
        self.path = path

    def create_module(self, spec):
        class Module(ModuleType):
            __package__ = spec.name
            __loader__ = self
            __spec__ = spec
            __file__ = str(Path(self.path) / "__init__.py")
            __path__ = [str(self.path)]
            __name__ = spec.name
            __package_injector__ = True

        return Module(spec.name)

    def exec_module(self, module):
        return


class HostImporter:
    """
    Loads a host project's configuration module as part of a synthetic package.

    Each configuration directory maps to one package name; loading purges the
    package's previously imported members so edits to the host files are seen.
    """

    def __init__(self, directory: Path | str, aliases: Aliases | None = None):
        """
        Args:
            directory: Directory holding the configuration module
            aliases: Module names mapped to pre-resolved files
        """
        self.directory = Path(directory).resolve()
        self.package = package_name_for(self.directory)
        self.finder = HostMetaPathFinder.inject(self.package, self.directory, aliases)

    def purge(self):
        for name in list(sys.modules):
            if name == self.package or name.startswith(f"{self.package}."):
                del sys.modules[name]

    def load_module(self, path: Path) -> ModuleType:
        """Execute ``path`` as a member of the synthetic package and return it."""
        self.purge()
        name = f"{self.package}.{path.stem}"
        self.finder.aliases[path.stem] = path
        logger.debug(f"Importing {path} as {name}")
        return importlib.import_module(name)
