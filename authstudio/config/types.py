"""Result types shared by the module loader and the configuration extractor."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class LoadKind(Enum):
    """Which loading strategy produced a result."""

    NATIVE = "native"
    TRANSPILED = "transpiled"
    EXTRACTED = "extracted"
    REWRITTEN = "rewritten"
    FAILED = "failed"


@dataclass
class DegradedModule:
    """Stands in for a module whose execution failed.

    Carries the raw source so textual extraction can still be attempted.
    """

    path: Path
    source: str
    error: BaseException | None = None

    @property
    def is_python(self) -> bool:
        return self.path.suffix == ".py"


@dataclass
class LoadResult:
    kind: LoadKind
    path: Path
    module: Any = None
    error: BaseException | None = None
    attempts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.kind is not LoadKind.FAILED

    @property
    def degraded(self) -> bool:
        return isinstance(self.module, DegradedModule)
