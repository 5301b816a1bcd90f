"""Locates a host project's authentication configuration file."""

import logging
from collections.abc import Sequence
from pathlib import Path

from authstudio.exceptions import ConfigNotFoundError

logger = logging.getLogger(__name__)

MAX_DEPTH = 10
DASHBOARD_CONFIG_FILE = "studio-config.json"

_BASE_NAMES = ("auth", "src/auth", "lib/auth", "utils/auth", "server/auth", "app/auth")
_SOURCE_EXTENSIONS = (".py", ".ts", ".js")
_CONFIG_STEMS = ("better-auth.config", "auth.config")
_CONFIG_EXTENSIONS = (".py", ".ts", ".js", ".json")


def _default_candidates() -> tuple[str, ...]:
    candidates = [DASHBOARD_CONFIG_FILE]
    for base in _BASE_NAMES:
        candidates.extend(f"{base}{ext}" for ext in _SOURCE_EXTENSIONS)
    for stem in _CONFIG_STEMS:
        candidates.extend(f"{stem}{ext}" for ext in _CONFIG_EXTENSIONS)
    return tuple(candidates)


DEFAULT_CANDIDATES = _default_candidates()


class ConfigLocator:
    """Walks from a directory towards the filesystem root looking for a config file.

    Candidates are checked in a fixed order at every level, so when several
    candidates exist in the same directory the result is always the same one.
    The nearest directory containing any candidate wins.
    """

    def __init__(
        self,
        candidates: Sequence[str] = DEFAULT_CANDIDATES,
        max_depth: int = MAX_DEPTH,
    ):
        self.candidates = tuple(candidates)
        self.max_depth = max_depth

    def locate(self, start_dir: str | Path) -> Path | None:
        """Return the first matching candidate, or None when nothing is found.

        Args:
            start_dir: Directory to start the upward walk from

        Returns:
            Absolute path of the configuration file or None
        """
        current = Path(start_dir).resolve()
        depth = 0

        while depth < self.max_depth:
            for candidate in self.candidates:
                path = current / candidate
                if path.is_file():
                    logger.debug(f"Found auth configuration at {path}")
                    return path

            parent = current.parent
            if parent == current:
                break

            current = parent
            depth += 1

        logger.debug(f"No auth configuration found from {start_dir}")
        return None

    def resolve(self, start_dir: str | Path, explicit: str | Path | None = None) -> Path | None:
        """Resolve an explicit configuration path, falling back to the upward walk."""
        if explicit:
            path = Path(explicit)
            if not path.is_absolute():
                path = Path(start_dir) / path

            if path.is_file():
                return path.resolve()

            logger.warning(f"Configured auth file {path} does not exist, searching instead")

        return self.locate(start_dir)

    def require(self, start_dir: str | Path, explicit: str | Path | None = None) -> Path:
        """Like ``resolve`` but raises when nothing is found.

        Raises:
            ConfigNotFoundError: If no candidate exists within ``max_depth`` levels
        """
        path = self.resolve(start_dir, explicit)
        if path is None:
            raise ConfigNotFoundError(
                f"No auth configuration found within {self.max_depth} levels of {start_dir}",
                {"start_dir": str(start_dir), "candidates": list(self.candidates)},
            )
        return path
