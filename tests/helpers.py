"""
Helper utilities for tests.
"""

import shutil
import textwrap
from pathlib import Path

import pytest

requires_node = pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed")


def write(path: Path, source: str) -> Path:
    """Write dedented ``source`` to ``path``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source).lstrip())
    return path


class RecordingNode:
    """Stands in for NodeRunner and remembers the aliases it was given."""

    binary = "node"
    available = True

    def __init__(self, options=None):
        self.options = options or {"appName": "Transpiled"}
        self.aliases = None

    async def evaluate(self, entry, mode="jiti", aliases=None, **kwargs):
        self.aliases = aliases
        return {"auth": {"options": self.options}}


class RecordingAdapter:
    """Raw adapter double that records calls and fails for chosen models."""

    def __init__(self, failing_models=(), users=None):
        self.failing_models = set(failing_models)
        self.users = users if users is not None else [{"id": "real_1", "email": "real@example.com"}]
        self.calls = []

    def _check(self, operation, options):
        self.calls.append((operation, options))
        if options.get("model") in self.failing_models:
            raise RuntimeError(f"{options['model']} table is unavailable")

    async def create(self, options):
        self._check("create", options)
        return {"id": f"{options['model']}_real", **options["data"]}

    async def update(self, options):
        self._check("update", options)
        return {"id": options["where"][0]["value"], **options["update"]}

    async def delete(self, options):
        self._check("delete", options)

    async def find_many(self, options):
        self._check("find_many", options)
        if options["model"] == "user":
            return list(self.users)
        return []


PARTIAL_ADAPTER_CONFIG = '''
class Adapter:
    async def find_many(self, options):
        if options["model"] == "session":
            raise RuntimeError("session table is missing")
        return [{"id": "real_user", "email": "real@example.com", "name": "Real User"}]


class Auth:
    def __init__(self):
        self.options = {"appName": "Partial", "database": {"provider": "sqlite"}}
        self.adapter = Adapter()


auth = Auth()
'''
