"""Discovery, loading and normalization of host authentication configuration."""

from .extractor import ConfigExtractor, enabled_plugin_ids, find_export
from .loader import ModuleLoader
from .locator import DEFAULT_CANDIDATES, ConfigLocator
from .node import NodeRunner
from .schema import AuthConfig, DatabaseConfig, PluginConfig
from .types import DegradedModule, LoadKind, LoadResult

__all__ = [
    "AuthConfig",
    "ConfigExtractor",
    "ConfigLocator",
    "DEFAULT_CANDIDATES",
    "DatabaseConfig",
    "DegradedModule",
    "LoadKind",
    "LoadResult",
    "ModuleLoader",
    "NodeRunner",
    "PluginConfig",
    "enabled_plugin_ids",
    "find_export",
]
