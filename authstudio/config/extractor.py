"""Normalizes loaded modules and raw source text into an AuthConfig.

Two paths lead to the same result. The structured path reads the options of
an exported auth instance from a loaded module (or from the mapping the Node
toolchain produced). The textual path locates the ``betterAuth({...})`` call
in raw source and parses its object literal with ``authstudio.config.literal``.
"""

import dataclasses
import logging
import re
import sqlite3
import types
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from authstudio.config.literal import (
    EXPRESSION_TYPES,
    Call,
    EnvReference,
    FunctionValue,
    LiteralParser,
    New,
    Reference,
    parse_literal,
    to_plain,
)
from authstudio.config.schema import AuthConfig
from authstudio.config.types import DegradedModule
from authstudio.exceptions import ConfigExtractionError

logger = logging.getLogger(__name__)

_FACTORY = r"(?:betterAuth|BetterAuth|better_auth|BetterAUTH)"
_FACTORY_PATTERNS = (
    re.compile(rf"export\s+const\s+[\w$]+\s*(?::[^=]+)?=\s*{_FACTORY}\s*(?=\()"),
    re.compile(rf"export\s+default\s+{_FACTORY}\s*(?=\()"),
    re.compile(rf"module\.exports\s*=\s*{_FACTORY}\s*(?=\()"),
    re.compile(rf"(?:const|let|var)\s+[\w$]+\s*(?::[^=]+)?=\s*{_FACTORY}\s*(?=\()"),
    re.compile(rf"^[ \t]*\w+\s*(?::\s*[\w.\[\]]+\s*)?=\s*{_FACTORY}\s*(?=\()", re.MULTILINE),
    re.compile(rf"\b{_FACTORY}\s*(?=\()"),
)
_PYTHON_HINT = re.compile(r"^\s*(?:from\s+[\w.]+\s+import\s|import\s+[\w.]+\s*$|def\s)", re.MULTILINE)

_ADAPTER_CALLS = {
    "prismaAdapter": "prisma",
    "prisma_adapter": "prisma",
    "drizzleAdapter": "drizzle",
    "drizzle_adapter": "drizzle",
    "mongodbAdapter": "mongodb",
    "mongodb_adapter": "mongodb",
    "kyselyAdapter": "kysely",
    "kysely_adapter": "kysely",
}
_SECTION_KEYS = (
    "emailAndPassword",
    "emailVerification",
    "user",
    "session",
    "account",
    "verification",
    "rateLimit",
    "advanced",
    "telemetry",
)
_SCALAR_KEYS = ("appName", "baseURL", "basePath")
_MAX_PRUNE_ATTEMPTS = 100


def _database_type(provider: str | None) -> str | None:
    if provider in ("pg", "postgres"):
        return "postgresql"
    return provider


def _is_python_source(source: str) -> bool:
    return bool(_PYTHON_HINT.search(source)) or "better_auth(" in source


class ConfigExtractor:
    """Produces a normalized AuthConfig from whatever the loader returned."""

    def extract(self, module_or_source: Any, source: str | None = None) -> AuthConfig:
        """Extract a configuration, falling back to defaults on any failure.

        Args:
            module_or_source: A loaded module, degraded module, options mapping,
                AuthConfig or raw source text
            source: Raw source of the configuration file, used to resolve
                identifiers and detect the database when the options alone
                do not say

        Returns:
            The normalized configuration
        """
        if source is None:
            if isinstance(module_or_source, str):
                source = module_or_source
            elif isinstance(module_or_source, DegradedModule):
                source = module_or_source.source

        try:
            options = self.options_of(module_or_source, source)
        except ConfigExtractionError as exc:
            logger.info(f"Configuration extraction failed, using defaults: {exc.message}")
            return AuthConfig()

        if options is None:
            logger.debug("No recognizable auth export, using defaults")
            return AuthConfig()

        return self.normalize(options, source)

    def options_of(self, module_or_source: Any, source: str | None = None) -> Any:
        """Return the raw options of the exported auth instance, or None."""
        if isinstance(module_or_source, AuthConfig):
            return module_or_source.dump()
        if isinstance(module_or_source, str):
            return self.extract_source(module_or_source)
        if isinstance(module_or_source, DegradedModule):
            return self.extract_source(module_or_source.source, python=module_or_source.is_python)

        export = find_export(module_or_source)
        if export is None:
            if isinstance(module_or_source, Mapping) and _looks_like_options(module_or_source):
                return module_or_source
            return None

        options = _get(export, "options")
        return export if options is None else options

    def extract_source(self, source: str, python: bool | None = None) -> dict[str, Any]:
        """Read the options literal out of raw source text.

        Raises:
            ConfigExtractionError: If no factory call is found or its literal
                cannot be parsed
        """
        if python is None:
            python = _is_python_source(source)

        last_error = None
        for pattern in _FACTORY_PATTERNS:
            for match in pattern.finditer(source):
                try:
                    options = _parse_call_arguments(source, match.end(), python)
                except ConfigExtractionError as exc:
                    last_error = exc
                    continue

                return _resolve_identifiers(options, source, python)

            if last_error is not None:
                raise last_error

        raise ConfigExtractionError("No auth factory call found in source")

    def normalize(self, options: Any, source: str | None = None) -> AuthConfig:
        """Map raw options (parsed literal, live object or mapping) onto AuthConfig."""
        if not isinstance(options, Mapping):
            options = _to_data(options, keep_database=True)
            if not isinstance(options, Mapping):
                return AuthConfig()

        options = {_top_level_key(key): value for key, value in options.items()}
        data: dict[str, Any] = {}

        for key in _SCALAR_KEYS:
            value = options.get(key)
            if value is not None:
                data[key] = to_plain(value) if isinstance(value, EXPRESSION_TYPES) else value

        data["secret"] = bool(options.get("secret"))
        data["database"] = describe_database(options.get("database"), source)

        social, providers = _normalize_providers(
            options.get("socialProviders"), options.get("providers")
        )
        data["socialProviders"] = social
        data["providers"] = providers

        for key in _SECTION_KEYS:
            value = options.get(key)
            if value is not None:
                data[key] = _to_data(value)

        if (paths := options.get("disabledPaths")) is not None:
            data["disabledPaths"] = _to_data(paths)

        origins = options.get("trustedOrigins")
        if isinstance(origins, (list, tuple)):
            data["trustedOrigins"] = [to_plain(origin) for origin in origins]
        elif origins is not None:
            logger.debug("trustedOrigins is computed at runtime, using an empty list")

        data["plugins"] = _normalize_plugins(options.get("plugins"))
        return _validate(data)


def find_export(module: Any) -> Any:
    """Return the exported auth instance of a module or mapping, or None."""
    for name in ("auth", "default"):
        if isinstance(module, Mapping):
            value = module.get(name)
        elif isinstance(module, types.ModuleType):
            value = getattr(module, name, None)
        else:
            return None

        if value is not None and not isinstance(value, (str, int, float, bool)):
            return value
    return None


def enabled_plugin_ids(config: AuthConfig) -> list[str]:
    """Plugin ids in configuration order, adding ``teams`` when organizations enable it."""
    ids = []
    for plugin in config.plugins:
        if plugin.id not in ids:
            ids.append(plugin.id)
        if plugin.id == "organization":
            teams = plugin.options.get("teams")
            if isinstance(teams, Mapping) and teams.get("enabled") and "teams" not in ids:
                ids.append("teams")
    return ids


def _get(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _looks_like_options(mapping: Mapping) -> bool:
    keys = {_top_level_key(key) for key in mapping}
    return bool(keys & {"database", "plugins", "socialProviders", "emailAndPassword", "appName", "secret"})


def _top_level_key(key: Any) -> str:
    key = str(key)
    if key == "base_url":
        return "baseURL"
    return to_camel(key) if "_" in key else key


def _parse_call_arguments(source: str, offset: int, python: bool) -> dict[str, Any]:
    parser = LiteralParser(source, offset, python)
    args = parser.parse_arguments()
    if not args:
        raise ConfigExtractionError("Auth factory called without options", offset)

    options: dict[str, Any] = {}
    for arg in args:
        if not isinstance(arg, dict):
            raise ConfigExtractionError("Auth factory options are not an object literal", offset)
        options.update(arg)
    return options


def _resolve_identifiers(options: dict[str, Any], source: str, python: bool) -> dict[str, Any]:
    for key in ("plugins", "socialProviders", "social_providers", "trustedOrigins", "trusted_origins"):
        value = options.get(key)
        if isinstance(value, Reference) and "." not in value.path:
            options[key] = _resolve_declaration(value.path, source, python)
    return options


def _resolve_declaration(name: str, source: str, python: bool) -> Any:
    pattern = re.compile(
        rf"(?:^|[;\n])[ \t]*(?:export\s+)?(?:const\s+|let\s+|var\s+)?{re.escape(name)}\s*(?::[^=\n]+)?=\s*(?=[\[{{])"
    )
    match = pattern.search(source)
    if match is None:
        raise ConfigExtractionError(f"Cannot resolve identifier {name!r}")

    logger.debug(f"Resolved {name} from its declaration")
    return parse_literal(source, match.end(), python)


def _to_data(value: Any, depth: int = 0, keep_database: bool = False) -> Any:
    """Convert live option values to plain data, rendering code as text."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, EXPRESSION_TYPES):
        return str(value)
    if depth > 8:
        return f"[{type(value).__name__}]"
    if isinstance(value, Mapping):
        return {
            str(key): item if keep_database and key == "database" else _to_data(item, depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_data(item, depth + 1) for item in value]
    if isinstance(value, BaseModel):
        return _to_data(value.model_dump(by_alias=True), depth + 1, keep_database)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
        return _to_data(fields, depth + 1, keep_database)
    if callable(value):
        return str(FunctionValue())
    if hasattr(value, "__dict__"):
        attrs = {key: item for key, item in vars(value).items() if not key.startswith("_")}
        return _to_data(attrs, depth + 1, keep_database)
    return f"[{type(value).__name__}]"


def describe_database(value: Any, source: str | None = None) -> dict[str, Any]:
    """Describe the persistence layer from whatever the options hold."""
    database: dict[str, Any] = {}

    if isinstance(value, Call):
        adapter = _ADAPTER_CALLS.get(value.callee.rsplit(".", 1)[-1])
        settings = next((arg for arg in value.args[1:] if isinstance(arg, dict)), {})
        if adapter is not None:
            provider = settings.get("provider") or settings.get("type")
            provider = provider if isinstance(provider, str) else None
            database["adapter"] = adapter
            if adapter == "mongodb":
                database["type"] = "mongodb"
            elif provider:
                database["provider"] = provider
                database["type"] = _database_type(provider)
            elif adapter in ("prisma", "drizzle"):
                database["provider"] = "postgresql"
                database["type"] = "postgresql"
            for key in ("casing", "debugLogs", "dialect"):
                if isinstance(settings.get(key), (str, bool)):
                    database[key] = settings[key]
        elif value.callee in ("sqlite3.connect", "connect") and value.args:
            database.update(adapter="sqlite", type="sqlite", provider="sqlite")
            if isinstance(value.args[0], str):
                database["name"] = value.args[0]
        elif value.callee.endswith("createPool"):
            database.update(adapter="kysely", type="mysql", dialect="mysql")

    elif isinstance(value, New):
        callee = value.callee.rsplit(".", 1)[-1]
        if callee == "Database":
            database.update(adapter="sqlite", type="sqlite", provider="sqlite")
            if value.args and isinstance(value.args[0], str):
                database["name"] = value.args[0]
        elif callee == "Pool":
            database.update(adapter="kysely", type="postgresql", dialect="postgres")
            settings = value.args[0] if value.args and isinstance(value.args[0], dict) else {}
            url = settings.get("connectionString")
            if url is not None:
                database["url"] = to_plain(url)

    elif isinstance(value, (str, EnvReference)):
        url = str(value)
        database["url"] = url
        if url.endswith(".db") or url.startswith("file:"):
            database.update(adapter="sqlite", type="sqlite")
        elif url.startswith(("postgres://", "postgresql://")):
            database["type"] = "postgresql"
        elif url.startswith("mysql://"):
            database["type"] = "mysql"

    elif isinstance(value, sqlite3.Connection):
        database.update(adapter="sqlite", type="sqlite", provider="sqlite")

    elif isinstance(value, Mapping):
        database.update(_describe_mapping(value))

    elif value is not None and not isinstance(value, (Reference, FunctionValue)):
        database.update(_describe_object(value))

    if database.get("type", "unknown") == "unknown" and source:
        for key, item in detect_database(source).items():
            database.setdefault(key, item)

    return database


def _describe_mapping(value: Mapping) -> dict[str, Any]:
    database = {}
    value = {to_camel(str(key)) if "_" in str(key) else str(key): item for key, item in value.items()}
    provider = value.get("provider")
    provider = provider if isinstance(provider, str) else None

    for key in ("dialect", "casing", "debugLogs", "name", "adapter"):
        item = value.get(key)
        if isinstance(item, (str, bool)):
            database[key] = item
    if provider:
        database["provider"] = provider

    url = value.get("url") or value.get("connectionString")
    if url is not None:
        database["url"] = to_plain(url) if isinstance(url, EXPRESSION_TYPES) else url

    db_type = value.get("type")
    if isinstance(db_type, str):
        database["type"] = db_type
    elif provider:
        database["type"] = _database_type(provider)
    elif isinstance(database.get("adapter"), str):
        database["type"] = database["adapter"]

    if "adapter" not in database and provider in ("pg", "postgresql", "mysql", "sqlite"):
        database["adapter"] = "drizzle"
    return database


def _describe_object(value: Any) -> dict[str, Any]:
    options = getattr(value, "options", None)
    if isinstance(options, Mapping):
        database = _describe_mapping(
            {
                "adapter": options.get("adapterId") or options.get("adapter_id"),
                "provider": options.get("provider"),
                "type": options.get("type"),
            }
        )
        if database:
            return database

    for attribute in ("adapter_id", "adapterId", "id"):
        adapter = getattr(value, attribute, None)
        if isinstance(adapter, str):
            provider = getattr(value, "provider", None)
            return _describe_mapping({"adapter": adapter, "provider": provider})

    name = type(value).__name__.lower()
    for adapter in ("prisma", "drizzle", "mongodb", "kysely", "sqlite"):
        if adapter in name:
            return {"adapter": adapter, "type": "sqlite" if adapter == "sqlite" else "unknown"}
    return {}


def detect_database(source: str) -> dict[str, Any]:
    """Guess the database from telltale substrings of the source text."""
    database: dict[str, Any] = {}
    provider_pattern = r"\s*\(\s*[\w$.]+\s*,\s*\{[^}]*provider\s*[:=]\s*[\"']([^\"']+)[\"']"

    if "drizzleAdapter" in source or "drizzle_adapter" in source:
        database["adapter"] = "drizzle"
        match = re.search(rf"drizzle_?[aA]dapter{provider_pattern}", source)
        provider = match.group(1) if match else "postgresql"
        database.update(provider=provider, type=_database_type(provider))
    elif "prismaAdapter" in source or "prisma_adapter" in source:
        database["adapter"] = "prisma"
        match = re.search(rf"prisma_?[aA]dapter{provider_pattern}", source)
        provider = match.group(1) if match else "postgresql"
        database.update(provider=provider, type=_database_type(provider))
    elif "mongodbAdapter" in source:
        database.update(adapter="mongodb", type="mongodb")
    elif "better-sqlite3" in source or "new Database(" in source or "sqlite3.connect(" in source:
        database.update(adapter="sqlite", type="sqlite", provider="sqlite")
        match = re.search(r"(?:new\s+Database|sqlite3\.connect)\s*\(\s*[\"']([^\"']+)[\"']", source)
        if match:
            database["name"] = match.group(1)

    match = re.search(r"DATABASE_URL|DB_URL|DB_CONNECTION_STRING", source)
    if match:
        database["url"] = f"${{{match.group()}}}"
    return database


def _normalize_providers(social: Any, providers: Any) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    mapping: dict[str, Any] = {}

    if isinstance(social, Mapping):
        for provider_id, settings in social.items():
            mapping[str(provider_id)] = _to_data(settings)
    elif isinstance(social, (list, tuple)):
        for item in social:
            mapping.update(_provider_entry(item))
    elif isinstance(providers, (list, tuple)):
        for item in providers:
            mapping.update(_provider_entry(item))

    flat = []
    for provider_id, settings in mapping.items():
        entry = {"type": provider_id}
        if isinstance(settings, Mapping):
            entry.update({key: item for key, item in settings.items() if key not in ("type", "id")})
        flat.append(entry)
    return mapping, flat


def _provider_entry(item: Any) -> dict[str, Any]:
    item = _to_data(item)
    if not isinstance(item, Mapping):
        return {}
    provider_id = item.get("type") or item.get("id")
    if not provider_id:
        return {}

    settings = {key: value for key, value in item.items() if key not in ("type", "id")}
    for snake, camel in (("client_id", "clientId"), ("client_secret", "clientSecret")):
        if snake in settings and camel not in settings:
            settings[camel] = settings.pop(snake)
    return {str(provider_id): settings}


def _normalize_plugins(plugins: Any) -> list[dict[str, Any]]:
    if not isinstance(plugins, (list, tuple)):
        if plugins is not None:
            logger.debug(f"Ignoring plugins value of type {type(plugins).__name__}")
        return []

    normalized = []
    for plugin in plugins:
        entry = _plugin_entry(plugin)
        if entry is not None:
            normalized.append(entry)
    return normalized


def _plugin_entry(plugin: Any) -> dict[str, Any] | None:
    if isinstance(plugin, Call):
        plugin_id = _plugin_id(plugin.callee.rsplit(".", 1)[-1])
        options = next((arg for arg in plugin.args if isinstance(arg, dict)), {})
        return {"id": plugin_id, "name": plugin_id, "options": to_plain(options)}
    if isinstance(plugin, Reference):
        plugin_id = _plugin_id(plugin.path.rsplit(".", 1)[-1])
        return {"id": plugin_id, "name": plugin_id, "options": {}}
    if isinstance(plugin, str):
        return {"id": _plugin_id(plugin), "name": plugin, "options": {}}

    plugin_id = _get(plugin, "id")
    if not isinstance(plugin_id, str):
        logger.debug(f"Skipping plugin without an id: {type(plugin).__name__}")
        return None

    name = _get(plugin, "name")
    options = _get(plugin, "options")
    return {
        "id": _plugin_id(plugin_id),
        "name": name if isinstance(name, str) else plugin_id,
        "options": _to_data(options) if isinstance(options, Mapping) or dataclasses.is_dataclass(options) else {},
    }


def _plugin_id(name: str) -> str:
    return to_camel(name) if "_" in name else name


def _validate(data: dict[str, Any]) -> AuthConfig:
    for _ in range(_MAX_PRUNE_ATTEMPTS):
        try:
            return AuthConfig.model_validate(data)
        except ValidationError as exc:
            error = exc.errors()[0]
            location = ".".join(str(part) for part in error["loc"])
            logger.info(f"Invalid configuration value at {location}, using default: {error['msg']}")
            if not _prune(data, list(error["loc"])):
                break

    logger.warning("Configuration could not be validated, using defaults")
    return AuthConfig()


def _prune(data: Any, loc: list) -> bool:
    """Remove the value at ``loc``, or its nearest existing ancestor."""
    while loc:
        parent = data
        found = True
        for part in loc[:-1]:
            parent = _child(parent, part)
            if parent is None:
                found = False
                break

        if found and _remove(parent, loc[-1]):
            return True
        loc = loc[:-1]
    return False


def _child(container: Any, key: Any) -> Any:
    if isinstance(container, list) and isinstance(key, int) and key < len(container):
        return container[key]
    if isinstance(container, dict):
        name = _matching_key(container, key)
        return container.get(name) if name is not None else None
    return None


def _remove(container: Any, key: Any) -> bool:
    if isinstance(container, list) and isinstance(key, int) and key < len(container):
        del container[key]
        return True
    if isinstance(container, dict):
        name = _matching_key(container, key)
        if name is not None:
            del container[name]
            return True
    return False


def _matching_key(container: dict, key: Any) -> Any:
    if key in container:
        return key
    for name in container:
        if isinstance(name, str) and to_camel(name) == key:
            return name
    return None
