"""Builds the logical database schema for a set of enabled plugins."""

import copy
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import cache
from importlib import resources
from typing import Any, Literal

import yaml

logger = logging.getLogger(__name__)

type RelationshipType = Literal["one-to-many", "many-to-one", "one-to-one"]


@dataclass
class SchemaField:
    name: str
    type: str
    required: bool = False
    description: str = ""
    primary_key: bool | None = None
    unique: bool | None = None
    default_value: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SchemaField":
        return cls(
            name=data["name"],
            type=data["type"],
            required=data.get("required", False),
            description=data.get("description", ""),
            primary_key=data.get("primaryKey"),
            unique=data.get("unique"),
            default_value=data.get("defaultValue"),
        )

    def to_dict(self) -> dict[str, Any]:
        result = {
            "name": self.name,
            "type": self.type,
            "required": self.required,
            "description": self.description,
        }
        if self.primary_key is not None:
            result["primaryKey"] = self.primary_key
        if self.unique is not None:
            result["unique"] = self.unique
        if self.default_value is not None:
            result["defaultValue"] = self.default_value
        return result


@dataclass(frozen=True)
class Relationship:
    type: RelationshipType
    target: str
    field: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "target": self.target, "field": self.field}


@dataclass
class SchemaTable:
    name: str
    display_name: str
    fields: list[SchemaField] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SchemaTable":
        table = cls(name=data["name"], display_name=data.get("displayName", data["name"]))
        table.extend(data.get("fields") or [], data.get("relationships") or [])
        return table

    def extend(self, fields: Iterable[dict[str, Any]], relationships: Iterable[dict[str, Any]]):
        """Add fields and relationships that are not already present."""
        names = {f.name for f in self.fields}
        for data in fields:
            if data["name"] not in names:
                self.fields.append(SchemaField.from_dict(data))
                names.add(data["name"])

        for data in relationships:
            relationship = Relationship(data["type"], data["target"], data["field"])
            if relationship not in self.relationships:
                self.relationships.append(relationship)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "fields": [f.to_dict() for f in self.fields],
            "relationships": [r.to_dict() for r in self.relationships],
        }


@cache
def load_schema_table() -> dict[str, Any]:
    """Load the packaged table definitions once per process."""
    text = resources.files("authstudio.schema").joinpath("tables.yaml").read_text(encoding="utf-8")
    return yaml.safe_load(text)


class SchemaComposer:
    """Merges the base tables with the fragments of enabled plugins.

    Plugins are applied in the order the table lists them, so the result does
    not depend on how the caller orders or repeats the enabled ids. Ids the
    table does not know are ignored.
    """

    def __init__(self, table: dict[str, Any] | None = None):
        self.table = table if table is not None else load_schema_table()
        self.aliases: dict[str, str] = self.table.get("aliases") or {}
        self.plugins: dict[str, Any] = self.table.get("plugins") or {}

    @property
    def known_plugins(self) -> list[str]:
        return list(self.plugins)

    def canonical_id(self, plugin_id: str) -> str:
        return self.aliases.get(plugin_id, plugin_id)

    def compose(self, enabled_plugin_ids: Iterable[str]) -> list[SchemaTable]:
        enabled = {self.canonical_id(plugin_id) for plugin_id in enabled_plugin_ids}
        unknown = enabled - set(self.plugins)
        if unknown:
            logger.debug(f"Ignoring plugins without schema fragments: {sorted(unknown)}")

        tables: dict[str, SchemaTable] = {}
        for data in self.table.get("base") or []:
            tables[data["name"]] = SchemaTable.from_dict(copy.deepcopy(data))

        for plugin_id, fragment in self.plugins.items():
            if plugin_id not in enabled:
                continue

            for data in fragment.get("tables") or []:
                existing = tables.get(data["name"])
                if existing is None:
                    tables[data["name"]] = SchemaTable.from_dict(copy.deepcopy(data))
                else:
                    existing.extend(data.get("fields") or [], data.get("relationships") or [])

            for table_name, extension in (fragment.get("extends") or {}).items():
                target = tables.get(table_name)
                if target is None:
                    logger.debug(f"{plugin_id} extends absent table {table_name}, skipping")
                    continue
                target.extend(extension.get("fields") or [], extension.get("relationships") or [])

        return list(tables.values())

    def compose_json(self, enabled_plugin_ids: Iterable[str]) -> dict[str, Any]:
        return {"tables": [table.to_dict() for table in self.compose(enabled_plugin_ids)]}
