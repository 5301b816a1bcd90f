from .composer import Relationship, SchemaComposer, SchemaField, SchemaTable, load_schema_table

__all__ = ["Relationship", "SchemaComposer", "SchemaField", "SchemaTable", "load_schema_table"]
