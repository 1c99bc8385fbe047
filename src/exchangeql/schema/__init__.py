"""Schema catalog."""

from exchangeql.schema.catalog import (
    CachedSchemaCatalog,
    DuckDBSchemaCatalog,
    Relationship,
    SchemaCatalog,
    StaticSchemaCatalog,
    TableInfo,
)

__all__ = [
    "CachedSchemaCatalog",
    "DuckDBSchemaCatalog",
    "Relationship",
    "SchemaCatalog",
    "StaticSchemaCatalog",
    "TableInfo",
]
