"""Query execution against the external data store."""

from exchangeql.execution.duckdb_store import DuckDBDataStore, ensure_schema, init_database
from exchangeql.execution.gateway import ExecutionGateway, GatewayResult, GatewayState, StructuralFallback
from exchangeql.execution.store import AccessorFilter, DataStore

__all__ = [
    "AccessorFilter",
    "DataStore",
    "DuckDBDataStore",
    "ExecutionGateway",
    "GatewayResult",
    "GatewayState",
    "StructuralFallback",
    "ensure_schema",
    "init_database",
]
