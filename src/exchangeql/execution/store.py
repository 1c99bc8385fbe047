"""External data store interface.

The privileged entry point runs any validated SELECT. The typed accessors
are the only calls the degraded execution path may make.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

Row = dict[str, Any]


@dataclass(frozen=True)
class AccessorFilter:
    """Equality filter for typed accessors.

    A tuple value means "column IN values". ``limit=None`` returns every
    matching row, which the degraded path uses to compute counts.
    """

    equals: dict[str, Any] = field(default_factory=dict)
    limit: int | None = None


class DataStore(ABC):
    """Read-only access to the exchange management database."""

    @abstractmethod
    async def execute_safe_query(self, sql: str, params: dict[str, Any] | None = None) -> list[Row]:
        """Run a validated SELECT. Raises PrivilegedExecutionError on failure."""

    @abstractmethod
    async def list_exchanges(self, filter: AccessorFilter | None = None) -> list[Row]: ...

    @abstractmethod
    async def list_users(self, filter: AccessorFilter | None = None) -> list[Row]: ...

    @abstractmethod
    async def list_tasks(self, filter: AccessorFilter | None = None) -> list[Row]: ...

    @abstractmethod
    async def list_contacts(self, filter: AccessorFilter | None = None) -> list[Row]: ...

    @abstractmethod
    async def list_documents(self, filter: AccessorFilter | None = None) -> list[Row]: ...

    @abstractmethod
    async def list_messages(self, filter: AccessorFilter | None = None) -> list[Row]: ...
