"""SQL execution seam for setup/teardown statements and data assertions.

A real database adapter implements ``SqlExecutor``; the default
``NullSqlExecutor`` returns an empty result for every statement.
"""

import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class SqlResult(BaseModel):
    row_count: int = 0
    result: Any = None
    execution_time: float = 0  # ms


class SqlExecutor(ABC):
    @abstractmethod
    async def execute(self, statement: str) -> SqlResult:
        """Run one statement and report its rows."""


class NullSqlExecutor(SqlExecutor):
    """Zero-row no-op used when no database is wired in."""

    async def execute(self, statement: str) -> SqlResult:
        started = time.perf_counter()
        return SqlResult(row_count=0, result=None, execution_time=_elapsed_ms(started))


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
