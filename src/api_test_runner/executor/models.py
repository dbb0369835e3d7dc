"""Execution result models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from api_test_runner.generator.models import TestCase

ErrorKind = Literal["connection", "timeout", "assertion", "exception", "unknown"]


class RequestInfo(BaseModel):
    """The request actually sent."""

    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    files: list[str] = Field(default_factory=list)


class ResponseInfo(BaseModel):
    status_code: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    response_time: float = 0  # ms, measured by the executor

    @classmethod
    def empty(cls) -> "ResponseInfo":
        """Sentinel used when no response was received."""
        return cls(status_code=0, status_text="No Response")


class DataQueryResult(BaseModel):
    """One executed setup statement or data assertion."""

    sql: str
    phase: Literal["setup", "assertion"] = "assertion"
    description: str = ""
    result: Any = None
    row_count: int = 0
    execution_time: float = 0  # ms
    passed: bool | None = None  # None for setup statements


class TestError(BaseModel):
    kind: ErrorKind
    message: str
    trace: str | None = None


class TestResult(BaseModel):
    test_case: TestCase
    passed: bool
    start_time: datetime
    end_time: datetime
    duration: float  # ms
    request: RequestInfo
    response: ResponseInfo
    data_results: list[DataQueryResult] = Field(default_factory=list)
    error: TestError | None = None
    failures: list[str] = Field(default_factory=list)  # unmet checks
    logs: list[str] = Field(default_factory=list)


class LatencyStats(BaseModel):
    min: float = 0
    max: float = 0
    avg: float = 0
    p50: float = 0
    p90: float = 0
    p99: float = 0


class PerformanceResult(BaseModel):
    results: list[TestResult]
    stats: LatencyStats
