"""Test case models produced by the generator and consumed by the executor."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from api_test_runner.parser.base import ApiEndpoint


class TestCategory(str, Enum):
    FUNCTIONAL = "functional"
    VALIDATION = "validation"
    BOUNDARY = "boundary"
    EXCEPTION = "exception"
    TRANSACTION = "transaction"
    CONCURRENT = "concurrent"
    PERFORMANCE = "performance"


class TestFile(BaseModel):
    """A file attachment sent as multipart form data."""

    field_name: str
    file_name: str
    content: str
    content_type: str = "text/plain"


class TestInput(BaseModel):
    path_params: dict[str, Any] = Field(default_factory=dict)
    query_params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    files: list[TestFile] = Field(default_factory=list)


class DataAssertion(BaseModel):
    """A post-condition checked against the backing data store."""

    description: str
    sql: str
    expected: Literal["exists", "notExists", "count", "value"]
    expected_value: Any = None


class TestExpectation(BaseModel):
    status_code: int | None = None
    status_codes: list[int] | None = None
    response_contains: list[str] = Field(default_factory=list)
    response_not_contains: list[str] = Field(default_factory=list)
    response_time: float | None = None  # ceiling in ms
    data_assertions: list[DataAssertion] = Field(default_factory=list)


class SqlHook(BaseModel):
    """Statements run before (setup) or after (teardown) a case."""

    sqls: list[str] = Field(default_factory=list)
    description: str = ""


class TestCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    endpoint: ApiEndpoint
    category: TestCategory
    input: TestInput = Field(default_factory=TestInput)
    expected: TestExpectation = Field(default_factory=TestExpectation)
    setup: SqlHook | None = None
    teardown: SqlHook | None = None

    def clone(self, suffix: str, label: str) -> "TestCase":
        """Copy with a distinguished id, used for concurrent/performance replays."""
        return self.model_copy(update={
            "id": f"{self.id}_{suffix}",
            "name": f"{self.name} ({label})",
        })
