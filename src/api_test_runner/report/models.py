"""Report models."""

from datetime import datetime

from pydantic import BaseModel, Field

from api_test_runner.config import RunConfig
from api_test_runner.executor.models import LatencyStats, TestResult
from api_test_runner.generator.models import TestCategory
from api_test_runner.parser.base import ApiEndpoint


class CategorySummary(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0


class Summary(BaseModel):
    total: int
    passed: int
    failed: int
    skipped: int = 0
    duration: float  # ms, sum of case durations
    pass_rate: str  # e.g. "66.7%"
    categories: dict[TestCategory, CategorySummary]
    latency: LatencyStats = Field(default_factory=LatencyStats)


class TestReport(BaseModel):
    """One run's results; written once and never modified."""

    id: str
    name: str
    generated_at: datetime
    config: RunConfig  # sanitized
    summary: Summary
    results: list[TestResult]
    endpoints: list[ApiEndpoint]
