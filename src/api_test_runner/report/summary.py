"""Aggregate a batch of test results into a TestReport."""

import logging
import random
import string
import time
from datetime import datetime

from api_test_runner.config import RunConfig
from api_test_runner.executor.models import TestResult
from api_test_runner.executor.stats import compute_latency_stats
from api_test_runner.generator.models import TestCategory
from api_test_runner.parser.base import ApiEndpoint
from api_test_runner.report.models import CategorySummary, Summary, TestReport

logger = logging.getLogger(__name__)

REPORT_NAME = "API Test Report"


def percentage(value: int, total: int) -> str:
    if total == 0:
        return "0%"
    return f"{value / total * 100:.1f}%"


def summarize(results: list[TestResult], skipped: int = 0) -> Summary:
    """Counts, pass rate, per-category breakdown and latency for a batch."""
    passed = sum(1 for r in results if r.passed)
    failed = len(results) - passed
    total = passed + failed + skipped

    categories = {category: CategorySummary() for category in TestCategory}
    for result in results:
        stats = categories[result.test_case.category]
        stats.total += 1
        if result.passed:
            stats.passed += 1
        else:
            stats.failed += 1

    return Summary(
        total=total,
        passed=passed,
        failed=failed,
        skipped=skipped,
        duration=round(sum(r.duration for r in results), 2),
        pass_rate=percentage(passed, total),
        categories=categories,
        latency=compute_latency_stats([r.response.response_time for r in results]),
    )


class ReportGenerator:
    """Builds TestReports; never touches the filesystem."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def generate_report(
        self,
        results: list[TestResult],
        endpoints: list[ApiEndpoint],
        config: RunConfig,
        skipped: int = 0,
    ) -> TestReport:
        summary = summarize(results, skipped)
        logger.info("Report: %d passed, %d failed, %d skipped", summary.passed, summary.failed, summary.skipped)
        return TestReport(
            id=self._report_id(),
            name=REPORT_NAME,
            generated_at=datetime.now(),
            config=config.sanitized(),
            summary=summary,
            results=list(results),
            endpoints=list(endpoints),
        )

    def _report_id(self) -> str:
        suffix = "".join(self.rng.choices(string.ascii_lowercase + string.digits, k=6))
        return f"report_{int(time.time() * 1000)}_{suffix}"
