"""End-to-end pipeline: synthesize cases, execute them, write the report."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from api_test_runner.config import RunConfig
from api_test_runner.executor.http import ProgressCallback, TestExecutor
from api_test_runner.executor.models import PerformanceResult, TestResult
from api_test_runner.generator.models import TestCategory
from api_test_runner.generator.testcase import TestCaseGenerator, shared_names
from api_test_runner.parser.base import ApiEndpoint
from api_test_runner.report.models import TestReport
from api_test_runner.report.summary import ReportGenerator
from api_test_runner.report.writer import ReportWriter

logger = logging.getLogger(__name__)

LOAD_CATEGORIES = (TestCategory.CONCURRENT, TestCategory.PERFORMANCE)


@dataclass
class RunOutcome:
    report: TestReport
    report_dir: Path
    performance: dict[str, PerformanceResult] = field(default_factory=dict)  # keyed by endpoint label


class TestRunner:
    """Runs the selected test categories for a set of endpoints."""

    def __init__(
        self,
        config: RunConfig,
        workspace: Path,
        executor: TestExecutor | None = None,
        writer: ReportWriter | None = None,
        generator: TestCaseGenerator | None = None,
        reporter: ReportGenerator | None = None,
    ):
        self.config = config
        self.executor = executor or TestExecutor(config)
        self.writer = writer or ReportWriter(workspace)
        self.generator = generator or TestCaseGenerator()
        self.reporter = reporter or ReportGenerator()

    async def run(
        self,
        endpoints: list[ApiEndpoint],
        categories: Iterable[TestCategory | str] | None = None,
        concurrency: int = 10,
        iterations: int = 100,
        on_progress: ProgressCallback | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> RunOutcome:
        """Execute sequential cases first, then one load run per endpoint and kind."""
        selected = {TestCategory(c) for c in categories} if categories else set(TestCategory)
        sequential = [c for c in selected if c not in LOAD_CATEGORIES]
        cases = self.generator.generate_all(endpoints, sequential) if sequential else []
        shared = shared_names(endpoints)
        load_runs = [(ep, kind) for ep in endpoints for kind in LOAD_CATEGORIES if kind in selected]
        total = len(cases) + len(load_runs)
        logger.info("Running %d cases and %d load runs against %s", len(cases), len(load_runs), self.config.base_url)

        def report_progress(current: int, _: int, label: str) -> None:
            if on_progress is not None:
                on_progress(current, total, label)

        results: list[TestResult] = await self.executor.execute_tests(
            cases, on_progress=report_progress, should_cancel=should_cancel
        )
        skipped = len(cases) - len(results)

        performance: dict[str, PerformanceResult] = {}
        for index, (endpoint, kind) in enumerate(load_runs, len(cases) + 1):
            if skipped or (should_cancel is not None and should_cancel()):
                skipped += concurrency if kind is TestCategory.CONCURRENT else iterations
                continue
            case = self.generator.load_case(endpoint, kind, qualified=endpoint.name in shared)
            if kind is TestCategory.CONCURRENT:
                batch = await self.executor.execute_concurrent_test(case, concurrency)
            else:
                perf = await self.executor.execute_performance_test(case, iterations)
                performance[endpoint.label] = perf
                batch = perf.results
            results.extend(batch)
            passed = sum(1 for r in batch if r.passed)
            report_progress(index, total, f"{kind.value.upper()} {endpoint.label} ({passed}/{len(batch)} passed)")

        report = self.reporter.generate_report(results, endpoints, self.config, skipped=skipped)
        report_dir = self.writer.save(report)
        return RunOutcome(report=report, report_dir=report_dir, performance=performance)
