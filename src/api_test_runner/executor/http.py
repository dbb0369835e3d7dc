"""HTTP test executor.

Runs TestCases against a live target with httpx and turns every outcome,
including transport failures, into a TestResult.
"""

import asyncio
import json
import logging
import time
import traceback
from datetime import datetime
from typing import Any, Callable, Iterable
from urllib.parse import quote, urlencode

import httpx

from api_test_runner.config import RunConfig, mask_headers
from api_test_runner.executor.models import (
    DataQueryResult,
    ErrorKind,
    PerformanceResult,
    RequestInfo,
    ResponseInfo,
    TestError,
    TestResult,
)
from api_test_runner.executor.sql import NullSqlExecutor, SqlExecutor, SqlResult
from api_test_runner.executor.stats import compute_latency_stats
from api_test_runner.generator.models import DataAssertion, TestCase, TestExpectation
from api_test_runner.generator.values import as_text

logger = logging.getLogger(__name__)

CASE_DELAY = 0.1  # seconds between sequential cases
DEFAULT_CONCURRENCY = 10
DEFAULT_ITERATIONS = 100

ProgressCallback = Callable[[int, int, str], None]


def categorize_error(error: BaseException) -> ErrorKind:
    """Classify a failure by type, then by message keywords."""
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(error, httpx.ConnectError):
        return "connection"
    if isinstance(error, AssertionError):
        return "assertion"
    message = str(error).lower()
    if "timeout" in message:
        return "timeout"
    if "connect" in message or "econnrefused" in message:
        return "connection"
    if "assert" in message:
        return "assertion"
    return "exception"


def serialize_body(body: Any) -> str:
    return json.dumps(body, ensure_ascii=False, default=str)


def check_data_assertion(assertion: DataAssertion, outcome: SqlResult) -> bool:
    if assertion.expected == "exists":
        return outcome.row_count > 0
    if assertion.expected == "notExists":
        return outcome.row_count == 0
    if assertion.expected == "count":
        return outcome.row_count == assertion.expected_value
    return json.dumps(outcome.result, sort_keys=True, default=str) == json.dumps(
        assertion.expected_value, sort_keys=True, default=str
    )


def unmet_expectations(
    expected: TestExpectation,
    response: ResponseInfo | None,
    error: TestError | None,
    data_results: list[DataQueryResult],
) -> list[str]:
    """Every check the response fails, in evaluation order; empty means pass."""
    if error is not None:
        return [f"{error.kind} error: {error.message}"]
    if response is None:
        return ["no response received"]

    failures = []
    if expected.status_code is not None and response.status_code != expected.status_code:
        failures.append(f"status {response.status_code} != {expected.status_code}")
    if expected.status_codes is not None and response.status_code not in expected.status_codes:
        failures.append(f"status {response.status_code} not in {expected.status_codes}")

    text = serialize_body(response.body).lower()
    for keyword in expected.response_contains:
        if keyword.lower() not in text:
            failures.append(f"response does not contain {keyword!r}")
    for keyword in expected.response_not_contains:
        if keyword.lower() in text:
            failures.append(f"response contains {keyword!r}")

    if expected.response_time is not None and response.response_time > expected.response_time:
        failures.append(f"response time {response.response_time}ms > {expected.response_time}ms")

    for result in data_results:
        if result.phase == "assertion" and result.passed is False:
            failures.append(f"data assertion failed: {result.description or result.sql}")
    return failures


class TestExecutor:
    """Executes test cases against ``config.base_url``.

    ``transport`` replaces httpx's network transport (tests use
    ``httpx.MockTransport``); ``sql`` is the database seam.
    """

    def __init__(
        self,
        config: RunConfig,
        sql: SqlExecutor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        case_delay: float = CASE_DELAY,
    ):
        self.config = config
        self.sql = sql or NullSqlExecutor()
        self.transport = transport
        self.case_delay = case_delay

    # -- single case ----------------------------------------------------------

    def build_request(self, case: TestCase) -> RequestInfo:
        """Materialize the HTTP request for ``case``."""
        data = case.input
        url = self.config.base_url + case.endpoint.path
        for key, value in data.path_params.items():
            url = url.replace("{" + key + "}", quote(as_text(value), safe=""))

        query = _query_pairs(data.query_params)
        if query:
            url += "?" + urlencode(query)

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **self.config.headers,
            **data.headers,
        }
        if data.files:
            headers.pop("Content-Type")  # httpx sets the multipart boundary
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"

        return RequestInfo(
            method=case.endpoint.method,
            url=url,
            headers=headers,
            body=data.body,
            files=[f.file_name for f in data.files],
        )

    async def execute_test(self, case: TestCase) -> TestResult:
        """Run one case; never raises for execution failures."""
        start_time = datetime.now()
        started = time.perf_counter()
        logs = [f"[{start_time.isoformat(timespec='milliseconds')}] Start: {case.name}"]
        data_results: list[DataQueryResult] = []
        response: ResponseInfo | None = None
        error: TestError | None = None
        request = self.build_request(case)

        try:
            if case.setup and case.setup.sqls:
                logs.append("[Setup] Running setup SQL")
                for sql in case.setup.sqls:
                    outcome = await self.sql.execute(sql)
                    data_results.append(DataQueryResult(
                        sql=sql,
                        phase="setup",
                        description=case.setup.description,
                        result=outcome.result,
                        row_count=outcome.row_count,
                        execution_time=outcome.execution_time,
                    ))
                    logs.append(f"[Setup] SQL: {sql[:100]}")

            logs.append(f"[Request] {request.method} {request.url}")
            logs.append(f"[Request] Headers: {json.dumps(mask_headers(request.headers))}")
            if request.body is not None:
                logs.append(f"[Request] Body: {serialize_body(request.body)}")

            response = await self._send(request, case)
            logs.append(f"[Response] Status: {response.status_code} {response.status_text}")
            logs.append(f"[Response] Time: {response.response_time}ms")
            logs.append(f"[Response] Body: {serialize_body(response.body)[:500]}")

            if case.expected.data_assertions:
                logs.append("[Data] Running data assertions")
                for assertion in case.expected.data_assertions:
                    outcome = await self.sql.execute(assertion.sql)
                    passed = check_data_assertion(assertion, outcome)
                    data_results.append(DataQueryResult(
                        sql=assertion.sql,
                        phase="assertion",
                        description=assertion.description,
                        result=outcome.result,
                        row_count=outcome.row_count,
                        execution_time=outcome.execution_time,
                        passed=passed,
                    ))
                    logs.append(f"[Data] {assertion.description}: {serialize_body(outcome.result)} "
                                f"({outcome.row_count} rows, {'ok' if passed else 'failed'})")
        except Exception as e:
            error = TestError(
                kind=categorize_error(e),
                message=str(e) or type(e).__name__,
                trace=traceback.format_exc(),
            )
            logs.append(f"[Error] {error.kind}: {error.message}")
            logger.debug("Case %s failed with %s", case.id, error.kind, exc_info=True)

        await self._teardown(case, logs)

        end_time = datetime.now()
        duration = round((time.perf_counter() - started) * 1000, 2)
        failures = unmet_expectations(case.expected, response, error, data_results)
        for reason in failures:
            logs.append(f"[Check] {reason}")
        passed = not failures
        logs.append(f"[Result] {'PASS' if passed else 'FAIL'} ({duration}ms)")

        return TestResult(
            test_case=case,
            passed=passed,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            request=request.model_copy(update={"headers": mask_headers(request.headers)}),
            response=response or ResponseInfo.empty(),
            data_results=data_results,
            error=error,
            failures=failures,
            logs=logs,
        )

    async def _send(self, request: RequestInfo, case: TestCase) -> ResponseInfo:
        timeout = self.config.timeout / 1000
        kwargs: dict[str, Any] = {}
        if case.input.files:
            kwargs["files"] = [
                (f.field_name, (f.file_name, f.content.encode("utf-8"), f.content_type))
                for f in case.input.files
            ]
            if isinstance(request.body, dict):
                kwargs["data"] = {k: as_text(v) for k, v in request.body.items()}
        elif request.body is not None:
            kwargs["content"] = serialize_body(request.body).encode("utf-8")

        async with httpx.AsyncClient(
            timeout=timeout, transport=self.transport, verify=self.config.verify_ssl
        ) as client:
            started = time.perf_counter()
            resp = await asyncio.wait_for(
                client.request(request.method, request.url, headers=request.headers, **kwargs),
                timeout=timeout,
            )
            elapsed = round((time.perf_counter() - started) * 1000, 2)

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text
        return ResponseInfo(
            status_code=resp.status_code,
            status_text=resp.reason_phrase,
            headers=dict(resp.headers),
            body=body,
            response_time=elapsed,
        )

    async def _teardown(self, case: TestCase, logs: list[str]) -> None:
        if not (case.teardown and case.teardown.sqls):
            return
        logs.append("[Teardown] Running teardown SQL")
        for sql in case.teardown.sqls:
            try:
                await self.sql.execute(sql)
            except Exception as e:
                logs.append(f"[Teardown] Failed: {e}")
                logger.warning("Teardown statement failed for %s: %s", case.id, e)

    # -- batches --------------------------------------------------------------

    async def execute_tests(
        self,
        cases: Iterable[TestCase],
        on_progress: ProgressCallback | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> list[TestResult]:
        """Run cases one at a time; cancellation is checked between cases."""
        cases = list(cases)
        total = len(cases)
        results: list[TestResult] = []
        for index, case in enumerate(cases, 1):
            if should_cancel is not None and should_cancel():
                logger.info("Batch cancelled after %d of %d cases", index - 1, total)
                break
            result = await self.execute_test(case)
            results.append(result)
            if on_progress is not None:
                on_progress(index, total, progress_label(result))
            if index < total and self.case_delay:
                await asyncio.sleep(self.case_delay)
        return results

    async def execute_concurrent_test(self, case: TestCase, concurrency: int = DEFAULT_CONCURRENCY) -> list[TestResult]:
        """Run ``concurrency`` clones of ``case`` in parallel and wait for all."""
        clones = [
            case.clone(f"concurrent_{i}", f"concurrent {i + 1}/{concurrency}")
            for i in range(concurrency)
        ]
        logger.info("Running %d concurrent requests for %s", concurrency, case.id)
        return list(await asyncio.gather(*(self.execute_test(c) for c in clones)))

    async def execute_performance_test(self, case: TestCase, iterations: int = DEFAULT_ITERATIONS) -> PerformanceResult:
        """Replay ``case`` sequentially and summarize response times."""
        results = []
        for i in range(iterations):
            clone = case.clone(f"perf_{i}", f"performance {i + 1}/{iterations}")
            results.append(await self.execute_test(clone))
        stats = compute_latency_stats([r.response.response_time for r in results])
        logger.info("Performance %s: p50=%sms p90=%sms p99=%sms", case.id, stats.p50, stats.p90, stats.p99)
        return PerformanceResult(results=results, stats=stats)


def progress_label(result: TestResult) -> str:
    status = "PASS" if result.passed else "FAIL"
    return f"{status} {result.test_case.name} ({result.duration}ms)"


def _query_pairs(params: dict[str, Any]) -> list[tuple[str, str]]:
    """Flatten query params the way Spring binds them.

    A list repeats its key once per item; a map contributes its own
    entries as parameters; None is left out.
    """
    pairs = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, list):
            pairs.extend((key, as_text(item)) for item in value)
        elif isinstance(value, dict):
            pairs.extend((k, as_text(v)) for k, v in value.items() if v is not None)
        else:
            pairs.append((key, as_text(value)))
    return pairs
