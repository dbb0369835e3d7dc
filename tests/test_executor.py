import asyncio
import json

import httpx

from api_test_runner.config import RunConfig
from api_test_runner.executor.http import TestExecutor, categorize_error, unmet_expectations
from api_test_runner.executor.models import ResponseInfo
from api_test_runner.executor.sql import SqlExecutor, SqlResult
from api_test_runner.generator.models import (
    DataAssertion,
    SqlHook,
    TestCase,
    TestCategory,
    TestExpectation,
    TestFile,
    TestInput,
)
from api_test_runner.generator.testcase import TestCaseGenerator
from api_test_runner.generator.values import ValueGenerator
from api_test_runner.parser.base import ApiEndpoint
from api_test_runner.parser.java import JavaControllerParser


def _endpoint(method="GET", path="/api/users/{id}"):
    return ApiEndpoint(method=method, path=path, controller="UserController", name="getUser")


def _case(expected=None, data=None, **kwargs):
    return TestCase(
        id="getUser_functional_normal",
        name="getUser - normal request",
        endpoint=kwargs.pop("endpoint", _endpoint()),
        category=TestCategory.FUNCTIONAL,
        input=data or TestInput(path_params={"id": 1}),
        expected=expected or TestExpectation(status_code=200),
        **kwargs,
    )


def _json_handler(status=200, body=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body if body is not None else {"id": 1, "name": "alice"})
    return handler


def _executor(handler, config=None, sql=None):
    return TestExecutor(
        config or RunConfig(base_url="http://test.local"),
        sql=sql,
        transport=httpx.MockTransport(handler),
        case_delay=0,
    )


class RecordingSql(SqlExecutor):
    def __init__(self, row_count=0, result=None, fail_on=None):
        self.statements = []
        self.row_count = row_count
        self.result = result
        self.fail_on = fail_on

    async def execute(self, statement):
        self.statements.append(statement)
        if self.fail_on and self.fail_on in statement:
            raise RuntimeError("database unavailable")
        return SqlResult(row_count=self.row_count, result=self.result, execution_time=0.1)


class TestRequestBuilding:
    def test_path_query_and_headers(self):
        config = RunConfig(base_url="http://test.local/", token="secret", headers={"X-Env": "qa"})
        case = _case(data=TestInput(
            path_params={"id": "a b/c"},
            query_params={"page": 2, "active": True, "skip": None},
            headers={"X-Trace": "t1"},
        ))
        request = _executor(_json_handler(), config).build_request(case)
        assert request.url == "http://test.local/api/users/a%20b%2Fc?page=2&active=true"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Env"] == "qa"
        assert request.headers["X-Trace"] == "t1"
        assert request.headers["Authorization"] == "Bearer secret"

    def test_list_and_map_query_values(self):
        case = _case(data=TestInput(
            path_params={"id": 1},
            query_params={"ids": [1, 2], "tags": [], "filters": {"status": "open", "owner": None}},
        ))
        request = _executor(_json_handler()).build_request(case)
        assert request.url == "http://test.local/api/users/1?ids=1&ids=2&status=open"

    def test_parsed_collection_params_are_not_json(self):
        source = """
        @RestController
        @RequestMapping("/api")
        public class ItemController {
            @GetMapping("/items")
            public List<Item> items(@RequestParam Map<String, String> filters,
                                    @RequestParam List<Long> ids,
                                    @RequestParam(name = "q", required = false) String q) { return null; }
        }
        """
        endpoint = JavaControllerParser().parse(source)[0]
        functional = TestCaseGenerator(ValueGenerator(seed=3)).generate(endpoint)[0]
        url = _executor(_json_handler()).build_request(functional).url
        assert "%5B" not in url
        assert "%7B" not in url
        assert "q=" in url

    def test_case_headers_override_config_headers(self):
        config = RunConfig(base_url="http://test.local", headers={"Accept": "text/plain"})
        case = _case(data=TestInput(path_params={"id": 1}, headers={"Accept": "application/xml"}))
        request = _executor(_json_handler(), config).build_request(case)
        assert request.headers["Accept"] == "application/xml"


class TestExecuteTest:
    def test_passing_case(self):
        seen = []
        result = asyncio.run(_executor(_json_handler(seen=seen)).execute_test(_case()))
        assert result.passed is True
        assert result.error is None
        assert result.failures == []
        assert result.response.status_code == 200
        assert result.response.body == {"id": 1, "name": "alice"}
        assert result.response.response_time >= 0
        assert str(seen[0].url) == "http://test.local/api/users/1"
        assert result.logs[-1].startswith("[Result] PASS")

    def test_status_mismatch_fails(self):
        result = asyncio.run(_executor(_json_handler(status=404)).execute_test(_case()))
        assert result.passed is False
        assert result.error is None
        assert result.failures == ["status 404 != 200"]

    def test_status_codes_membership(self):
        case = _case(expected=TestExpectation(status_codes=[400, 422]))
        assert asyncio.run(_executor(_json_handler(status=422)).execute_test(case)).passed is True
        assert asyncio.run(_executor(_json_handler(status=200)).execute_test(case)).passed is False

    def test_server_error_without_status_expectation_passes(self):
        case = _case(expected=TestExpectation(response_not_contains=["sql"]))
        result = asyncio.run(_executor(_json_handler(status=500, body={"error": "npe"})).execute_test(case))
        assert result.passed is True

    def test_forbidden_substring_is_case_insensitive(self):
        case = _case(expected=TestExpectation(response_not_contains=["sql"]))
        handler = _json_handler(status=500, body={"error": "SQL syntax error"})
        assert asyncio.run(_executor(handler).execute_test(case)).passed is False

    def test_required_substring(self):
        case = _case(expected=TestExpectation(status_codes=[400, 422], response_contains=["username"]))
        handler = _json_handler(status=400, body={"message": "Username must not be blank"})
        assert asyncio.run(_executor(handler).execute_test(case)).passed is True

    def test_response_time_ceiling(self):
        case = _case(expected=TestExpectation(status_code=200, response_time=-1))
        result = asyncio.run(_executor(_json_handler()).execute_test(case))
        assert result.passed is False
        assert result.failures[0].startswith("response time")

    def test_text_body(self):
        def handler(request):
            return httpx.Response(200, text="plain ok")
        result = asyncio.run(_executor(handler).execute_test(_case()))
        assert result.response.body == "plain ok"

    def test_json_body_is_sent(self):
        seen = []
        case = _case(
            endpoint=_endpoint("POST", "/api/users"),
            data=TestInput(body={"username": "alice", "age": 3}),
        )
        asyncio.run(_executor(_json_handler(seen=seen)).execute_test(case))
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"username": "alice", "age": 3}

    def test_multipart_when_files_attached(self):
        seen = []
        case = _case(
            endpoint=_endpoint("PUT", "/api/users/{id}/avatar"),
            data=TestInput(
                path_params={"id": 1},
                files=[TestFile(field_name="file", file_name="file.txt", content="hello")],
            ),
        )
        result = asyncio.run(_executor(_json_handler(seen=seen)).execute_test(case))
        assert seen[0].headers["content-type"].startswith("multipart/form-data")
        assert b"hello" in seen[0].content
        assert result.request.files == ["file.txt"]

    def test_token_is_masked_in_result(self):
        seen = []
        config = RunConfig(base_url="http://test.local", token="secret")
        result = asyncio.run(_executor(_json_handler(seen=seen), config).execute_test(_case()))
        assert seen[0].headers["authorization"] == "Bearer secret"
        assert result.request.headers["Authorization"] == "Bearer ***"
        assert "secret" not in "\n".join(result.logs)


class TestExecutionErrors:
    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)
        result = asyncio.run(_executor(handler).execute_test(_case()))
        assert result.passed is False
        assert result.error.kind == "connection"
        assert result.response.status_code == 0
        assert result.response.status_text == "No Response"
        assert result.error.trace

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)
        result = asyncio.run(_executor(handler).execute_test(_case()))
        assert result.error.kind == "timeout"

    def test_categorize_by_keyword(self):
        assert categorize_error(RuntimeError("socket connect failed")) == "connection"
        assert categorize_error(RuntimeError("ECONNREFUSED 127.0.0.1")) == "connection"
        assert categorize_error(RuntimeError("operation Timeout")) == "timeout"
        assert categorize_error(RuntimeError("assert failed")) == "assertion"
        assert categorize_error(RuntimeError("boom")) == "exception"

    def test_categorize_by_type(self):
        assert categorize_error(asyncio.TimeoutError()) == "timeout"
        assert categorize_error(AssertionError()) == "assertion"

    def test_setup_failure_is_captured(self):
        case = _case(setup=SqlHook(sqls=["INSERT INTO users VALUES (1)"]))
        sql = RecordingSql(fail_on="INSERT")
        result = asyncio.run(_executor(_json_handler(), sql=sql).execute_test(case))
        assert result.passed is False
        assert result.error.kind == "exception"
        assert result.error.message == "database unavailable"


class TestDataAssertions:
    def _assertion_case(self, expected="exists", expected_value=None):
        return _case(
            setup=SqlHook(sqls=["DELETE FROM users WHERE id = 1", "INSERT INTO users (id) VALUES (1)"]),
            expected=TestExpectation(
                status_code=200,
                data_assertions=[DataAssertion(
                    description="user row exists",
                    sql="SELECT * FROM users WHERE id = 1",
                    expected=expected,
                    expected_value=expected_value,
                )],
            ),
        )

    def test_exists_against_zero_rows_fails(self):
        result = asyncio.run(_executor(_json_handler()).execute_test(self._assertion_case()))
        assert result.response.status_code == 200
        assert result.passed is False
        assert [d.phase for d in result.data_results] == ["setup", "setup", "assertion"]
        assert [d.passed for d in result.data_results] == [None, None, False]

    def test_count_and_value(self):
        sql = RecordingSql(row_count=1, result=[{"id": 1}])
        executor = _executor(_json_handler(), sql=sql)
        assert asyncio.run(executor.execute_test(self._assertion_case("count", 1))).passed is True
        assert asyncio.run(executor.execute_test(self._assertion_case("value", [{"id": 1}]))).passed is True
        assert asyncio.run(executor.execute_test(self._assertion_case("notExists"))).passed is False

    def test_teardown_runs_and_failures_do_not_affect_verdict(self):
        case = _case(teardown=SqlHook(sqls=["DELETE FROM users WHERE id = 1"]))
        sql = RecordingSql(fail_on="DELETE")
        result = asyncio.run(_executor(_json_handler(), sql=sql).execute_test(case))
        assert sql.statements == ["DELETE FROM users WHERE id = 1"]
        assert result.passed is True
        assert any(line.startswith("[Teardown] Failed") for line in result.logs)

    def test_unmet_expectations_without_response(self):
        assert unmet_expectations(TestExpectation(), None, None, []) == ["no response received"]
        assert unmet_expectations(TestExpectation(), ResponseInfo(status_code=204), None, []) == []


class TestBatches:
    def test_sequential_with_progress(self):
        progress = []
        cases = [_case(), _case(expected=TestExpectation(status_code=201))]
        executor = _executor(_json_handler())
        results = asyncio.run(executor.execute_tests(cases, on_progress=lambda *a: progress.append(a)))
        assert [r.passed for r in results] == [True, False]
        assert [(current, total) for current, total, _ in progress] == [(1, 2), (2, 2)]
        assert progress[0][2].startswith("PASS getUser - normal request")
        assert progress[1][2].startswith("FAIL")

    def test_cancellation_between_cases(self):
        cases = [_case(), _case(), _case()]
        executor = _executor(_json_handler())
        done = []
        results = asyncio.run(executor.execute_tests(
            cases, on_progress=lambda *a: done.append(a), should_cancel=lambda: len(done) >= 1
        ))
        assert len(results) == 1

    def test_concurrent_clones(self):
        executor = _executor(_json_handler())
        results = asyncio.run(executor.execute_concurrent_test(_case(), concurrency=10))
        assert len(results) == 10
        ids = [r.test_case.id for r in results]
        assert len(set(ids)) == 10
        assert ids == [f"getUser_functional_normal_concurrent_{i}" for i in range(10)]
        assert all(r.passed for r in results)

    def test_performance_run(self):
        executor = _executor(_json_handler())
        perf = asyncio.run(executor.execute_performance_test(_case(), iterations=5))
        assert [r.test_case.id for r in perf.results] == [f"getUser_functional_normal_perf_{i}" for i in range(5)]
        stats = perf.stats
        assert stats.min <= stats.p50 <= stats.p90 <= stats.p99 <= stats.max
