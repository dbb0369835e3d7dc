"""Test case generator: synthesizes functional, validation, boundary and
exception cases from extracted endpoint definitions.

Every case starts from the endpoint's canonical valid input and changes
exactly one parameter, so a failure is attributable to that parameter.
"""

import logging
from collections import Counter
from typing import Any, Iterable

from api_test_runner.generator.models import (
    TestCase,
    TestCategory,
    TestExpectation,
    TestFile,
    TestInput,
)
from api_test_runner.generator.values import SPECIAL_CHARS, ValueGenerator, as_text
from api_test_runner.parser.base import NUMERIC_TYPES, ApiEndpoint, Param

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_TIME = 3000  # ms
CLIENT_ERROR_CODES = [400, 422]
HANDLED_CODES = [200, 400]
SQL_LEAK_MARKERS = ["sql", "syntax", "mysql", "database error"]
XSS_LEAK_MARKERS = ["<script>"]


class TestCaseGenerator:
    """Generates TestCase batteries from ApiEndpoint definitions."""

    def __init__(self, values: ValueGenerator | None = None, response_time: float = DEFAULT_RESPONSE_TIME):
        self.values = values or ValueGenerator()
        self.response_time = response_time

    def generate(self, endpoint: ApiEndpoint) -> list[TestCase]:
        """Generate the full battery of cases for one endpoint."""
        base = self.build_valid_input(endpoint)
        cases: list[TestCase] = []
        cases.extend(self._functional(endpoint, base))
        cases.extend(self._validation(endpoint, base))
        cases.extend(self._boundary(endpoint, base))
        cases.extend(self._exception(endpoint, base))
        logger.info("Generated %d test cases for %s", len(cases), endpoint.label)
        return cases

    def generate_all(
        self,
        endpoints: list[ApiEndpoint],
        categories: Iterable[TestCategory | str] | None = None,
    ) -> list[TestCase]:
        """Generate cases for all endpoints, optionally keeping only some categories."""
        wanted = {TestCategory(c) for c in categories} if categories else None
        shared = shared_names(endpoints)
        cases = []
        for endpoint in endpoints:
            for case in self.generate(endpoint):
                if wanted is None or case.category in wanted:
                    cases.append(_qualified(case) if endpoint.name in shared else case)
        return cases

    def load_case(self, endpoint: ApiEndpoint, category: TestCategory, qualified: bool = False) -> TestCase:
        """A valid request labelled for concurrent or performance replay.

        ``qualified`` prefixes the id with the controller name, for operation
        names shared across endpoints.
        """
        case = TestCase(
            id=f"{endpoint.name}_load",
            name=f"{endpoint.name} - {category.value} load",
            description="Replay a valid request to measure behaviour under load",
            endpoint=endpoint,
            category=category,
            input=self.build_valid_input(endpoint),
            expected=TestExpectation(status_code=200, response_time=self.response_time),
        )
        return _qualified(case) if qualified else case

    def build_valid_input(self, endpoint: ApiEndpoint) -> TestInput:
        """Input with a synthesized valid value for every parameter and body field."""
        data = TestInput()
        for param in endpoint.parameters:
            if param.location == "body":
                continue
            if param.param_type == "file":
                data.files.append(_attachment(param.name))
                continue
            value = self.values.valid(param.param_type, param.constraints)
            if param.location == "path":
                data.path_params[param.name] = value
            elif param.location == "query":
                data.query_params[param.name] = value
            elif param.location == "header":
                data.headers[param.name] = as_text(value)
        if endpoint.request_body is not None:
            data.body = self._body(endpoint.request_body.fields)
        return data

    def _body(self, fields) -> dict[str, Any]:
        body = {}
        for f in fields:
            if f.children:
                body[f.name] = self._body(f.children)
            else:
                body[f.name] = self.values.valid(f.field_type, f.constraints)
        return body

    # -- categories -----------------------------------------------------------

    def _functional(self, endpoint: ApiEndpoint, base: TestInput) -> list[TestCase]:
        return [TestCase(
            id=f"{endpoint.name}_functional_normal",
            name=f"{endpoint.name} - normal request",
            description="Call with valid values for every parameter and expect success",
            endpoint=endpoint,
            category=TestCategory.FUNCTIONAL,
            input=base.model_copy(deep=True),
            expected=TestExpectation(status_code=200, response_time=self.response_time),
        )]

    def _validation(self, endpoint: ApiEndpoint, base: TestInput) -> list[TestCase]:
        cases = []
        op = endpoint.name
        for param in endpoint.all_params():
            key = _param_key(endpoint, param)
            # A path parameter cannot be left out of the URL, only mistyped.
            if param.required and param.location != "path":
                cases.append(self._case(
                    endpoint, TestCategory.VALIDATION, f"missing_{key}",
                    f"{op} - missing required parameter {param.name}",
                    f"Omit required parameter {param.name} and expect a validation error",
                    _without(endpoint, base, param),
                    TestExpectation(status_codes=CLIENT_ERROR_CODES, response_contains=[param.name]),
                ))

            cases.append(self._case(
                endpoint, TestCategory.VALIDATION, f"type_{key}",
                f"{op} - wrong type for {param.name}",
                f"Send a value that is not a {param.param_type} for {param.name}",
                _with_value(endpoint, base, param, self.values.wrong_type(param.param_type)),
                TestExpectation(status_codes=CLIENT_ERROR_CODES),
            ))

            if param.constraints.email:
                cases.append(self._case(
                    endpoint, TestCategory.VALIDATION, f"invalid_email_{key}",
                    f"{op} - invalid email for {param.name}",
                    "Send a malformed email address",
                    _with_value(endpoint, base, param, "invalid-email"),
                    TestExpectation(status_codes=CLIENT_ERROR_CODES),
                ))
            if param.constraints.pattern:
                cases.append(self._case(
                    endpoint, TestCategory.VALIDATION, f"pattern_{key}",
                    f"{op} - {param.name} does not match pattern",
                    f"Send a value not matching {param.constraints.pattern}",
                    _with_value(endpoint, base, param, "!!!invalid!!!"),
                    TestExpectation(status_codes=CLIENT_ERROR_CODES),
                ))
        return cases

    def _boundary(self, endpoint: ApiEndpoint, base: TestInput) -> list[TestCase]:
        cases = []
        op = endpoint.name
        for param in endpoint.all_params():
            key = _param_key(endpoint, param)
            c = param.constraints
            if param.param_type in NUMERIC_TYPES:
                if c.min is not None:
                    cases.append(self._case(
                        endpoint, TestCategory.BOUNDARY, f"min_{key}",
                        f"{op} - {param.name} at minimum", f"Use the minimum value {c.min}",
                        _with_value(endpoint, base, param, c.min),
                        TestExpectation(status_code=200),
                    ))
                    cases.append(self._case(
                        endpoint, TestCategory.BOUNDARY, f"below_min_{key}",
                        f"{op} - {param.name} below minimum", f"Use {c.min - 1}, one below the minimum",
                        _with_value(endpoint, base, param, c.min - 1),
                        TestExpectation(status_codes=CLIENT_ERROR_CODES),
                    ))
                if c.max is not None:
                    cases.append(self._case(
                        endpoint, TestCategory.BOUNDARY, f"max_{key}",
                        f"{op} - {param.name} at maximum", f"Use the maximum value {c.max}",
                        _with_value(endpoint, base, param, c.max),
                        TestExpectation(status_code=200),
                    ))
                    cases.append(self._case(
                        endpoint, TestCategory.BOUNDARY, f"above_max_{key}",
                        f"{op} - {param.name} above maximum", f"Use {c.max + 1}, one above the maximum",
                        _with_value(endpoint, base, param, c.max + 1),
                        TestExpectation(status_codes=CLIENT_ERROR_CODES),
                    ))

            if param.param_type == "string":
                if c.max_length is not None:
                    cases.append(self._case(
                        endpoint, TestCategory.BOUNDARY, f"overlength_{key}",
                        f"{op} - {param.name} too long",
                        f"Use a string 10 characters longer than {c.max_length}",
                        _with_value(endpoint, base, param, "a" * (c.max_length + 10)),
                        TestExpectation(status_codes=CLIENT_ERROR_CODES),
                    ))
                # Only a not-blank rule makes the empty string invalid.
                cases.append(self._case(
                    endpoint, TestCategory.BOUNDARY, f"empty_{key}",
                    f"{op} - {param.name} empty string", "Send an empty string",
                    _with_value(endpoint, base, param, ""),
                    TestExpectation(status_codes=CLIENT_ERROR_CODES if c.not_blank else [200]),
                ))
        return cases

    def _exception(self, endpoint: ApiEndpoint, base: TestInput) -> list[TestCase]:
        op = endpoint.name
        target = next((p for p in endpoint.all_params() if p.param_type == "string"), None)

        def inject(payload: str) -> TestInput:
            if target is None:
                return base.model_copy(deep=True)
            return _with_value(endpoint, base, target, payload)

        return [
            self._case(
                endpoint, TestCategory.EXCEPTION, "sql_injection",
                f"{op} - SQL injection", "Check the endpoint is protected against SQL injection",
                inject(self.values.sql_injection()),
                TestExpectation(status_codes=HANDLED_CODES, response_not_contains=SQL_LEAK_MARKERS),
            ),
            self._case(
                endpoint, TestCategory.EXCEPTION, "xss",
                f"{op} - XSS payload", "Check the endpoint does not reflect script tags",
                inject(self.values.xss()),
                TestExpectation(status_codes=HANDLED_CODES, response_not_contains=XSS_LEAK_MARKERS),
            ),
            self._case(
                endpoint, TestCategory.EXCEPTION, "special_chars",
                f"{op} - special characters", "Check special characters are handled",
                inject(SPECIAL_CHARS),
                TestExpectation(status_codes=HANDLED_CODES),
            ),
        ]

    def _case(
        self,
        endpoint: ApiEndpoint,
        category: TestCategory,
        discriminator: str,
        name: str,
        description: str,
        data: TestInput,
        expected: TestExpectation,
    ) -> TestCase:
        return TestCase(
            id=f"{endpoint.name}_{category.value}_{discriminator}",
            name=name,
            description=description,
            endpoint=endpoint,
            category=category,
            input=data,
            expected=expected,
        )


def _attachment(name: str) -> TestFile:
    return TestFile(field_name=name, file_name=f"{name}.txt", content="api-test-runner sample file")


def _param_key(endpoint: ApiEndpoint, param: Param) -> str:
    """Id fragment for ``param``; a body field shadowing a declared parameter gets a ``body_`` prefix."""
    if (
        param.location == "body"
        and not _is_body_binding(endpoint, param)
        and any(p.name == param.name for p in endpoint.parameters)
    ):
        return f"body_{param.name}"
    return param.name


def shared_names(endpoints: list[ApiEndpoint]) -> set[str]:
    """Operation names declared by more than one endpoint."""
    counts = Counter(ep.name for ep in endpoints)
    return {name for name, n in counts.items() if n > 1}


def _qualified(case: TestCase) -> TestCase:
    return case.model_copy(update={"id": f"{case.endpoint.controller}_{case.id}"})


def _is_body_binding(endpoint: ApiEndpoint, param: Param) -> bool:
    """True for the @RequestBody parameter itself, false for its fields."""
    return param.location == "body" and any(p is param for p in endpoint.parameters)


def _with_value(endpoint: ApiEndpoint, base: TestInput, param: Param, value: Any) -> TestInput:
    """Copy of ``base`` with exactly ``param`` overwritten by ``value``."""
    data = base.model_copy(deep=True)
    if param.param_type == "file":
        data.files = [f for f in data.files if f.field_name != param.name]
        data.query_params[param.name] = value
    elif param.location == "path":
        data.path_params[param.name] = value
    elif param.location == "query":
        data.query_params[param.name] = value
    elif param.location == "header":
        data.headers[param.name] = as_text(value)
    elif _is_body_binding(endpoint, param):
        data.body = value
    elif isinstance(data.body, dict):
        data.body[param.name] = value
    else:
        data.body = {param.name: value}
    return data


def _without(endpoint: ApiEndpoint, base: TestInput, param: Param) -> TestInput:
    """Copy of ``base`` with ``param`` removed."""
    data = base.model_copy(deep=True)
    if param.param_type == "file":
        data.files = [f for f in data.files if f.field_name != param.name]
    elif param.location == "query":
        data.query_params.pop(param.name, None)
    elif param.location == "header":
        data.headers.pop(param.name, None)
    elif _is_body_binding(endpoint, param):
        data.body = None
    elif isinstance(data.body, dict):
        data.body.pop(param.name, None)
    return data
