from pathlib import Path

from api_test_runner.parser.java import (
    JavaControllerParser,
    combine_path,
    discover_controllers,
    load_sources,
    parse_controller_file,
    semantic_type,
)

FIXTURES = Path(__file__).parent / "fixtures"


def _by_name(endpoints):
    return {ep.name: ep for ep in endpoints}


class TestHelpers:
    def test_combine_path(self):
        assert combine_path("/api/users", "/{id}") == "/api/users/{id}"
        assert combine_path("/api/users/", "") == "/api/users"
        assert combine_path("", "") == "/"
        assert combine_path("api", "list") == "/api/list"

    def test_semantic_type(self):
        assert semantic_type("Long") == "long"
        assert semantic_type("java.lang.Integer") == "int"
        assert semantic_type("BigDecimal") == "double"
        assert semantic_type("List<String>") == "list"
        assert semantic_type("String[]") == "list"
        assert semantic_type("Map<String, Object>") == "map"
        assert semantic_type("LocalDateTime") == "datetime"
        assert semantic_type("MultipartFile") == "file"
        assert semantic_type("CreateUserRequest") == "unknown"


class TestUserController:
    def test_endpoint_count_and_order(self):
        endpoints = parse_controller_file(FIXTURES / "UserController.java")
        assert [ep.label for ep in endpoints] == [
            "GET /api/users/{id}",
            "GET /api/users",
            "POST /api/users",
            "PUT /api/users/{id}/avatar",
            "DELETE /api/users/{id}",
        ]
        assert all(ep.controller == "UserController" for ep in endpoints)

    def test_path_variable_with_constraint(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["getUser"]
        assert len(ep.parameters) == 1
        param = ep.parameters[0]
        assert param.name == "id"
        assert param.location == "path"
        assert param.required is True
        assert param.param_type == "long"
        assert param.constraints.min == 1

    def test_javadoc_description(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["getUser"]
        assert ep.description == "Fetch a single user by id."

    def test_request_params_and_framework_types(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["listUsers"]
        assert ep.description == "List users"
        params = {p.name: p for p in ep.parameters}
        assert list(params) == ["page", "size", "keyword"]
        assert params["page"].default_value == "1"
        assert params["page"].required is False
        assert params["page"].param_type == "int"
        assert params["size"].required is False
        assert params["size"].constraints.min == 1
        assert params["size"].constraints.max == 100
        assert params["keyword"].param_type == "string"

    def test_request_body_without_dto_sources(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["createUser"]
        assert ep.description == "Create a user"
        assert [p.name for p in ep.parameters] == ["request"]
        assert ep.parameters[0].location == "body"
        assert ep.request_body.type_name == "CreateUserRequest"
        assert ep.request_body.fields == []

    def test_api_responses_replace_defaults(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["createUser"]
        assert [(r.status_code, r.description) for r in ep.responses] == [
            (201, "Created"),
            (409, "Username taken"),
        ]

    def test_multipart_file_param(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["uploadAvatar"]
        file_param = [p for p in ep.parameters if p.name == "file"][0]
        assert file_param.param_type == "file"
        assert file_param.required is True

    def test_request_header_param(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["deleteUser"]
        header = [p for p in ep.parameters if p.location == "header"][0]
        assert header.name == "X-Request-Id"
        assert header.required is False

    def test_default_responses_without_annotations(self):
        ep = _by_name(parse_controller_file(FIXTURES / "UserController.java"))["deleteUser"]
        assert [r.status_code for r in ep.responses] == [200, 400, 500]


class TestDtoResolution:
    def _create_user(self):
        extra = load_sources(FIXTURES / "dto")
        return _by_name(parse_controller_file(FIXTURES / "UserController.java", extra))["createUser"]

    def test_fields_and_constraints(self):
        fields = {f.name: f for f in self._create_user().request_body.fields}
        assert list(fields) == ["username", "email", "age", "phone_number", "tags", "address"]

        username = fields["username"]
        assert username.required is True
        assert username.constraints.not_blank is True
        assert username.constraints.min_length == 3
        assert username.constraints.max_length == 20

        assert fields["email"].required is True
        assert fields["email"].constraints.email is True
        assert fields["age"].field_type == "int"
        assert fields["age"].constraints.min == 0
        assert fields["age"].constraints.max == 150
        assert fields["age"].required is False
        assert fields["phone_number"].constraints.pattern == r"^1\d{10}$"
        assert fields["tags"].field_type == "list"
        assert fields["tags"].declared_type == "List<String>"

    def test_nested_dto(self):
        fields = {f.name: f for f in self._create_user().request_body.fields}
        assert [c.name for c in fields["address"].children] == ["city", "street"]


class TestGenericRequestMapping:
    def test_verb_inferred_from_method_attribute(self):
        endpoints = _by_name(parse_controller_file(FIXTURES / "OrderController.java"))
        assert endpoints["search"].label == "GET /v1/orders/search"
        assert endpoints["cancel"].label == "POST /v1/orders/{orderId}/cancel"

    def test_operation_summary_and_openapi_response(self):
        endpoints = _by_name(parse_controller_file(FIXTURES / "OrderController.java"))
        assert endpoints["search"].description == "Search orders"
        assert [(r.status_code, r.description) for r in endpoints["cancel"].responses] == [(202, "Accepted")]

    def test_unannotated_param_is_optional_query(self):
        search = _by_name(parse_controller_file(FIXTURES / "OrderController.java"))["search"]
        params = {p.name: p for p in search.parameters}
        assert params["status"].required is True
        assert params["sort"].location == "query"
        assert params["sort"].required is False

    def test_no_verb_defaults_to_get(self):
        source = """
        @RestController
        public class PingController {
            @RequestMapping("/ping")
            public String ping() { return "pong"; }
        }
        """
        endpoints = JavaControllerParser().parse(source)
        assert [ep.label for ep in endpoints] == ["GET /ping"]


class TestParameterList:
    def test_generic_commas_do_not_split_params(self):
        source = """
        @RestController
        public class ItemController {
            @GetMapping("/items")
            public List<Item> items(@RequestParam Map<String, String> filters, @RequestParam String q) {
                return null;
            }
        }
        """
        params = JavaControllerParser().parse(source)[0].parameters
        assert [p.name for p in params] == ["filters", "q"]
        assert params[0].declared_type == "Map<String, String>"
        assert params[0].param_type == "map"
        assert params[1].param_type == "string"

    def test_nested_generics(self):
        source = """
        @RestController
        public class ItemController {
            @PostMapping("/items/bulk")
            public void bulk(@RequestParam Map<String, List<Long>> groups, @RequestHeader("X-Tenant") String tenant) {}
        }
        """
        params = JavaControllerParser().parse(source)[0].parameters
        assert [(p.name, p.location) for p in params] == [("groups", "query"), ("X-Tenant", "header")]
        assert params[0].declared_type == "Map<String, List<Long>>"

    def test_underscored_numeric_bounds(self):
        source = """
        @RestController
        public class ItemController {
            @GetMapping("/items")
            public List<Item> items(@RequestParam @Min(1_000) @Max(10_000) Integer limit) { return null; }
        }
        """
        param = JavaControllerParser().parse(source)[0].parameters[0]
        assert param.constraints.min == 1000
        assert param.constraints.max == 10000


class TestMalformedInput:
    def test_empty_source(self):
        assert JavaControllerParser().parse("") == []

    def test_methods_outside_class_are_ignored(self):
        source = '@GetMapping("/x") public String x() { return ""; }'
        assert JavaControllerParser().parse(source, "Anon") == []

    def test_unclosed_method_does_not_raise(self):
        source = '@RestController class A { @GetMapping("/a") public String a(@PathVariable Long id'
        endpoints = JavaControllerParser().parse(source)
        assert len(endpoints) == 1
        assert endpoints[0].parameters[0].name == "id"


class TestDiscovery:
    def test_discover_controllers(self):
        found = discover_controllers(FIXTURES)
        assert [p.name for p in found] == ["OrderController.java", "UserController.java"]

    def test_discover_single_file(self):
        path = FIXTURES / "UserController.java"
        assert discover_controllers(path) == [path]
