"""Unified data models for extracted API endpoints.

The controller parser converts annotated source into these models;
the generator, executor and report stages consume them unchanged.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
ParamLocation = Literal["path", "query", "header", "body"]

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")

# Semantic types understood by the value generator.
SEMANTIC_TYPES = (
    "string", "int", "long", "double", "boolean",
    "date", "datetime", "list", "map", "file", "unknown",
)
NUMERIC_TYPES = frozenset({"int", "long", "double"})


class Constraints(BaseModel):
    """Validation rules attached to a parameter or field."""

    min: int | float | None = None
    max: int | float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    enum: list[str] = Field(default_factory=list)
    not_null: bool = False
    not_blank: bool = False
    email: bool = False
    phone: bool = False

    def is_empty(self) -> bool:
        return self == Constraints()


class Param(BaseModel):
    """A single API parameter (path, query, header, or body)."""

    name: str
    location: ParamLocation
    required: bool
    param_type: str = "unknown"  # one of SEMANTIC_TYPES
    declared_type: str = ""  # type as written in the source, e.g. List<Long>
    description: str = ""
    default_value: str | None = None
    constraints: Constraints = Field(default_factory=Constraints)

    @field_validator("required")
    @classmethod
    def _path_is_required(cls, value: bool, info) -> bool:
        if info.data.get("location") == "path":
            return True
        return value


class BodyField(BaseModel):
    """A field of a JSON request body, possibly with nested fields."""

    name: str
    field_type: str = "unknown"
    declared_type: str = ""
    required: bool = False
    description: str = ""
    constraints: Constraints = Field(default_factory=Constraints)
    children: list["BodyField"] = Field(default_factory=list)

    def as_param(self) -> Param:
        """View this field as a body-located parameter."""
        return Param(
            name=self.name,
            location="body",
            required=self.required,
            param_type=self.field_type,
            declared_type=self.declared_type,
            description=self.description,
            constraints=self.constraints,
        )


class RequestBody(BaseModel):
    """Declared request body of an endpoint."""

    type_name: str
    content_type: str = "application/json"
    fields: list[BodyField] = Field(default_factory=list)


class ResponseSpec(BaseModel):
    status_code: int
    description: str = ""


DEFAULT_RESPONSES = (
    ResponseSpec(status_code=200, description="Success"),
    ResponseSpec(status_code=400, description="Bad request"),
    ResponseSpec(status_code=500, description="Server error"),
)


class ApiEndpoint(BaseModel):
    """A single API endpoint with all its metadata."""

    method: HttpMethod
    path: str  # /api/users/{id}
    controller: str
    name: str  # operation (handler method) name
    description: str = ""
    parameters: list[Param] = Field(default_factory=list)
    request_body: RequestBody | None = None
    responses: list[ResponseSpec] = Field(default_factory=lambda: list(DEFAULT_RESPONSES))

    @field_validator("path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        return value if value.startswith("/") else "/" + value

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"

    def all_params(self) -> list[Param]:
        """Declared parameters followed by top-level body fields."""
        params = list(self.parameters)
        if self.request_body:
            params.extend(f.as_param() for f in self.request_body.fields)
        return params
