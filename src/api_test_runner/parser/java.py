"""Spring MVC controller parser.

Recovers ApiEndpoint models from annotated Java controller source. This is
pattern-driven extraction over a token stream, not a Java grammar: only the
routing, binding, validation and documentation annotations are understood,
everything else is skipped.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .base import (
    DEFAULT_RESPONSES,
    HTTP_METHODS,
    ApiEndpoint,
    BodyField,
    Constraints,
    Param,
    RequestBody,
    ResponseSpec,
)
from .tokens import (
    ANNOTATION,
    DOC,
    IDENT,
    NUMBER,
    PUNCT,
    STRING,
    Token,
    find_closing,
    split_top_level,
    tokenize,
)

logger = logging.getLogger(__name__)

VERB_ANNOTATIONS = {
    "GetMapping": "GET",
    "PostMapping": "POST",
    "PutMapping": "PUT",
    "DeleteMapping": "DELETE",
    "PatchMapping": "PATCH",
}
MAPPING_ANNOTATIONS = set(VERB_ANNOTATIONS) | {"RequestMapping"}

# Checked in this order when a generic @RequestMapping lists its method.
_INFERRED_VERBS = ("POST", "PUT", "DELETE", "PATCH", "GET")

# Handler arguments injected by the framework, never supplied by a client.
FRAMEWORK_TYPES = frozenset({
    "HttpServletRequest", "HttpServletResponse", "ServletRequest", "ServletResponse",
    "HttpSession", "BindingResult", "Errors", "Model", "ModelMap", "Principal",
    "Authentication", "Locale", "WebRequest", "NativeWebRequest", "UriComponentsBuilder",
})

_MODIFIERS = frozenset({
    "final", "public", "private", "protected", "static", "transient", "volatile",
})

_TYPE_MAP = {
    "string": "string", "charsequence": "string", "char": "string", "character": "string",
    "uuid": "string",
    "int": "int", "integer": "int", "short": "int", "byte": "int",
    "long": "long", "biginteger": "long",
    "double": "double", "float": "double", "bigdecimal": "double", "number": "double",
    "boolean": "boolean",
    "date": "date", "localdate": "date",
    "datetime": "datetime", "localdatetime": "datetime", "zoneddatetime": "datetime",
    "offsetdatetime": "datetime", "instant": "datetime", "timestamp": "datetime",
    "list": "list", "arraylist": "list", "linkedlist": "list", "set": "list",
    "hashset": "list", "collection": "list", "iterable": "list",
    "map": "map", "hashmap": "map", "linkedhashmap": "map", "object": "map",
    "multipartfile": "file",
}

MAX_DTO_DEPTH = 3


@dataclass
class Annotation:
    """A parsed annotation with its arguments kept as raw token lists."""

    name: str
    args: dict[str, list[Token]] = field(default_factory=dict)
    nested: list["Annotation"] = field(default_factory=list)

    def strings(self, *keys: str) -> list[str]:
        """String literals of the first key present, e.g. value / path."""
        for key in keys:
            if key in self.args:
                return [t.value for t in self.args[key] if t.kind == STRING]
        return []

    def string(self, *keys: str) -> str | None:
        values = self.strings(*keys)
        return values[0] if values else None

    def number(self, *keys: str) -> float | None:
        for key in keys:
            if key in self.args:
                text = "".join(t.value for t in self.args[key]).replace("_", "")
                match = re.search(r"-?\d+(?:\.\d+)?", text)
                if match:
                    value = float(match.group())
                    return int(value) if value.is_integer() else value
        return None

    def flag(self, key: str, default: bool) -> bool:
        if key not in self.args:
            return default
        text = "".join(t.value for t in self.args[key]).strip().lower()
        if text in ("true", "false"):
            return text == "true"
        return default

    def idents(self) -> set[str]:
        return {t.value for tokens in self.args.values() for t in tokens if t.kind == IDENT}

    def walk(self) -> Iterable["Annotation"]:
        yield self
        for child in self.nested:
            yield from child.walk()


def parse_annotation(tokens: list[Token], index: int) -> tuple[Annotation, int]:
    """Parse the annotation at ``index``; returns it and the next index."""
    ann = Annotation(name=tokens[index].value)
    nxt = index + 1
    if nxt >= len(tokens) or not tokens[nxt].is_punct("("):
        return ann, nxt
    close = find_closing(tokens, nxt)
    inner = tokens[nxt + 1:close]
    for part in split_top_level(inner):
        if len(part) >= 2 and part[0].kind == IDENT and part[1].is_punct("="):
            ann.args[part[0].value] = part[2:]
        else:
            ann.args.setdefault("value", part)
    j = 0
    while j < len(inner):
        if inner[j].kind == ANNOTATION:
            child, j = parse_annotation(inner, j)
            ann.nested.append(child)
        else:
            j += 1
    return ann, close + 1


def combine_path(base_path: str, method_path: str) -> str:
    """Join route fragments with exactly one '/' between segments."""
    segments = [s for part in (base_path, method_path) for s in part.split("/") if s]
    return "/" + "/".join(segments)


def semantic_type(declared_type: str) -> str:
    """Map a declared Java type to one of the semantic parameter types."""
    if declared_type.endswith("[]") or declared_type.endswith("..."):
        return "list"
    return _TYPE_MAP.get(raw_type_name(declared_type).lower(), "unknown")


def raw_type_name(declared_type: str) -> str:
    """``java.util.List<Long>`` -> ``List``."""
    return declared_type.split("<", 1)[0].strip().rsplit(".", 1)[-1].rstrip("[].")


def render_type(tokens: list[Token]) -> str:
    text = ""
    for tok in tokens:
        text += tok.value + (" " if tok.is_punct(",") else "")
    return text


def extract_constraints(annotations: list[Annotation]) -> Constraints:
    """Merge every recognized validation annotation into one Constraints."""
    c = Constraints()
    for ann in annotations:
        name = ann.name
        if name == "NotNull":
            c.not_null = True
        elif name in ("NotBlank", "NotEmpty"):
            c.not_blank = True
        elif name == "Email":
            c.email = True
        elif name in ("Phone", "Mobile"):
            c.phone = True
        elif name in ("Size", "Length"):
            low, high = ann.number("min"), ann.number("max")
            if low is not None:
                c.min_length = int(low)
            if high is not None:
                c.max_length = int(high)
        elif name in ("Min", "DecimalMin"):
            c.min = _bound(ann)
        elif name in ("Max", "DecimalMax"):
            c.max = _bound(ann)
        elif name == "Pattern":
            c.pattern = ann.string("regexp")
    return c


def _bound(ann: Annotation) -> float | None:
    literal = ann.string("value")
    if literal is not None:
        try:
            value = float(literal)
        except ValueError:
            return None
        return int(value) if value.is_integer() else value
    return ann.number("value")


@dataclass
class _Declaration:
    annotations: list[Annotation]
    type_tokens: list[Token]
    name: str

    @property
    def declared_type(self) -> str:
        return render_type(self.type_tokens)


def _split_declaration(tokens: list[Token]) -> _Declaration | None:
    """Split ``@A @B(x) final Type<G> name`` into its parts."""
    annotations: list[Annotation] = []
    rest: list[Token] = []
    j = 0
    while j < len(tokens):
        tok = tokens[j]
        if tok.kind == ANNOTATION:
            ann, j = parse_annotation(tokens, j)
            annotations.append(ann)
            continue
        if tok.kind != DOC and not (tok.kind == IDENT and tok.value in _MODIFIERS):
            rest.append(tok)
        j += 1
    if len(rest) < 2 or rest[-1].kind != IDENT:
        return None
    return _Declaration(annotations, rest[:-1], rest[-1].value)


class JavaControllerParser:
    """Extracts endpoints from Spring controller source text.

    ``extra_sources`` are additional Java files (typically DTOs) used to
    resolve request body fields.
    """

    def __init__(self, extra_sources: Iterable[str] = ()):
        self._classes: dict[str, list[Token]] = {}
        for source in extra_sources:
            self._classes.update(_index_classes(tokenize(source)))

    def parse(self, source: str, controller_id: str = "") -> list[ApiEndpoint]:
        """Parse controller source; never raises for malformed input."""
        tokens = tokenize(source)
        classes = dict(self._classes)
        classes.update(_index_classes(tokens))

        endpoints: list[ApiEndpoint] = []
        controller = ""
        base_path = ""
        pending: list[Annotation] = []
        doc: str | None = None
        depth = 0
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if tok.kind == DOC:
                doc = tok.value
                i += 1
                continue
            if tok.kind == ANNOTATION:
                ann, i = parse_annotation(tokens, i)
                if depth <= 1:
                    pending.append(ann)
                continue
            if tok.kind == PUNCT:
                if tok.value == "{":
                    depth += 1
                elif tok.value == "}":
                    depth = max(depth - 1, 0)
                if tok.value in ("{", "}", ";"):
                    pending, doc = [], None
                i += 1
                continue
            if tok.kind == IDENT and depth == 0 and tok.value in ("class", "interface"):
                if not controller and i + 1 < len(tokens) and tokens[i + 1].kind == IDENT:
                    controller = tokens[i + 1].value
                    base_path = _base_path(pending)
                i += 1
                continue
            if (
                tok.kind == IDENT
                and depth == 1
                and i + 1 < len(tokens)
                and tokens[i + 1].is_punct("(")
                and any(a.name in MAPPING_ANNOTATIONS for a in pending)
            ):
                close = find_closing(tokens, i + 1)
                endpoint = self._build_endpoint(
                    pending, doc, tok.value, tokens[i + 2:close],
                    controller or controller_id, base_path, classes,
                )
                endpoints.append(endpoint)
                pending, doc = [], None
                i = close + 1
                continue
            i += 1

        logger.info("Extracted %d endpoints from %s", len(endpoints), controller or controller_id)
        return endpoints

    def _build_endpoint(
        self,
        annotations: list[Annotation],
        doc: str | None,
        method_name: str,
        param_tokens: list[Token],
        controller: str,
        base_path: str,
        classes: dict[str, list[Token]],
    ) -> ApiEndpoint:
        mapping = next(a for a in annotations if a.name in MAPPING_ANNOTATIONS)
        verb = _http_method(mapping)
        method_path = (mapping.strings("value", "path") or [""])[0]

        parameters = []
        for part in split_top_level(param_tokens):
            param = _parse_parameter(part)
            if param is not None:
                parameters.append(param)

        request_body = None
        body_param = next((p for p in parameters if p.location == "body"), None)
        if body_param is not None:
            if raw_type_name(body_param.declared_type) not in classes:
                logger.debug("Request body type %s not resolvable locally", body_param.declared_type)
            request_body = RequestBody(
                type_name=body_param.declared_type,
                fields=_resolve_fields(raw_type_name(body_param.declared_type), classes, set()),
            )

        return ApiEndpoint(
            method=verb,
            path=combine_path(base_path, method_path),
            controller=controller,
            name=method_name,
            description=_description(annotations, doc),
            parameters=parameters,
            request_body=request_body,
            responses=_responses(annotations) or list(DEFAULT_RESPONSES),
        )


def _base_path(class_annotations: list[Annotation]) -> str:
    for ann in class_annotations:
        if ann.name == "RequestMapping":
            return (ann.strings("value", "path") or [""])[0]
    return ""


def _http_method(mapping: Annotation) -> str:
    if mapping.name in VERB_ANNOTATIONS:
        return VERB_ANNOTATIONS[mapping.name]
    idents = mapping.idents()
    for verb in _INFERRED_VERBS:
        if verb in idents:
            return verb
    return "GET"


def _parse_parameter(tokens: list[Token]) -> Param | None:
    decl = _split_declaration(tokens)
    if decl is None or not decl.type_tokens:
        logger.warning("Dropping unparsable parameter: %s", " ".join(t.value for t in tokens))
        return None
    declared = decl.declared_type
    if raw_type_name(declared) in FRAMEWORK_TYPES:
        return None

    names = {a.name: a for a in decl.annotations}
    name = decl.name
    default_value = None
    if "PathVariable" in names:
        location, required = "path", True
        name = names["PathVariable"].string("value", "name") or name
    elif "RequestParam" in names or "RequestPart" in names:
        ann = names.get("RequestParam") or names["RequestPart"]
        location = "query"
        name = ann.string("value", "name") or name
        default_value = ann.string("defaultValue")
        required = ann.flag("required", default_value is None)
    elif "RequestHeader" in names:
        ann = names["RequestHeader"]
        location = "header"
        required = ann.flag("required", False)
        name = ann.string("value", "name") or name
    elif "RequestBody" in names:
        location, required = "body", True
    else:
        location, required = "query", False

    return Param(
        name=name,
        location=location,
        required=required,
        param_type=semantic_type(declared),
        declared_type=declared,
        default_value=default_value,
        constraints=extract_constraints(decl.annotations),
    )


def _description(annotations: list[Annotation], doc: str | None) -> str:
    for ann in annotations:
        if ann.name == "ApiOperation":
            text = ann.string("value")
            if text:
                return text
        if ann.name == "Operation":
            text = ann.string("summary", "description")
            if text:
                return text
    if doc:
        return _doc_summary(doc)
    return ""


def _doc_summary(doc: str) -> str:
    """First prose line of a Javadoc block."""
    body = doc[3:-2]
    for line in body.splitlines():
        line = line.strip().lstrip("*").strip()
        if line and not line.startswith("@"):
            return line
    return ""


def _responses(annotations: list[Annotation]) -> list[ResponseSpec]:
    responses = []
    for ann in annotations:
        for item in ann.walk():
            if item.name != "ApiResponse":
                continue
            code = item.number("code")
            if code is None:
                literal = item.string("responseCode")
                code = int(literal) if literal and literal.isdigit() else None
            if code is None:
                continue
            responses.append(ResponseSpec(
                status_code=int(code),
                description=item.string("message", "description") or "",
            ))
    return responses


def _index_classes(tokens: list[Token]) -> dict[str, list[Token]]:
    """Map every declared class name to the tokens of its body."""
    classes: dict[str, list[Token]] = {}
    for i, tok in enumerate(tokens):
        if not (tok.kind == IDENT and tok.value in ("class", "record")):
            continue
        if i + 1 >= len(tokens) or tokens[i + 1].kind != IDENT:
            continue
        name = tokens[i + 1].value
        start = next((j for j in range(i + 2, len(tokens)) if tokens[j].is_punct("{")), None)
        if start is None:
            continue
        end = find_closing(tokens, start, "{", "}")
        classes.setdefault(name, tokens[start + 1:end])
    return classes


def _resolve_fields(type_name: str, classes: dict[str, list[Token]], seen: set[str]) -> list[BodyField]:
    """Best-effort field extraction for a DTO declared in known sources."""
    body = classes.get(type_name)
    if body is None or type_name in seen or len(seen) >= MAX_DTO_DEPTH:
        return []
    seen = seen | {type_name}
    fields = []
    for statement in _field_statements(body):
        if any(t.kind == IDENT and t.value == "static" for t in statement):
            continue
        decl = _split_declaration(statement)
        if decl is None or not decl.type_tokens:
            continue
        declared = decl.declared_type
        constraints = extract_constraints(decl.annotations)
        alias = next((a.string("value") for a in decl.annotations if a.name == "JsonProperty"), None)
        fields.append(BodyField(
            name=alias or decl.name,
            field_type=semantic_type(declared),
            declared_type=declared,
            required=constraints.not_null or constraints.not_blank,
            constraints=constraints,
            children=_resolve_fields(raw_type_name(declared), classes, seen),
        ))
    return fields


def _field_statements(body: list[Token]) -> list[list[Token]]:
    """Top-level field declarations of a class body, without initializers."""
    statements: list[list[Token]] = []
    current: list[Token] = []
    in_initializer = False
    i = 0
    while i < len(body):
        tok = body[i]
        if tok.is_punct("{"):
            # method body, nested class, or an initializer expression
            i = find_closing(body, i, "{", "}") + 1
            if not in_initializer:
                current = []
            continue
        if tok.is_punct("(") and not in_initializer:
            if current and current[-1].kind == ANNOTATION:
                close = find_closing(body, i)
                current.extend(body[i:close + 1])
                i = close + 1
                continue
            # method or constructor signature
            i = find_closing(body, i) + 1
            current = []
            continue
        if tok.is_punct(";"):
            if current:
                statements.append(current)
            current, in_initializer = [], False
        elif tok.is_punct("="):
            in_initializer = True
        elif not in_initializer and tok.kind != DOC:
            current.append(tok)
        i += 1
    return statements


def parse_controller_file(file_path: Path, extra_sources: Iterable[str] = ()) -> list[ApiEndpoint]:
    """Parse a controller file into a list of ApiEndpoint."""
    text = file_path.read_text(encoding="utf-8")
    parser = JavaControllerParser(extra_sources)
    return parser.parse(text, file_path.stem)


def discover_controllers(root: Path) -> list[Path]:
    """Java files under ``root`` declaring a (Rest)Controller."""
    if root.is_file():
        return [root]
    found = []
    for path in sorted(root.rglob("*.java")):
        text = path.read_text(encoding="utf-8", errors="replace")
        if "@RestController" in text or "@Controller" in text:
            found.append(path)
    return found


def load_sources(root: Path | None) -> list[str]:
    """Read every Java file under ``root`` (used for DTO resolution)."""
    if root is None:
        return []
    return [p.read_text(encoding="utf-8", errors="replace") for p in sorted(root.rglob("*.java"))]
