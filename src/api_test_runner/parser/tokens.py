"""Minimal Java tokenizer for annotation-driven extraction.

Produces only what the controller scanner needs: identifiers, string and
number literals, annotations, punctuation and Javadoc blocks. Ordinary
comments and whitespace are dropped.
"""

import re
from dataclasses import dataclass

IDENT = "ident"
STRING = "string"
NUMBER = "number"
ANNOTATION = "annotation"
PUNCT = "punct"
DOC = "doc"

_TOKEN_RE = re.compile(
    r"""
    (?P<doc>/\*\*(?!/).*?\*/)
  | (?P<block>/\*.*?\*/)
  | (?P<line>//[^\n]*)
  | (?P<text>\"\"\".*?\"\"\")
  | (?P<string>"(?:\\.|[^"\\\n])*")
  | (?P<char>'(?:\\.|[^'\\\n])+')
  | (?P<annotation>@\s*[A-Za-z_$][\w$]*(?:\s*\.\s*[A-Za-z_$][\w$]*)*)
  | (?P<number>-?\d[\w.]*)
  | (?P<ident>[A-Za-z_$][\w$]*)
  | (?P<ellipsis>\.\.\.)
  | (?P<punct>[(){}\[\]<>,;=.?:&|!+\-*/%^~])
  | (?P<space>\s+)
    """,
    re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    pos: int

    def is_punct(self, value: str) -> bool:
        return self.kind == PUNCT and self.value == value


def tokenize(source: str) -> list[Token]:
    """Split Java source into tokens. Unrecognized characters are skipped."""
    tokens: list[Token] = []
    pos = 0
    length = len(source)
    while pos < length:
        match = _TOKEN_RE.match(source, pos)
        if not match:
            pos += 1
            continue
        kind = match.lastgroup
        text = match.group()
        pos = match.end()
        if kind in ("block", "line", "space"):
            continue
        if kind == "doc":
            tokens.append(Token(DOC, text, match.start()))
        elif kind in ("string", "text", "char"):
            tokens.append(Token(STRING, _unquote(text), match.start()))
        elif kind == "annotation":
            name = re.sub(r"\s+", "", text[1:])
            # @org.springframework...GetMapping -> GetMapping
            tokens.append(Token(ANNOTATION, name.rsplit(".", 1)[-1], match.start()))
        elif kind == "ellipsis":
            tokens.append(Token(PUNCT, "...", match.start()))
        else:
            tokens.append(Token(kind, text, match.start()))
    return tokens


def _unquote(literal: str) -> str:
    if literal.startswith('"""'):
        return literal[3:-3]
    body = literal[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def find_closing(tokens: list[Token], start: int, open_: str = "(", close: str = ")") -> int:
    """Index of the token closing the bracket at ``start``, or len(tokens)."""
    depth = 0
    for i in range(start, len(tokens)):
        tok = tokens[i]
        if tok.is_punct(open_):
            depth += 1
        elif tok.is_punct(close):
            depth -= 1
            if depth == 0:
                return i
    return len(tokens)


def split_top_level(tokens: list[Token]) -> list[list[Token]]:
    """Split on commas that are not nested in (), {}, [] or <> brackets."""
    parts: list[list[Token]] = []
    current: list[Token] = []
    depth = 0
    for tok in tokens:
        if tok.kind == PUNCT:
            if tok.value in ("(", "{", "[", "<"):
                depth += 1
            elif tok.value in (")", "}", "]", ">"):
                depth = max(depth - 1, 0)
            elif tok.value == "," and depth == 0:
                parts.append(current)
                current = []
                continue
        current.append(tok)
    if current:
        parts.append(current)
    return parts
