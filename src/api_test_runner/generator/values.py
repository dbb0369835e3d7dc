"""Type-driven test value synthesis.

All randomness flows through one ``random.Random`` so tests can pin it
with a seed; the clock is injectable for the same reason.
"""

import json
import math
import random
import string
from datetime import datetime
from typing import Any, Callable

from api_test_runner.parser.base import Constraints

PLACEHOLDER = "test_value"
DEFAULT_MAX_LENGTH = 20
TOKEN_PREFIX = "test_"

SQL_INJECTION_PAYLOADS = (
    "'; DROP TABLE users; --",
    "1 OR 1=1",
    "1; SELECT * FROM users",
    "' UNION SELECT * FROM users --",
)
XSS_PAYLOADS = (
    '<script>alert("xss")</script>',
    '<img src=x onerror=alert("xss")>',
    '"><script>alert("xss")</script>',
    "javascript:alert('xss')",
)
SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:'\",.<>?/\\`~"


def as_text(value: Any) -> str:
    """Render a value the way it appears in a URL or header (JSON literals)."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class ValueGenerator:
    """Produces valid and deliberately invalid values per semantic type."""

    def __init__(self, seed: int | None = None, clock: Callable[[], datetime] | None = None):
        self.rng = random.Random(seed)
        self.clock = clock or datetime.now

    def valid(self, param_type: str, constraints: Constraints | None = None) -> Any:
        c = constraints or Constraints()
        if c.enum:
            return self.rng.choice(c.enum)

        if param_type == "string":
            return self._string(c)
        if param_type in ("int", "long"):
            return self._integer(c)
        if param_type == "double":
            low = c.min if c.min is not None else 0
            high = c.max if c.max is not None else 100
            if low > high:
                high = low
            return round(self.rng.uniform(low, high), 2)
        if param_type == "boolean":
            return True
        if param_type == "date":
            return self.clock().date().isoformat()
        if param_type == "datetime":
            return self.clock().isoformat()
        if param_type == "list":
            return []
        if param_type == "map":
            return {}
        return PLACEHOLDER

    def wrong_type(self, param_type: str) -> Any:
        """A literal that does not conform to ``param_type``."""
        if param_type in ("int", "long", "double"):
            return "not_a_number"
        if param_type == "boolean":
            return "not_a_boolean"
        if param_type in ("date", "datetime"):
            return "invalid-date"
        if param_type == "list":
            return "not_a_list"
        if param_type in ("map", "unknown"):
            return "not_an_object"
        return {"invalid": "object"}

    def sql_injection(self) -> str:
        return self.rng.choice(SQL_INJECTION_PAYLOADS)

    def xss(self) -> str:
        return self.rng.choice(XSS_PAYLOADS)

    def token(self, length: int) -> str:
        alphabet = string.ascii_lowercase + string.digits
        return "".join(self.rng.choice(alphabet) for _ in range(length))

    def _string(self, c: Constraints) -> str:
        if c.email:
            return "test@example.com"
        if c.phone:
            return "13800138000"
        if c.pattern:
            return "test123"
        limit = c.max_length if c.max_length is not None else DEFAULT_MAX_LENGTH
        low = max(c.min_length or 0, 1)
        length = min(max(low, min(limit, 12)), limit) if limit >= low else low
        if length > len(TOKEN_PREFIX):
            return TOKEN_PREFIX + self.token(length - len(TOKEN_PREFIX))
        return self.token(length)

    def _integer(self, c: Constraints) -> int:
        low = math.ceil(c.min) if c.min is not None else 1
        high = math.floor(c.max) if c.max is not None else 100
        if low > high:
            if c.max is None:
                high = low + 99
            elif c.min is None:
                low = high
            else:
                return low
        return self.rng.randint(low, high)
