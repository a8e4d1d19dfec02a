"""Invalidation patterns compiled to a small tagged matcher.

Supported syntax is deliberately narrow so that the in-memory store and
Redis ``SCAN MATCH`` agree on every pattern:

    ``*``             every key (AllPattern)
    ``aebf:budget``   one exact key (ExactPattern)
    ``aebf:*``        keys starting with ``aebf:`` (PrefixPattern)
    ``aebf:*:FP:*``   ``*`` matches any run of characters (WildcardPattern)

Anything else (``?``, ``[``, ``]``, ``\\``, whitespace, empty) raises
PatternSyntaxError.

Keys themselves are not restricted. A key whose query string or JSON body
contains one of those characters (e.g. a body with a list value,
``aebf:FP:POST:/api/aebf/report::{"months":[1,2]}``) cannot be named by an
exact pattern; target it with a prefix or wildcard such as ``aebf:FP:*``.
"""

import re
from dataclasses import dataclass
from typing import Union

from ipdashboard.core.exceptions import PatternSyntaxError

_FORBIDDEN = re.compile(r"[?\[\]\\\s\x00-\x1f\x7f]")


@dataclass(frozen=True)
class AllPattern:
    def matches(self, key: str) -> bool:
        return True

    @property
    def glob(self) -> str:
        return "*"


@dataclass(frozen=True)
class ExactPattern:
    key: str

    def matches(self, key: str) -> bool:
        return key == self.key

    @property
    def glob(self) -> str:
        return self.key


@dataclass(frozen=True)
class PrefixPattern:
    prefix: str

    def matches(self, key: str) -> bool:
        return key.startswith(self.prefix)

    @property
    def glob(self) -> str:
        return f"{self.prefix}*"


@dataclass(frozen=True)
class WildcardPattern:
    source: str
    regex: re.Pattern[str]

    def matches(self, key: str) -> bool:
        return self.regex.fullmatch(key) is not None

    @property
    def glob(self) -> str:
        return self.source


KeyPattern = Union[AllPattern, ExactPattern, PrefixPattern, WildcardPattern]


def compile_pattern(pattern: str) -> KeyPattern:
    """Compile an invalidation pattern.

    Args:
        pattern: Glob-style pattern

    Returns:
        Matcher for the pattern

    Raises:
        PatternSyntaxError: If the pattern is not a non-empty string of
            supported characters
    """
    if not isinstance(pattern, str):
        raise PatternSyntaxError(
            f"Pattern must be a string, got {type(pattern).__name__}",
            details={"pattern": repr(pattern)},
        )
    if not pattern:
        raise PatternSyntaxError("Pattern must not be empty")

    bad = _FORBIDDEN.search(pattern)
    if bad:
        raise PatternSyntaxError(
            f"Unsupported character {bad.group()!r} in pattern {pattern!r}",
            details={"pattern": pattern, "position": bad.start()},
        )

    # Runs of '*' are equivalent to a single '*'
    normalized = re.sub(r"\*+", "*", pattern)

    if normalized == "*":
        return AllPattern()
    if "*" not in normalized:
        return ExactPattern(normalized)
    if normalized.count("*") == 1 and normalized.endswith("*"):
        return PrefixPattern(normalized[:-1])

    regex = re.compile(".*".join(re.escape(part) for part in normalized.split("*")))
    return WildcardPattern(normalized, regex)
