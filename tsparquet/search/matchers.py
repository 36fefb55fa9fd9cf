"""Label matchers, with detection of regexes that match a small set of literals."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_MAX_SET_MATCHES = 256
_META = set("\\.+*?()|[]{}^$")


class MatchType(Enum):
    """How a matcher compares a label value."""

    EQUAL = "="
    NOT_EQUAL = "!="
    REGEXP = "=~"
    NOT_REGEXP = "!~"

    def __str__(self) -> str:
        return self.value


class _Unsupported(Exception):
    pass


class _SetMatchParser:
    """Expands a regex built only from literals, groups, alternations and small
    character classes into the strings it matches."""

    def __init__(self, pattern: str) -> None:
        self._pattern = pattern
        self._pos = 0

    def parse(self) -> list[str]:
        result = self._alternation()
        if self._pos != len(self._pattern):
            raise _Unsupported
        return result

    def _peek(self, ahead: int = 0) -> str | None:
        pos = self._pos + ahead
        return self._pattern[pos] if pos < len(self._pattern) else None

    @staticmethod
    def _check(result: list[str]) -> list[str]:
        if len(result) > _MAX_SET_MATCHES:
            raise _Unsupported
        return result

    def _alternation(self) -> list[str]:
        result = self._concatenation()
        while self._peek() == "|":
            self._pos += 1
            result = self._check(result + self._concatenation())
        return result

    def _concatenation(self) -> list[str]:
        result = [""]
        while (ch := self._peek()) is not None and ch not in "|)":
            atom = self._atom()
            result = self._check([a + b for a in result for b in atom])
        return result

    def _atom(self) -> list[str]:
        ch = self._peek()
        if ch == "(":
            self._pos += 1
            if self._pattern.startswith("?:", self._pos):
                self._pos += 2
            elif self._peek() == "?":
                raise _Unsupported
            inner = self._alternation()
            if self._peek() != ")":
                raise _Unsupported
            self._pos += 1
            return inner
        if ch == "[":
            return self._char_class()
        if ch == "\\":
            self._pos += 1
            return [self._escaped()]
        if ch in _META:
            raise _Unsupported
        self._pos += 1
        return [ch]

    def _escaped(self) -> str:
        ch = self._peek()
        if ch is None or not ch.isascii() or ch.isalnum() or ch.isspace():
            raise _Unsupported
        self._pos += 1
        return ch

    def _class_char(self) -> str:
        ch = self._peek()
        if ch is None or ch == "[":
            raise _Unsupported
        self._pos += 1
        if ch == "\\":
            return self._escaped()
        return ch

    def _char_class(self) -> list[str]:
        self._pos += 1
        if self._peek() in ("^", None):
            raise _Unsupported
        chars: list[str] = []
        first = True
        while True:
            ch = self._peek()
            if ch is None:
                raise _Unsupported
            if ch == "]" and not first:
                self._pos += 1
                break
            low = self._class_char()
            if self._peek() == "-" and self._peek(1) not in ("]", None):
                self._pos += 1
                high = self._class_char()
                if ord(high) < ord(low):
                    raise _Unsupported
                if ord(high) - ord(low) + 1 + len(chars) > _MAX_SET_MATCHES:
                    raise _Unsupported
                chars.extend(chr(c) for c in range(ord(low), ord(high) + 1))
            else:
                chars.append(low)
            first = False
        return self._check(list(dict.fromkeys(chars)))


def _find_set_matches(pattern: str) -> list[str]:
    try:
        return _SetMatchParser(pattern).parse()
    except _Unsupported:
        return []


@dataclass(frozen=True)
class Matcher:
    """Matches a label's value by equality or a fully anchored regex."""

    type: MatchType
    name: str
    value: str
    _regex: re.Pattern | None = field(init=False, repr=False, compare=False, default=None)
    _set_matches: tuple[str, ...] = field(init=False, repr=False, compare=False, default=())

    def __post_init__(self) -> None:
        match_type = MatchType(self.type)
        object.__setattr__(self, "type", match_type)
        if match_type in (MatchType.REGEXP, MatchType.NOT_REGEXP):
            try:
                regex = re.compile(self.value, re.DOTALL)
            except re.error as exc:
                raise ValueError(f"invalid regular expression {self.value!r}: {exc}") from exc
            object.__setattr__(self, "_regex", regex)
            object.__setattr__(self, "_set_matches", tuple(_find_set_matches(self.value)))

    def matches(self, value: str) -> bool:
        """Whether ``value`` satisfies the matcher."""
        if self.type is MatchType.EQUAL:
            return value == self.value
        if self.type is MatchType.NOT_EQUAL:
            return value != self.value
        found = self._regex.fullmatch(value) is not None
        return found if self.type is MatchType.REGEXP else not found

    def set_matches(self) -> list[str]:
        """The literal strings the regex accepts, if it accepts only a small set of them.

        Empty for regexes that are not such a set and for non-regex matchers.
        """
        return list(self._set_matches)