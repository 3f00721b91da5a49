"""Condition expressions for variable-mode triggers.

Syntax:
    expr     := and_expr ('||' and_expr)*
    and_expr := atom ('&&' atom)*
    atom     := '!' IDENT | IDENT ('==' | '!=') STRING | IDENT
    STRING   := "..." | '...'
    IDENT    := [A-Za-z_][A-Za-z0-9_]*

Examples:
    claudeSessionId                          truthy (non-empty)
    !claudeSessionId                         falsy
    claudeSessionId == "abc"                 equals
    claudeSessionId || claudeResumeCommand   OR
    a && b || c                              AND binds tighter than OR
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Union

from shellsense.errors import ConditionSyntaxError


@dataclass(frozen=True)
class Truthy:
    name: str


@dataclass(frozen=True)
class Falsy:
    name: str


@dataclass(frozen=True)
class Eq:
    name: str
    value: str


@dataclass(frozen=True)
class Neq:
    name: str
    value: str


@dataclass(frozen=True)
class And:
    children: tuple["ConditionNode", ...]


@dataclass(frozen=True)
class Or:
    children: tuple["ConditionNode", ...]


ConditionNode = Union[Truthy, Falsy, Eq, Neq, And, Or]


def _is_ident_start(ch: str) -> bool:
    return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def _is_ident_char(ch: str) -> bool:
    return _is_ident_start(ch) or ("0" <= ch <= "9")


class _Parser:
    """Recursive-descent parser over a condition string."""

    def __init__(self, text: str):
        self._text = text
        self._pos = 0

    def parse(self) -> ConditionNode:
        self._skip_whitespace()
        if self._pos >= len(self._text):
            raise ConditionSyntaxError("Empty expression", self._pos)
        node = self._parse_or()
        self._skip_whitespace()
        if self._pos < len(self._text):
            raise ConditionSyntaxError(
                f"Unexpected character {self._text[self._pos]!r}", self._pos
            )
        return node

    def _parse_or(self) -> ConditionNode:
        children = [self._parse_and()]
        while self._match("||"):
            children.append(self._parse_and())
        return children[0] if len(children) == 1 else Or(tuple(children))

    def _parse_and(self) -> ConditionNode:
        children = [self._parse_atom()]
        while self._match("&&"):
            children.append(self._parse_atom())
        return children[0] if len(children) == 1 else And(tuple(children))

    def _parse_atom(self) -> ConditionNode:
        self._skip_whitespace()
        if self._pos >= len(self._text):
            raise ConditionSyntaxError("Unexpected end of expression", self._pos)

        # "!=" is only valid after an identifier
        if self._text[self._pos] == "!" and not self._text.startswith("!=", self._pos):
            self._pos += 1
            return Falsy(self._read_ident())

        name = self._read_ident()
        if self._match("=="):
            return Eq(name, self._read_string())
        if self._match("!="):
            return Neq(name, self._read_string())
        return Truthy(name)

    def _read_ident(self) -> str:
        self._skip_whitespace()
        start = self._pos
        if start >= len(self._text) or not _is_ident_start(self._text[start]):
            if start >= len(self._text):
                raise ConditionSyntaxError("Expected identifier", start)
            raise ConditionSyntaxError(
                f"Expected identifier, got {self._text[start]!r}", start
            )
        self._pos += 1
        while self._pos < len(self._text) and _is_ident_char(self._text[self._pos]):
            self._pos += 1
        return self._text[start:self._pos]

    def _read_string(self) -> str:
        self._skip_whitespace()
        if self._pos >= len(self._text):
            raise ConditionSyntaxError("Expected string literal", self._pos)
        quote = self._text[self._pos]
        if quote not in ('"', "'"):
            raise ConditionSyntaxError(
                f"Expected string literal, got {quote!r}", self._pos
            )
        start = self._pos
        end = self._text.find(quote, start + 1)
        if end == -1:
            raise ConditionSyntaxError("Unterminated string literal", start)
        self._pos = end + 1
        return self._text[start + 1:end]

    def _match(self, token: str) -> bool:
        self._skip_whitespace()
        if self._text.startswith(token, self._pos):
            self._pos += len(token)
            return True
        return False

    def _skip_whitespace(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos].isspace():
            self._pos += 1


@lru_cache(maxsize=512)
def parse_condition(text: str) -> ConditionNode:
    """Parse a condition expression. Results are cached by source text.

    Raises:
        ConditionSyntaxError: If the expression is malformed.
    """
    return _Parser(text).parse()


def evaluate_condition(node: ConditionNode, variables: Mapping[str, str]) -> bool:
    """Evaluate a parsed condition against a variable map.

    Absent variables are treated as the empty string.
    """
    if isinstance(node, Truthy):
        return bool(variables.get(node.name, ""))
    if isinstance(node, Falsy):
        return not variables.get(node.name, "")
    if isinstance(node, Eq):
        return variables.get(node.name, "") == node.value
    if isinstance(node, Neq):
        return variables.get(node.name, "") != node.value
    if isinstance(node, And):
        results = [evaluate_condition(child, variables) for child in node.children]
        return all(results)
    if isinstance(node, Or):
        results = [evaluate_condition(child, variables) for child in node.children]
        return any(results)
    raise TypeError(f"Unknown condition node: {node!r}")


def condition_variables(node: ConditionNode) -> list[str]:
    """List variable names referenced by a condition, in order of appearance."""
    if isinstance(node, (And, Or)):
        names: list[str] = []
        for child in node.children:
            for name in condition_variables(child):
                if name not in names:
                    names.append(name)
        return names
    return [node.name]
