"""
SCIM Filter Parser - RFC 7644 Compliant

Implements SCIM filter parsing as defined in RFC 7644 Section 3.4.2.2.

The parser turns a filter string into an expression tree:

    userName eq "bjensen" and not (emails[type eq "work"] pr)

Precedence is ``not`` > ``and`` > ``or``, both binary operators associate to
the left, and parentheses override. Evaluation against resources lives in
``scimcore.services.filter_evaluator``.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, NamedTuple, Optional, Union
from scimcore.exceptions import MalformedFilter


COMPARISON_OPERATORS = ("eq", "ne", "co", "sw", "ew", "gt", "ge", "lt", "le")

ATTRIBUTE_NAME_RE = re.compile(r"^[A-Za-z$][\w$-]*$")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?([eE][+-]?\d+)?$")
_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>"(?:[^"\\]|\\.)*")
      | (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<lbracket>\[)
      | (?P<rbracket>\])
      | (?P<word>[^\s()\[\]"]+)
    )""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class AttributePath:
    attribute: str
    sub_attribute: Optional[str] = None
    schema_uri: Optional[str] = None

    def __str__(self) -> str:
        path = self.attribute
        if self.sub_attribute:
            path = f"{path}.{self.sub_attribute}"
        if self.schema_uri:
            path = f"{self.schema_uri}:{path}"
        return path


@dataclass(frozen=True)
class Comparison:
    path: AttributePath
    operator: str
    value: Any

    def __str__(self) -> str:
        return f"{self.path} {self.operator} {json.dumps(self.value)}"


@dataclass(frozen=True)
class Present:
    path: AttributePath

    def __str__(self) -> str:
        return f"{self.path} pr"


@dataclass(frozen=True)
class ValuePath:
    """``attr[filter]``: selects the elements of a multi-valued complex attribute."""
    path: AttributePath
    filter: "Expression"

    def __str__(self) -> str:
        return f"{self.path}[{self.filter}]"


@dataclass(frozen=True)
class And:
    left: "Expression"
    right: "Expression"

    def __str__(self) -> str:
        return f"({self.left} and {self.right})"


@dataclass(frozen=True)
class Or:
    left: "Expression"
    right: "Expression"

    def __str__(self) -> str:
        return f"({self.left} or {self.right})"


@dataclass(frozen=True)
class Not:
    expression: "Expression"

    def __str__(self) -> str:
        return f"not ({self.expression})"


Expression = Union[Comparison, Present, ValuePath, And, Or, Not]


class _Token(NamedTuple):
    kind: str
    text: str
    position: int


def parse_attribute_path(text: str) -> AttributePath:
    """
    Parse ``attr``, ``attr.sub`` or a URN-qualified ``urn:...:attr.sub``.

    Raises:
        ValueError: If the text is not a valid attribute path
    """
    schema_uri = None
    path = text
    if text.lower().startswith("urn:"):
        schema_uri, _, path = text.rpartition(":")
        if not path or schema_uri.lower() == "urn":
            raise ValueError(f"Invalid attribute path '{text}'")

    parts = path.split(".")
    if len(parts) > 2 or not all(ATTRIBUTE_NAME_RE.match(part) for part in parts):
        raise ValueError(f"Invalid attribute path '{text}'")

    return AttributePath(
        attribute=parts[0],
        sub_attribute=parts[1] if len(parts) > 1 else None,
        schema_uri=schema_uri,
    )


class SCIMFilterParser:
    """Parser for SCIM filter expressions to expression trees"""

    def parse(self, filter_string: str) -> Expression:
        """
        Parse SCIM filter string to an expression tree

        Args:
            filter_string: SCIM filter expression

        Returns:
            Root node of the expression tree

        Raises:
            MalformedFilter: If filter syntax is invalid
        """
        if not filter_string or not filter_string.strip():
            raise MalformedFilter(filter_string or "", "filter is empty")

        reader = _FilterReader(filter_string, self._tokenize(filter_string))
        expression = reader.parse_or()
        if not reader.at_end():
            token = reader.peek()
            raise MalformedFilter(filter_string, f"unexpected '{token.text}' at position {token.position}")
        return expression

    @staticmethod
    def _tokenize(filter_string: str) -> List[_Token]:
        tokens = []
        position = 0
        while position < len(filter_string):
            if not filter_string[position:].strip():
                break
            match = _TOKEN_RE.match(filter_string, position)
            if not match:
                raise MalformedFilter(filter_string, f"unexpected character at position {position}")
            kind = match.lastgroup
            tokens.append(_Token(kind, match.group(kind), match.start(kind)))
            position = match.end()
        return tokens


class _FilterReader:
    """Recursive-descent state for a single parse() call."""

    def __init__(self, source: str, tokens: List[_Token]):
        self.source = source
        self.tokens = tokens
        self.index = 0
        self.in_value_path = False

    def at_end(self) -> bool:
        return self.index >= len(self.tokens)

    def peek(self) -> Optional[_Token]:
        return None if self.at_end() else self.tokens[self.index]

    def next(self, expected: str) -> _Token:
        token = self.peek()
        if token is None:
            raise MalformedFilter(self.source, f"expected {expected} but the filter ended")
        self.index += 1
        return token

    def expect(self, kind: str, expected: str) -> _Token:
        token = self.next(expected)
        if token.kind != kind:
            raise MalformedFilter(self.source, f"expected {expected} at position {token.position}, got '{token.text}'")
        return token

    def accept_keyword(self, keyword: str) -> bool:
        token = self.peek()
        if token is not None and token.kind == "word" and token.text.lower() == keyword:
            self.index += 1
            return True
        return False

    def accept(self, kind: str) -> bool:
        token = self.peek()
        if token is not None and token.kind == kind:
            self.index += 1
            return True
        return False

    def parse_or(self) -> Expression:
        left = self.parse_and()
        while self.accept_keyword("or"):
            left = Or(left, self.parse_and())
        return left

    def parse_and(self) -> Expression:
        left = self.parse_unary()
        while self.accept_keyword("and"):
            left = And(left, self.parse_unary())
        return left

    def parse_unary(self) -> Expression:
        if self.accept_keyword("not"):
            self.expect("lparen", "'(' after 'not'")
            expression = self.parse_or()
            self.expect("rparen", "')'")
            return Not(expression)

        if self.accept("lparen"):
            expression = self.parse_or()
            self.expect("rparen", "')'")
            return expression

        return self.parse_attribute_expression()

    def parse_attribute_expression(self) -> Expression:
        token = self.expect("word", "an attribute path")
        try:
            path = parse_attribute_path(token.text)
        except ValueError as e:
            raise MalformedFilter(self.source, str(e))

        if self.accept("lbracket"):
            if self.in_value_path:
                raise MalformedFilter(self.source, "value filters cannot be nested")
            if path.sub_attribute:
                raise MalformedFilter(self.source, f"value filter must follow a top-level attribute, not '{token.text}'")
            self.in_value_path = True
            inner = self.parse_or()
            self.in_value_path = False
            self.expect("rbracket", "']'")
            return ValuePath(path, inner)

        operator_token = self.expect("word", f"an operator after '{token.text}'")
        operator = operator_token.text.lower()

        if operator == "pr":
            return Present(path)

        if operator not in COMPARISON_OPERATORS:
            raise MalformedFilter(self.source, f"unknown operator '{operator_token.text}'")

        return Comparison(path, operator, self.parse_literal(operator))

    def parse_literal(self, operator: str) -> Any:
        token = self.next(f"a value after '{operator}'")

        if token.kind == "string":
            try:
                return json.loads(token.text)
            except json.JSONDecodeError:
                raise MalformedFilter(self.source, f"invalid string literal at position {token.position}")

        if token.kind == "word":
            lowered = token.text.lower()
            if lowered == "true":
                return True
            if lowered == "false":
                return False
            if lowered == "null":
                return None
            if _NUMBER_RE.match(token.text):
                if any(c in token.text for c in ".eE"):
                    return float(token.text)
                return int(token.text)

        raise MalformedFilter(self.source, f"invalid value '{token.text}' at position {token.position}")
