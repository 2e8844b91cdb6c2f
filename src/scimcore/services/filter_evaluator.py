"""
Evaluation of parsed SCIM filters (RFC 7644 Section 3.4.2.2) against resources.

Evaluation is lenient: unknown attributes are absent, literals that cannot be
read as the attribute's kind simply do not match. Only syntax errors, raised
while parsing, are reported to the client.
"""

import operator
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from scimcore.exceptions import MalformedFilter, UnknownAttribute
from scimcore.schemas import AttributeType, ResourceType, SchemaAttribute
from scimcore.utils.filter_parser import (
    And,
    AttributePath,
    Comparison,
    Expression,
    Not,
    Or,
    Present,
    SCIMFilterParser,
    ValuePath,
    parse_attribute_path,
)
from scimcore.utils.logging import get_logger
from .validator import is_unassigned, lookup, parse_datetime

logger = get_logger("scimcore.engine.filter")

Resolver = Callable[[AttributePath], Tuple[Optional[SchemaAttribute], List[Any]]]

_ORDERING = {
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}

_STRING_KINDS = (AttributeType.STRING, AttributeType.REFERENCE, AttributeType.BINARY)
_NUMERIC_KINDS = (AttributeType.INTEGER, AttributeType.DECIMAL)


def _as_list(value: Any) -> List[Any]:
    if is_unassigned(value):
        return []
    if isinstance(value, list):
        return [item for item in value if not is_unassigned(item)]
    return [value]


def _coerce_literal(kind: AttributeType, literal: Any) -> Any:
    if kind in _STRING_KINDS:
        if not isinstance(literal, str):
            raise TypeError(kind.value)
        return literal
    if kind == AttributeType.BOOLEAN:
        if isinstance(literal, bool):
            return literal
        if isinstance(literal, str) and literal.lower() in ("true", "false"):
            return literal.lower() == "true"
        raise TypeError(kind.value)
    if kind in _NUMERIC_KINDS:
        if isinstance(literal, bool):
            raise TypeError(kind.value)
        if isinstance(literal, (int, float)):
            return literal
        if isinstance(literal, str):
            return float(literal)
        raise TypeError(kind.value)
    if kind == AttributeType.DATETIME:
        return parse_datetime(literal)
    raise TypeError(kind.value)


def _coerce_actual(kind: AttributeType, value: Any) -> Any:
    if kind == AttributeType.DATETIME:
        return parse_datetime(value)
    if kind in _NUMERIC_KINDS and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise TypeError(kind.value)
    if kind == AttributeType.BOOLEAN and not isinstance(value, bool):
        raise TypeError(kind.value)
    if kind in _STRING_KINDS and not isinstance(value, str):
        raise TypeError(kind.value)
    return value


def _literal_fits(definition: Optional[SchemaAttribute], literal: Any) -> bool:
    if definition is None or definition.is_complex:
        return False
    try:
        _coerce_literal(definition.type, literal)
    except (TypeError, ValueError):
        return False
    return True


def _match(op: str, definition: Optional[SchemaAttribute], actual: Any, literal: Any) -> bool:
    """Apply one comparison operator to a single attribute value."""
    if definition is None or definition.is_complex:
        return False
    kind = definition.type

    try:
        left = _coerce_actual(kind, actual)
        right = _coerce_literal(kind, literal)
    except (TypeError, ValueError):
        return False

    if kind in _STRING_KINDS and not definition.case_exact:
        left, right = left.casefold(), right.casefold()

    if op == "eq":
        return left == right

    if op in ("co", "sw", "ew"):
        if kind not in _STRING_KINDS:
            return False
        if op == "co":
            return right in left
        if op == "sw":
            return left.startswith(right)
        return left.endswith(right)

    if kind == AttributeType.BOOLEAN:
        return False
    try:
        return _ORDERING[op](left, right)
    except TypeError:
        return False


class FilterEvaluator:
    """Evaluates filter expression trees against resources of a resource type."""

    def __init__(self, registry):
        self.registry = registry
        self.parser = SCIMFilterParser()

    def parse(self, filter_string: str) -> Expression:
        try:
            return self.parser.parse(filter_string)
        except MalformedFilter as e:
            logger.warning(f"Rejected filter: {e.detail}")
            raise

    def evaluate(self, expression: Expression, resource: Dict[str, Any], resource_type: ResourceType) -> bool:
        return self._evaluate(expression, self._resource_resolver(resource, resource_type))

    def filter_resources(
        self,
        expression: Optional[Expression],
        resources: Sequence[Dict[str, Any]],
        resource_type: ResourceType,
    ) -> List[Dict[str, Any]]:
        if expression is None:
            return list(resources)
        return [resource for resource in resources if self.evaluate(expression, resource, resource_type)]

    def filter_elements(
        self,
        expression: Expression,
        elements: Sequence[Any],
        definition: SchemaAttribute,
    ) -> List[int]:
        """Indexes of the elements of a multi-valued attribute selected by a value filter."""
        return [
            position
            for position, element in enumerate(elements)
            if not is_unassigned(element) and self._evaluate(expression, self._element_resolver(definition, element))
        ]

    def sort_value(self, resource: Dict[str, Any], resource_type: ResourceType, sort_by: str) -> Any:
        """
        Comparable sort key of a resource for ``sortBy`` (RFC 7644 Section 3.4.2.3).

        Multi-valued attributes sort by their primary value, or the first one.
        Returns None when the resource has no value for the attribute.
        """
        try:
            path = self._sort_path(sort_by)
        except ValueError:
            return None
        definition, values = self._resource_resolver(resource, resource_type)(path)
        if definition is None or not values:
            return None

        if definition.is_complex:
            primary = next((v for v in values if isinstance(v, dict) and v.get("primary") is True), None)
            candidates = [primary] if primary is not None else values
            values = [lookup(v, "value")[1] for v in candidates if isinstance(v, dict)]
            values = [v for v in values if not is_unassigned(v)]
            definition = definition.sub_attribute("value")
            if definition is None or not values:
                return None

        value = values[0]
        try:
            value = _coerce_actual(definition.type, value)
        except (TypeError, ValueError):
            return None
        if isinstance(value, str) and not definition.case_exact:
            value = value.casefold()
        return value

    def sort_resources(
        self,
        resources: Sequence[Dict[str, Any]],
        resource_type: ResourceType,
        sort_by: Optional[str],
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Stable sort with ties broken by id; resources without the attribute go last."""
        ordered = sorted(resources, key=lambda resource: resource.get("id", ""))
        if not sort_by:
            return ordered

        keyed = [(self.sort_value(resource, resource_type, sort_by), resource) for resource in ordered]
        present = [pair for pair in keyed if pair[0] is not None]
        missing = [resource for value, resource in keyed if value is None]
        try:
            present.sort(key=lambda pair: pair[0], reverse=descending)
        except TypeError:
            logger.warning(f"Values of '{sort_by}' are not mutually comparable; leaving them in id order")
        return [resource for _, resource in present] + missing

    @staticmethod
    def _sort_path(sort_by: str) -> AttributePath:
        return parse_attribute_path(sort_by.strip())

    def _evaluate(self, expression: Expression, resolve: Resolver) -> bool:
        if isinstance(expression, And):
            return self._evaluate(expression.left, resolve) and self._evaluate(expression.right, resolve)

        if isinstance(expression, Or):
            return self._evaluate(expression.left, resolve) or self._evaluate(expression.right, resolve)

        if isinstance(expression, Not):
            return not self._evaluate(expression.expression, resolve)

        if isinstance(expression, Present):
            _, values = resolve(expression.path)
            return bool(values)

        if isinstance(expression, ValuePath):
            definition, values = resolve(expression.path)
            if definition is None or not definition.is_complex:
                return False
            return any(
                isinstance(element, dict)
                and self._evaluate(expression.filter, self._element_resolver(definition, element))
                for element in values
            )

        if isinstance(expression, Comparison):
            definition, values = resolve(expression.path)
            return self._compare(expression, definition, values)

        raise TypeError(f"Unsupported filter node {type(expression).__name__}")

    def _compare(self, comparison: Comparison, definition: Optional[SchemaAttribute], values: List[Any]) -> bool:
        # Handle a complex attribute compared as a whole through its "value" sub-attribute
        if definition is not None and definition.is_complex:
            values = [lookup(v, "value")[1] for v in values if isinstance(v, dict)]
            values = [v for v in values if not is_unassigned(v)]
            definition = definition.sub_attribute("value")

        op = comparison.operator
        if comparison.value is None:
            if op == "eq":
                return not values
            if op == "ne":
                return bool(values)
            return False

        if op == "ne":
            # A literal that cannot be read as the attribute's kind never matches, ne included
            if not _literal_fits(definition, comparison.value):
                return False
            if not values:
                return True
            return any(not _match("eq", definition, value, comparison.value) for value in values)

        return any(_match(op, definition, value, comparison.value) for value in values)

    def _resource_resolver(self, resource: Dict[str, Any], resource_type: ResourceType) -> Resolver:
        def resolve(path: AttributePath) -> Tuple[Optional[SchemaAttribute], List[Any]]:
            try:
                uri, definition = self.registry.resolve_attribute(resource_type, str(path))
            except UnknownAttribute:
                return None, []

            container = resource
            if uri is not None:
                _, container = lookup(resource, uri)
                if not isinstance(container, dict):
                    return definition, []

            _, value = lookup(container, path.attribute)
            values = _as_list(value)
            if path.sub_attribute:
                values = [
                    item
                    for element in values
                    if isinstance(element, dict)
                    for item in _as_list(lookup(element, path.sub_attribute)[1])
                ]
            return definition, values

        return resolve

    def _element_resolver(self, definition: SchemaAttribute, element: Any) -> Resolver:
        def resolve(path: AttributePath) -> Tuple[Optional[SchemaAttribute], List[Any]]:
            # Handle simple multi-valued attributes, whose elements are addressed as "value"
            if not definition.is_complex:
                if path.attribute.lower() == "value" and not path.sub_attribute:
                    return definition, _as_list(element)
                return None, []

            sub = definition.sub_attribute(path.attribute)
            if sub is None or not isinstance(element, dict):
                return None, []
            values = _as_list(lookup(element, sub.name)[1])
            if not path.sub_attribute:
                return sub, values

            nested = sub.sub_attribute(path.sub_attribute) if sub.is_complex else None
            if nested is None:
                return None, []
            return nested, [
                item
                for value in values
                if isinstance(value, dict)
                for item in _as_list(lookup(value, nested.name)[1])
            ]

        return resolve
