"""
SCIM PATCH (RFC 7644 Section 3.5.2) applied to stored resources.

Operations run in order against a private copy of the stored document; the
copy is re-validated once every operation has been applied. Nothing the
caller holds is touched unless the whole batch succeeds.
"""

import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from scimcore.exceptions import (
    ImmutableAttributeModified,
    InvalidSyntax,
    MalformedPath,
    NoTargetMatched,
    PathRequired,
    SCIMException,
    TargetAlreadyExists,
    UnknownAttribute,
    UnsupportedOperation,
    raise_for_errors,
)
from scimcore.schemas import Mutability, PatchOperation, ResourceType, SchemaAttribute
from scimcore.utils.filter_parser import And, Comparison, Expression
from scimcore.utils.logging import get_logger
from scimcore.utils.scim_path_parser import SCIMPath, parse_scim_path
from .filter_evaluator import FilterEvaluator
from .validator import AttributeValidator, ValidationMode, is_unassigned, lookup, same_value

logger = get_logger("scimcore.engine.patch")

SUPPORTED_OPERATIONS = ("add", "remove", "replace")
_FIXED = (Mutability.IMMUTABLE, Mutability.WRITE_ONCE)


def _canonical_element(definition: SchemaAttribute, value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    canonical = {}
    for key, item in value.items():
        sub = definition.sub_attribute(key)
        canonical[sub.name if sub else key] = item
    return canonical


def canonicalize(definition: Optional[SchemaAttribute], value: Any) -> Any:
    """Rename the keys of a complex value to their declared casing."""
    if definition is None or not definition.is_complex:
        return value
    if isinstance(value, list):
        return [_canonical_element(definition, item) for item in value]
    return _canonical_element(definition, value)


def _seed_from_filter(expression: Expression) -> Dict[str, Any]:
    """Sub-attribute values implied by the ``eq`` clauses of a value filter."""
    if isinstance(expression, And):
        seed = _seed_from_filter(expression.left)
        seed.update(_seed_from_filter(expression.right))
        return seed
    if (
        isinstance(expression, Comparison)
        and expression.operator == "eq"
        and expression.value is not None
        and not expression.path.sub_attribute
    ):
        return {expression.path.attribute: expression.value}
    return {}


def _guard_fixed(definition: SchemaAttribute, sub: Optional[SchemaAttribute], element: Any, value: Any) -> None:
    """Reject changing or clearing an immutable/writeOnce sub-attribute already set on an element."""
    if sub is None or sub.mutability not in _FIXED or not isinstance(element, dict):
        return
    _, stored = lookup(element, sub.name)
    if is_unassigned(stored):
        return
    if is_unassigned(value) or not same_value(sub, value, stored):
        raise ImmutableAttributeModified(f"{definition.name}.{sub.name}")


def _replace_element(definition: SchemaAttribute, element: Any, replacement: Dict[str, Any]) -> Dict[str, Any]:
    # Fixed sub-attributes left out of the replacement keep their stored value
    for sub in definition.sub_attributes or []:
        if sub.mutability not in _FIXED:
            continue
        found, value = lookup(replacement, sub.name)
        if found:
            _guard_fixed(definition, sub, element, value)
        elif isinstance(element, dict):
            _, stored = lookup(element, sub.name)
            if not is_unassigned(stored):
                replacement[sub.name] = copy.deepcopy(stored)
    return replacement


def _element_key(element: Any) -> Any:
    if isinstance(element, dict):
        found, value = lookup(element, "value")
        if found and isinstance(value, (str, int, float, bool)):
            return value
    return None


class _Target:
    """Where a path points inside the working document."""

    def __init__(self, container: Dict[str, Any], key: str, definition: Optional[SchemaAttribute], path: SCIMPath):
        self.container = container
        self.key = key
        self.definition = definition
        self.path = path

    @property
    def current(self) -> Any:
        return self.container.get(self.key)


class PatchApplier:
    def __init__(
        self,
        registry,
        validator: Optional[AttributeValidator] = None,
        evaluator: Optional[FilterEvaluator] = None,
    ):
        self.registry = registry
        self.validator = validator or AttributeValidator(registry)
        self.evaluator = evaluator or FilterEvaluator(registry)

    def apply(
        self,
        resource_type: ResourceType,
        stored: Dict[str, Any],
        operations: Sequence[Union[PatchOperation, Dict[str, Any]]],
        index=None,
    ) -> Dict[str, Any]:
        """
        Apply a batch of patch operations to a stored resource.

        Args:
            resource_type: The resource type of the stored resource
            stored: The stored (normalized) resource; never modified
            operations: PatchOperation models or their JSON form
            index: Uniqueness index for the final validation pass

        Returns:
            The patched, validated document

        Raises:
            SCIMException: The first structural error, or every collected violation
        """
        schema = self.registry.base_schema(resource_type)
        extensions = self.registry.extensions_for(resource_type)
        document = copy.deepcopy(stored)
        errors: List[SCIMException] = []

        for operation in operations:
            op, path, value = self._unpack(operation)
            try:
                if op == "remove":
                    self._remove(resource_type, document, path, value)
                elif path is None:
                    self._merge(op, resource_type, document, value, errors)
                else:
                    self._write(op, resource_type, document, path, value)
            except (UnknownAttribute, NoTargetMatched) as e:
                errors.append(e)

        raise_for_errors(errors)
        logger.debug(f"Applied {len(operations)} patch operation(s) to {resource_type.name} {stored.get('id')}")

        return self.validator.validate(
            schema,
            extensions,
            document,
            ValidationMode.PARTIAL_CHECK,
            existing=stored,
            index=index,
            resource_type=resource_type,
            resource_id=stored.get("id"),
        )

    @staticmethod
    def _unpack(operation: Union[PatchOperation, Dict[str, Any]]) -> Tuple[str, Optional[str], Any]:
        if isinstance(operation, PatchOperation):
            op, path, value = operation.op, operation.path, operation.value
        elif isinstance(operation, dict):
            _, op = lookup(operation, "op")
            _, path = lookup(operation, "path")
            _, value = lookup(operation, "value")
        else:
            raise InvalidSyntax("Patch operations must be JSON objects")

        if not isinstance(op, str) or op.strip().lower() not in SUPPORTED_OPERATIONS:
            raise UnsupportedOperation(op)
        if path is not None and not isinstance(path, str):
            raise MalformedPath(str(path), "path must be a string")
        return op.strip().lower(), path, value

    def _resolve(self, resource_type: ResourceType, document: Dict[str, Any], path_text: str, create: bool) -> Optional[_Target]:
        path = parse_scim_path(path_text, self.registry.schema_uris(resource_type))
        base_uri = self.registry.base_schema(resource_type).id

        if path.attribute is None:
            if path.schema_uri.lower() == base_uri.lower():
                raise MalformedPath(path_text, "path must name an attribute of the core schema")
            return _Target(document, path.schema_uri, None, path)

        qualified = path.attribute if path.schema_uri is None else f"{path.schema_uri}:{path.attribute}"
        try:
            uri, definition = self.registry.resolve_attribute(resource_type, qualified)
            if path.sub_attribute:
                self.registry.resolve_attribute(resource_type, f"{qualified}.{path.sub_attribute}")
        except UnknownAttribute:
            raise UnknownAttribute(path_text, scim_type="invalidPath")

        if path.filter_expr is not None and not (definition.multi_valued and definition.is_complex):
            raise MalformedPath(path_text, "value filters apply only to multi-valued complex attributes")

        container = document
        if uri is not None and uri.lower() != base_uri.lower():
            _, container = lookup(document, uri)
            if not isinstance(container, dict):
                if not create:
                    return None
                container = {}
                document[uri] = container
        return _Target(container, definition.name, definition, path)

    def _merge(self, op, resource_type, document, value, errors) -> None:
        # Handle add/replace without a path: each key of the value names a target
        if not isinstance(value, dict):
            raise InvalidSyntax(f"'{op}' without a path requires an object value")

        extension_uris = {uri.lower(): uri for uri in self.registry.schema_uris(resource_type)}
        for key, item in value.items():
            if key.lower() == "schemas":
                continue
            try:
                if key.lower() in extension_uris and isinstance(item, dict):
                    uri = extension_uris[key.lower()]
                    if uri == self.registry.base_schema(resource_type).id:
                        self._merge(op, resource_type, document, item, errors)
                        continue
                    for sub_key, sub_item in item.items():
                        self._write(op, resource_type, document, f"{uri}:{sub_key}", sub_item)
                else:
                    self._write(op, resource_type, document, key, item)
            except (UnknownAttribute, NoTargetMatched) as e:
                errors.append(e)

    def _write(self, op: str, resource_type: ResourceType, document: Dict[str, Any], path_text: str, value: Any) -> None:
        if value is None:
            # A null replacement clears the attribute (RFC 7643 Section 2.5)
            if op == "replace":
                self._remove(resource_type, document, path_text, None)
                return
            raise InvalidSyntax(f"'{op}' operations require a value")

        target = self._resolve(resource_type, document, path_text, create=True)
        path = target.path

        if target.definition is None:
            self._write_extension(op, resource_type, document, target, value)
            return

        if path.filter_expr is not None:
            self._write_filtered(op, target, value)
            return

        definition = target.definition
        if path.sub_attribute:
            sub = definition.sub_attribute(path.sub_attribute)
            if definition.multi_valued:
                elements = target.current if isinstance(target.current, list) else []
                if not elements:
                    if op == "replace":
                        raise NoTargetMatched(path.raw)
                    target.container[target.key] = [{sub.name: value}]
                    return
                for element in elements:
                    if isinstance(element, dict):
                        _guard_fixed(definition, sub, element, value)
                        element[sub.name] = value
                return
            parent = target.current if isinstance(target.current, dict) else {}
            parent[sub.name] = value
            target.container[target.key] = parent
            return

        value = canonicalize(definition, value)
        if definition.multi_valued:
            incoming = value if isinstance(value, list) else [value]
            if op == "replace":
                target.container[target.key] = incoming
            else:
                target.container[target.key] = self._append(definition, target.current, incoming)
        elif definition.is_complex and isinstance(value, dict) and isinstance(target.current, dict):
            target.current.update(value)
        else:
            target.container[target.key] = value

    def _write_extension(self, op, resource_type, document, target, value) -> None:
        if not isinstance(value, dict):
            raise InvalidSyntax(f"Extension '{target.key}' must be given as an object")
        if op == "replace":
            document.pop(target.key, None)
        for key, item in value.items():
            self._write("add", resource_type, document, f"{target.key}:{key}", item)

    def _append(self, definition: SchemaAttribute, current: Any, incoming: List[Any]) -> List[Any]:
        elements = list(current) if isinstance(current, list) else []
        for item in incoming:
            key = _element_key(item)
            existing = next((e for e in elements if key is not None and _element_key(e) == key), None)
            if existing is not None and isinstance(item, dict):
                existing.update(item)
            elif item not in elements:
                elements.append(item)
        return elements

    def _write_filtered(self, op: str, target: _Target, value: Any) -> None:
        path = target.path
        definition = target.definition
        elements = target.current if isinstance(target.current, list) else []
        matched = self.evaluator.filter_elements(path.filter_expr, elements, definition)
        sub = definition.sub_attribute(path.sub_attribute) if path.sub_attribute else None
        value = canonicalize(definition, value) if sub is None else value

        if not matched:
            if op == "replace":
                raise NoTargetMatched(path.raw)
            element = canonicalize(definition, _seed_from_filter(path.filter_expr))
            if sub is not None:
                element[sub.name] = value
            elif isinstance(value, dict):
                element.update(value)
            else:
                raise InvalidSyntax(f"Value for '{path.raw}' must be an object")
            target.container[target.key] = elements + [element]
            return

        if op == "add":
            raise TargetAlreadyExists(path.raw)

        for position in matched:
            if sub is not None:
                _guard_fixed(definition, sub, elements[position], value)
                elements[position][sub.name] = value
            elif not isinstance(value, dict):
                raise InvalidSyntax(f"Value for '{path.raw}' must be an object")
            else:
                elements[position] = _replace_element(definition, elements[position], copy.deepcopy(value))

    def _remove(self, resource_type: ResourceType, document: Dict[str, Any], path_text: Optional[str], value: Any) -> None:
        if path_text is None:
            raise PathRequired("remove")

        target = self._resolve(resource_type, document, path_text, create=False)
        if target is None or target.key not in target.container:
            return
        path = target.path
        definition = target.definition

        if definition is None:
            target.container.pop(target.key, None)
            return

        current = target.current
        if path.filter_expr is not None:
            elements = current if isinstance(current, list) else []
            matched = set(self.evaluator.filter_elements(path.filter_expr, elements, definition))
            if path.sub_attribute:
                sub = definition.sub_attribute(path.sub_attribute)
                for position in matched:
                    _guard_fixed(definition, sub, elements[position], None)
                    self._pop(elements[position], path.sub_attribute)
            else:
                elements = [e for position, e in enumerate(elements) if position not in matched]
            self._store_or_drop(target, elements)
            return

        if path.sub_attribute:
            sub = definition.sub_attribute(path.sub_attribute)
            for element in current if isinstance(current, list) else [current]:
                if isinstance(element, dict):
                    if definition.multi_valued:
                        _guard_fixed(definition, sub, element, None)
                    self._pop(element, path.sub_attribute)
            self._store_or_drop(target, current)
            return

        # Handle {"op": "remove", "path": "members", "value": [{"value": "id"}]}
        if definition.multi_valued and definition.is_complex and not is_unassigned(value):
            doomed = {_element_key(item) for item in (value if isinstance(value, list) else [value])}
            doomed.discard(None)
            remaining = [e for e in current if _element_key(e) not in doomed] if isinstance(current, list) else current
            self._store_or_drop(target, remaining)
            return

        target.container.pop(target.key, None)

    @staticmethod
    def _pop(element: Any, name: str) -> None:
        if not isinstance(element, dict):
            return
        for key in list(element):
            if key.lower() == name.lower():
                del element[key]

    @staticmethod
    def _store_or_drop(target: _Target, value: Any) -> None:
        if isinstance(value, list):
            value = [item for item in value if not is_unassigned(item)]
        if is_unassigned(value):
            target.container.pop(target.key, None)
        else:
            target.container[target.key] = value
