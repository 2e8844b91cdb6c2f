"""
Schema-driven validation and normalization of resource documents.

The validator walks the declared attribute tree of a resource type and checks
the matching keys of an inbound document against it: type, multiplicity,
mutability, required-ness and uniqueness. Violations are collected and
reported together; the result is a document with canonical key casing ready
for storage.
"""

import base64
import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from scimcore.config import settings
from scimcore.exceptions import (
    ImmutableAttributeModified,
    InvalidSyntax,
    MultiplePrimaryValues,
    MultiplicityMismatch,
    RequiredAttributeMissing,
    SCIMException,
    TypeMismatch,
    UnknownAttribute,
    raise_for_errors,
)
from scimcore.schemas import (
    AttributeType,
    Mutability,
    ResourceType,
    Schema,
    SchemaAttribute,
)
from scimcore.utils.logging import get_logger

logger = get_logger("scimcore.engine.validator")

# Marks an attribute that ends up without a value
_UNSET = object()
# Marks a value that failed its checks; the error is already recorded
_INVALID = object()

ExtensionSpec = Union[Schema, Tuple[Schema, bool]]


class ValidationMode(str, Enum):
    CREATE = "create"
    REPLACE = "replace"
    PARTIAL_CHECK = "partialCheck"


@dataclass
class ValidationContext:
    mode: ValidationMode
    strict: bool = True
    errors: List[SCIMException] = field(default_factory=list)


def is_unassigned(value: Any) -> bool:
    """Null, empty lists and empty objects are equivalent to absence (RFC 7643 Section 2.5)."""
    return value is None or value == [] or value == {}


def lookup(mapping: Dict[str, Any], name: str) -> Tuple[bool, Any]:
    """Case-insensitive key lookup; returns (found, value)."""
    if name in mapping:
        return True, mapping[name]
    lowered = name.lower()
    for key, value in mapping.items():
        if key.lower() == lowered:
            return True, value
    return False, None


def parse_datetime(value: str) -> datetime:
    """Parse an xsd:dateTime string; naive values are taken as UTC."""
    if not isinstance(value, str):
        raise TypeError("dateTime values must be strings")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_scalar(kind: AttributeType, value: Any) -> Any:
    """
    Check a scalar against an attribute kind and return its normalized form.

    Raises:
        TypeError: If the value has the wrong JSON type
        ValueError: If a string does not parse as the kind requires
    """
    if kind in (AttributeType.STRING, AttributeType.REFERENCE):
        if not isinstance(value, str):
            raise TypeError(kind.value)
        return value

    if kind == AttributeType.BOOLEAN:
        if not isinstance(value, bool):
            raise TypeError(kind.value)
        return value

    if kind == AttributeType.INTEGER:
        if isinstance(value, bool):
            raise TypeError(kind.value)
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise TypeError(kind.value)

    if kind == AttributeType.DECIMAL:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(kind.value)
        return float(value)

    if kind == AttributeType.DATETIME:
        parse_datetime(value)
        return value

    if kind == AttributeType.BINARY:
        if not isinstance(value, str):
            raise TypeError(kind.value)
        base64.b64decode(value, validate=True)
        return value

    raise TypeError(kind.value)


def same_value(attr: SchemaAttribute, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str) and not attr.case_exact:
        return left.casefold() == right.casefold()
    return left == right


class AttributeValidator:
    """Validates resource documents against a base schema and its extensions."""

    def __init__(self, registry=None, strict: Optional[bool] = None):
        self.registry = registry
        self.strict = settings.strict_attributes if strict is None else strict

    def validate(
        self,
        schema: Schema,
        extensions: Sequence[ExtensionSpec],
        document: Dict[str, Any],
        mode: ValidationMode = ValidationMode.CREATE,
        existing: Optional[Dict[str, Any]] = None,
        index=None,
        resource_type: Optional[ResourceType] = None,
        resource_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate and normalize a resource document.

        Args:
            schema: The resource type's base schema
            extensions: Extension schemas, bare or as ``(schema, required)`` pairs
            document: The candidate document
            mode: create, replace or partialCheck
            existing: The stored resource for replace and partialCheck
            index: Uniqueness index consulted when ``resource_type`` is given
            resource_type: The resource type the document belongs to
            resource_id: Identifier to carry on the normalized document

        Returns:
            The normalized document

        Raises:
            SCIMException: The single violation found, or ValidationErrors listing all of them
        """
        if not isinstance(document, dict):
            raise InvalidSyntax("Resource representation must be a JSON object")

        mode = ValidationMode(mode)
        context = ValidationContext(mode=mode, strict=self.strict)
        existing = existing or {}
        extension_specs = [spec if isinstance(spec, tuple) else (spec, False) for spec in extensions]
        extension_uris = {ext.id.lower(): ext for ext, _ in extension_specs}

        self._check_schemas_key(schema, extension_uris, document, context)
        self._check_top_level_keys(schema, extension_uris, document, context)

        result: Dict[str, Any] = {"schemas": [schema.id]}

        identifier = resource_id or existing.get("id")
        if identifier is not None:
            result["id"] = identifier

        external_found, external_id = lookup(document, "externalId")
        if external_found and not is_unassigned(external_id):
            if isinstance(external_id, str):
                result["externalId"] = external_id
            else:
                context.errors.append(TypeMismatch("externalId", AttributeType.STRING.value, external_id))

        for attr in schema.attributes:
            _, value = lookup(document, attr.name)
            _, stored = lookup(existing, attr.name)
            normalized = self._validate_attribute(attr, value, stored, attr.name, context)
            if normalized is not _UNSET:
                result[attr.name] = normalized

        for extension, required in extension_specs:
            normalized = self._validate_extension(extension, document, existing, context)
            if normalized:
                result[extension.id] = normalized
                result["schemas"].append(extension.id)
            elif required:
                context.errors.append(RequiredAttributeMissing(extension.id))

        if "meta" in existing:
            result["meta"] = copy.deepcopy(existing["meta"])

        if index is not None and resource_type is not None:
            context.errors.extend(index.conflicts(resource_type, result, identifier))

        if context.errors:
            logger.debug(f"{schema.name or schema.id} document rejected in {mode.value} mode: {len(context.errors)} violation(s)")
        raise_for_errors(context.errors)
        return result

    def _check_schemas_key(self, schema, extension_uris, document, context) -> None:
        found, schemas = lookup(document, "schemas")
        if not found or schemas is None:
            return
        if not isinstance(schemas, list):
            context.errors.append(MultiplicityMismatch("schemas", True))
            return
        for uri in schemas:
            if not isinstance(uri, str):
                context.errors.append(TypeMismatch("schemas", AttributeType.STRING.value, uri))
            elif uri.lower() != schema.id.lower() and uri.lower() not in extension_uris:
                if context.strict:
                    context.errors.append(InvalidSyntax(f"Schema '{uri}' is not supported by this resource type"))

    def _check_top_level_keys(self, schema, extension_uris, document, context) -> None:
        for key in document:
            lowered = key.lower()
            if lowered in ("schemas", "id", "externalid", "meta"):
                continue
            if schema.attribute(key) is not None or lowered in extension_uris:
                continue
            self._unknown(key, context)

    def _unknown(self, path: str, context: ValidationContext) -> None:
        if context.strict:
            context.errors.append(UnknownAttribute(path))
        else:
            logger.debug(f"Dropping undeclared attribute '{path}'")

    def _validate_extension(self, extension, document, existing, context) -> Dict[str, Any]:
        _, value = lookup(document, extension.id)
        _, stored = lookup(existing, extension.id)
        stored = stored if isinstance(stored, dict) else {}

        if is_unassigned(value):
            value = {}
        elif not isinstance(value, dict):
            context.errors.append(TypeMismatch(extension.id, AttributeType.COMPLEX.value, value))
            return {}

        for key in value:
            if extension.attribute(key) is None:
                self._unknown(f"{extension.id}:{key}", context)

        result = {}
        for attr in extension.attributes:
            _, attr_value = lookup(value, attr.name)
            _, attr_stored = lookup(stored, attr.name)
            normalized = self._validate_attribute(attr, attr_value, attr_stored, f"{extension.id}:{attr.name}", context)
            if normalized is not _UNSET:
                result[attr.name] = normalized
        return result

    def _validate_attribute(
        self,
        attr: SchemaAttribute,
        value: Any,
        stored: Any,
        path: str,
        context: ValidationContext,
    ) -> Any:
        # Server-authoritative: the client's value never replaces the stored one
        if attr.mutability == Mutability.READ_ONLY:
            return copy.deepcopy(stored) if not is_unassigned(stored) else _UNSET

        result = _UNSET if is_unassigned(value) else self._check_value(attr, value, stored, path, context)
        if result is _INVALID:
            return _UNSET

        result = self._apply_mutability(attr, result, stored, path, context)

        if result is _UNSET and attr.required:
            context.errors.append(RequiredAttributeMissing(path))
        return result

    def _apply_mutability(self, attr, result, stored, path, context) -> Any:
        if context.mode == ValidationMode.CREATE or is_unassigned(stored):
            if attr.mutability == Mutability.WRITE_ONCE and context.mode != ValidationMode.CREATE and result is not _UNSET:
                # Never set at create, so it can no longer be introduced
                context.errors.append(ImmutableAttributeModified(path))
            return result

        if attr.mutability not in (Mutability.IMMUTABLE, Mutability.WRITE_ONCE):
            return result

        if result is _UNSET:
            if context.mode == ValidationMode.PARTIAL_CHECK:
                context.errors.append(ImmutableAttributeModified(path))
            return copy.deepcopy(stored)

        if not same_value(attr, result, stored):
            context.errors.append(ImmutableAttributeModified(path))
        return result

    def _check_value(self, attr, value, stored, path, context) -> Any:
        if attr.multi_valued:
            if not isinstance(value, list):
                context.errors.append(MultiplicityMismatch(path, True))
                return _INVALID
            return self._check_multi_valued(attr, value, stored, path, context)

        if isinstance(value, list):
            context.errors.append(MultiplicityMismatch(path, False))
            return _INVALID

        if attr.is_complex:
            return self._check_complex(attr, value, stored, path, context)
        return self._check_scalar(attr, value, path, context)

    def _check_multi_valued(self, attr, values, stored, path, context) -> Any:
        stored_elements = stored if isinstance(stored, list) else []
        stored_by_value = {}
        if attr.is_complex:
            for element in stored_elements:
                if isinstance(element, dict):
                    found, key = lookup(element, "value")
                    if found and isinstance(key, (str, int, float, bool)):
                        stored_by_value.setdefault(key, element)

        result = []
        valid = True
        for element in values:
            if is_unassigned(element):
                continue
            if attr.is_complex:
                paired = None
                if isinstance(element, dict):
                    found, key = lookup(element, "value")
                    if found and isinstance(key, (str, int, float, bool)):
                        paired = stored_by_value.get(key)
                normalized = self._check_complex(attr, element, paired, path, context)
            else:
                normalized = self._check_scalar(attr, element, path, context)

            if normalized is _INVALID:
                valid = False
            elif normalized is not _UNSET:
                result.append(normalized)

        if not valid:
            return _INVALID

        primary = attr.sub_attribute("primary") if attr.is_complex else None
        if primary is not None and primary.type == AttributeType.BOOLEAN:
            if sum(1 for element in result if element.get(primary.name) is True) > 1:
                context.errors.append(MultiplePrimaryValues(path))
                return _INVALID

        return result or _UNSET

    def _check_complex(self, attr, value, stored, path, context) -> Any:
        if not isinstance(value, dict):
            context.errors.append(TypeMismatch(path, AttributeType.COMPLEX.value, value))
            return _INVALID

        for key in value:
            if attr.sub_attribute(key) is None:
                self._unknown(f"{path}.{key}", context)

        stored = stored if isinstance(stored, dict) else {}
        result = {}
        for sub in attr.sub_attributes:
            _, sub_value = lookup(value, sub.name)
            _, sub_stored = lookup(stored, sub.name)
            normalized = self._validate_attribute(sub, sub_value, sub_stored, f"{path}.{sub.name}", context)
            if normalized is not _UNSET:
                result[sub.name] = normalized
        return result or _UNSET

    def _check_scalar(self, attr, value, path, context) -> Any:
        if isinstance(value, dict):
            context.errors.append(TypeMismatch(path, attr.type.value, value))
            return _INVALID
        try:
            return coerce_scalar(attr.type, value)
        except (TypeError, ValueError):
            context.errors.append(TypeMismatch(path, attr.type.value, value))
            return _INVALID
