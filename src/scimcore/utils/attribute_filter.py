"""
SCIM Attribute Filtering Utility

Implements RFC 7644 Section 3.9 attribute filtering for SCIM responses.
Handles both 'attributes' and 'excludedAttributes' query parameters, and the
'returned' characteristic of each attribute (RFC 7643 Section 7):

- always: returned regardless of the query parameters
- never: never returned (e.g. password)
- default: returned unless excluded, or unless 'attributes' omits it
- request: returned only when named in 'attributes'
"""
from typing import Any, Dict, List, Optional, Set
from scimcore.schemas import Returned, SchemaAttribute, common_attribute

# Marks a value removed from the response
_DROP = object()


class AttributeFilter:
    """Filters SCIM resource attributes according to RFC 7644."""

    # Attributes returned whatever the query asks for
    ALWAYS_RETURNED = {"schemas", "id", "meta"}

    def __init__(self, registry):
        self.registry = registry

    def filter_resource(
        self,
        resource: Dict[str, Any],
        resource_type,
        attributes: Optional[List[str]] = None,
        excluded_attributes: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Project a single resource for a response.

        Args:
            resource: The stored resource dictionary
            resource_type: The resource type governing the resource
            attributes: Attributes to include (overrides the default set)
            excluded_attributes: Attributes to remove from the default set

        Returns:
            A new, filtered resource dictionary
        """
        requested = self._normalize_attribute_paths(resource_type, attributes)
        # 'attributes' takes precedence when both are given
        excluded = set() if requested else self._normalize_attribute_paths(resource_type, excluded_attributes)

        base = self.registry.base_schema(resource_type)
        extensions = {schema.id.lower(): schema for schema, _ in self.registry.extensions_for(resource_type)}

        result = {}
        for key, value in resource.items():
            if key.lower() in self.ALWAYS_RETURNED:
                result[key] = value
                continue

            extension = extensions.get(key.lower())
            if extension is not None:
                projected = self._filter_extension(extension, value, requested, excluded)
            else:
                definition = base.attribute(key) or common_attribute(key)
                if definition is None:
                    continue
                projected = self._project(definition, value, key.lower(), requested, excluded, False)

            if projected is not _DROP:
                result[key] = projected

        # Handle schemas listing an extension that was projected away
        if "schemas" in result:
            result["schemas"] = [uri for uri in result["schemas"] if uri.lower() not in extensions or uri in result]
        return result

    def filter_list_response(
        self,
        resources: List[Dict[str, Any]],
        resource_type,
        attributes: Optional[List[str]] = None,
        excluded_attributes: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        return [
            self.filter_resource(resource, resource_type, attributes, excluded_attributes)
            for resource in resources
        ]

    def _normalize_attribute_paths(self, resource_type, attributes: Optional[List[str]]) -> Set[str]:
        """
        Lower-case attribute paths and strip the core schema URN prefix.

        Per RFC 7644 Section 3.10, attribute names are case-insensitive.
        Extension attributes keep their URN: ``urn:...:User:manager.value``.
        """
        base_uri = self.registry.base_schema(resource_type).id.lower()
        normalized = set()
        for attr in attributes or []:
            path = attr.strip().lower()
            if path.startswith(f"{base_uri}:"):
                path = path[len(base_uri) + 1:]
            if path:
                normalized.add(path)
        return normalized

    def _filter_extension(self, extension, value: Any, requested: Set[str], excluded: Set[str]) -> Any:
        uri = extension.id.lower()
        selected = uri in requested
        if requested and not selected and not any(path.startswith(f"{uri}:") for path in requested):
            return _DROP
        if uri in excluded or not isinstance(value, dict):
            return _DROP

        result = {}
        for key, item in value.items():
            definition = extension.attribute(key)
            if definition is None:
                continue
            projected = self._project(definition, item, f"{uri}:{definition.name.lower()}", requested, excluded, selected)
            if projected is not _DROP:
                result[key] = projected
        return result or _DROP

    def _project(
        self,
        definition: SchemaAttribute,
        value: Any,
        path: str,
        requested: Set[str],
        excluded: Set[str],
        selected: bool,
    ) -> Any:
        if definition.returned == Returned.NEVER:
            return _DROP
        if definition.returned == Returned.ALWAYS:
            return value

        named = selected or path in requested
        if requested:
            if not named and not any(p.startswith(f"{path}.") for p in requested):
                return _DROP
        else:
            if definition.returned == Returned.REQUEST and not named:
                return _DROP
            if path in excluded:
                return _DROP

        if not definition.is_complex:
            return value
        return self._project_complex(definition, value, path, requested, excluded, named)

    def _project_complex(self, definition, value, path, requested, excluded, selected) -> Any:
        elements = value if isinstance(value, list) else [value]
        result = []
        for element in elements:
            if not isinstance(element, dict):
                continue
            projected = {}
            for key, item in element.items():
                sub = definition.sub_attribute(key)
                if sub is None:
                    continue
                kept = self._project(sub, item, f"{path}.{sub.name.lower()}", requested, excluded, selected)
                if kept is not _DROP:
                    projected[key] = kept
            if projected:
                result.append(projected)

        if not result:
            return _DROP
        return result if isinstance(value, list) else result[0]
