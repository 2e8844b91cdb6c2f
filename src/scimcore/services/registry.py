from typing import Dict, List, Optional, Sequence, Tuple, Union
from scimcore.exceptions import (
    DuplicateResourceType,
    DuplicateSchemaID,
    NotFound,
    UnknownAttribute,
    UnknownResourceType,
)
from scimcore.schemas import (
    DEFAULT_RESOURCE_TYPES,
    DEFAULT_SCHEMAS,
    ResourceType,
    Schema,
    SchemaAttribute,
    common_attribute,
)
from scimcore.utils.logging import get_logger

logger = get_logger("scimcore.engine.registry")


def path_segments(path: str) -> List[str]:
    """Split ``emails[type eq "work"].value`` into ``["emails", "value"]``."""
    outside = []
    depth = 0
    in_string = False
    for char in path:
        if in_string:
            if char == '"':
                in_string = False
            continue
        if char == '"' and depth:
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth = max(depth - 1, 0)
        elif not depth:
            outside.append(char)
    return [segment for segment in "".join(outside).split(".") if segment]


def _walk(definition: Optional[SchemaAttribute], segments: Sequence[str]) -> Optional[SchemaAttribute]:
    for segment in segments:
        if definition is None or not definition.is_complex:
            return None
        definition = definition.sub_attribute(segment)
    return definition


class SchemaRegistry:
    """Declared schemas and resource types.

    Populated once at start-up and read-only afterwards; the store, validator
    and HTTP layer receive an instance rather than reaching for a global.
    """

    def __init__(self):
        self._schemas: Dict[str, Schema] = {}
        self._resource_types: Dict[str, ResourceType] = {}

    def register(self, schema: Schema) -> None:
        key = schema.id.lower()
        if key in self._schemas:
            raise DuplicateSchemaID(schema.id)
        self._schemas[key] = schema
        logger.debug(f"Registered schema {schema.id} ({len(schema.attributes)} attributes)")

    def register_resource_type(self, resource_type: ResourceType) -> None:
        endpoint = resource_type.endpoint.lstrip("/").lower()
        for existing in self._resource_types.values():
            if existing.name.lower() == resource_type.name.lower() or existing.endpoint.lstrip("/").lower() == endpoint:
                raise DuplicateResourceType(resource_type.name)

        referenced = [resource_type.schema_uri] + [ext.schema_uri for ext in resource_type.schema_extensions]
        for uri in referenced:
            if uri.lower() not in self._schemas:
                raise ValueError(f"Resource type '{resource_type.name}' references unregistered schema '{uri}'")

        self._resource_types[resource_type.name.lower()] = resource_type
        logger.debug(f"Registered resource type {resource_type.name} at {resource_type.endpoint}")

    def resolve(self, name: str) -> ResourceType:
        key = name.strip().lstrip("/").lower()
        for resource_type in self._resource_types.values():
            if key in (
                resource_type.name.lower(),
                resource_type.id.lower(),
                resource_type.endpoint.lstrip("/").lower(),
            ):
                return resource_type
        raise UnknownResourceType(name)

    def schema(self, uri: str) -> Schema:
        schema = self._schemas.get(uri.lower())
        if schema is None:
            raise NotFound("Schema", uri)
        return schema

    def schemas(self) -> List[Schema]:
        return list(self._schemas.values())

    def resource_types(self) -> List[ResourceType]:
        return list(self._resource_types.values())

    def base_schema(self, resource_type: ResourceType) -> Schema:
        return self.schema(resource_type.schema_uri)

    def extensions_for(self, resource_type: ResourceType) -> List[Tuple[Schema, bool]]:
        return [(self.schema(ext.schema_uri), ext.required) for ext in resource_type.schema_extensions]

    def schema_uris(self, resource_type: ResourceType) -> List[str]:
        base = self.base_schema(resource_type)
        return [base.id] + [schema.id for schema, _ in self.extensions_for(resource_type)]

    def attribute_definition(self, schema: Union[Schema, str], dotted_path: str) -> SchemaAttribute:
        """Resolve ``name.givenName`` (or a bracketed ``emails[...].value``) within one schema."""
        if isinstance(schema, str):
            schema = self.schema(schema)

        segments = path_segments(dotted_path)
        definition = _walk(schema.attribute(segments[0]), segments[1:]) if segments else None
        if definition is None:
            raise UnknownAttribute(dotted_path)
        return definition

    def split_schema_uri(self, resource_type: ResourceType, path: str) -> Tuple[Optional[str], str]:
        """Separate a URN prefix registered for the resource type from the attribute path."""
        lowered = path.lower()
        for uri in sorted(self.schema_uris(resource_type), key=len, reverse=True):
            if lowered == uri.lower():
                return uri, ""
            if lowered.startswith(uri.lower() + ":"):
                return uri, path[len(uri) + 1:]
        return None, path

    def resolve_attribute(self, resource_type: ResourceType, path: str) -> Tuple[Optional[str], SchemaAttribute]:
        """Resolve a resource-level path.

        Returns the extension URN owning the attribute (``None`` for core and
        common attributes) together with its definition.
        """
        base = self.base_schema(resource_type)
        uri, rest = self.split_schema_uri(resource_type, path)
        if not rest:
            raise UnknownAttribute(path)

        if uri is not None and uri.lower() != base.id.lower():
            try:
                return uri, self.attribute_definition(self.schema(uri), rest)
            except UnknownAttribute:
                raise UnknownAttribute(path)

        segments = path_segments(rest)
        if not segments:
            raise UnknownAttribute(path)
        top = base.attribute(segments[0])
        if top is None and uri is None:
            top = common_attribute(segments[0])
        definition = _walk(top, segments[1:])
        if definition is None:
            raise UnknownAttribute(path)
        return None, definition


def build_default_registry() -> SchemaRegistry:
    """A fresh registry holding the RFC 7643 User, Group and Enterprise User schemas."""
    registry = SchemaRegistry()
    for schema in DEFAULT_SCHEMAS:
        registry.register(schema)
    for resource_type in DEFAULT_RESOURCE_TYPES:
        registry.register_resource_type(resource_type)
    return registry
