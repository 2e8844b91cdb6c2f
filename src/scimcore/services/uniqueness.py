from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple
from scimcore.exceptions import UniquenessConflict
from scimcore.schemas import ResourceType, SchemaAttribute, Uniqueness
from scimcore.utils.logging import get_logger

logger = get_logger("scimcore.engine.uniqueness")

IndexKey = Tuple[str, str, Hashable]


def _unassigned(value: Any) -> bool:
    return value is None or value == [] or value == {}


class UniquenessIndex:
    """
    Normalized value -> resource id, for attributes declaring ``server`` or
    ``global`` uniqueness.

    ``server`` entries are scoped to the resource type; ``global`` entries are
    shared by every resource type declaring an attribute of the same name.
    The store updates the index in the same critical section as the resource
    it describes.
    """

    def __init__(self, registry):
        self.registry = registry
        self._entries: Dict[IndexKey, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def declares_global(self, resource_type: ResourceType) -> bool:
        schemas = [self.registry.base_schema(resource_type)]
        schemas += [schema for schema, _ in self.registry.extensions_for(resource_type)]
        return any(self._has_global(schema.attributes) for schema in schemas)

    def _has_global(self, attributes: Sequence[SchemaAttribute]) -> bool:
        for attr in attributes:
            if attr.uniqueness == Uniqueness.GLOBAL:
                return True
            if attr.is_complex and self._has_global(attr.sub_attributes):
                return True
        return False

    def keys_for(self, resource_type: ResourceType, document: Dict[str, Any]) -> List[Tuple[IndexKey, str, Any]]:
        """Index keys for a normalized document, with the attribute path and raw value of each."""
        keys = []
        base = self.registry.base_schema(resource_type)
        self._collect(resource_type, "", "", base.attributes, document, keys)
        for schema, _ in self.registry.extensions_for(resource_type):
            extension = document.get(schema.id)
            if isinstance(extension, dict):
                self._collect(resource_type, f"{schema.id}:", "", schema.attributes, extension, keys)
        return keys

    def _collect(
        self,
        resource_type: ResourceType,
        uri_prefix: str,
        prefix: str,
        attributes: Sequence[SchemaAttribute],
        container: Dict[str, Any],
        keys: List[Tuple[IndexKey, str, Any]],
    ) -> None:
        for attr in attributes:
            value = container.get(attr.name)
            if _unassigned(value):
                continue
            path = f"{prefix}{attr.name}"
            values = value if attr.multi_valued and isinstance(value, list) else [value]

            if attr.is_complex:
                for element in values:
                    if isinstance(element, dict):
                        self._collect(resource_type, uri_prefix, f"{path}.", attr.sub_attributes, element, keys)
                continue

            if attr.uniqueness == Uniqueness.NONE:
                continue

            for item in values:
                if _unassigned(item) or isinstance(item, (dict, list)):
                    continue
                normalized = item.casefold() if isinstance(item, str) and not attr.case_exact else item
                if attr.uniqueness == Uniqueness.GLOBAL:
                    key = ("global", path.lower(), normalized)
                else:
                    key = (resource_type.name.lower(), f"{uri_prefix}{path}".lower(), normalized)
                keys.append((key, f"{uri_prefix}{path}", item))

    def conflicts(
        self,
        resource_type: ResourceType,
        document: Dict[str, Any],
        resource_id: Optional[str] = None,
    ) -> List[UniquenessConflict]:
        """Violations the document would cause, ignoring entries owned by ``resource_id``."""
        errors = []
        for key, path, value in self.keys_for(resource_type, document):
            owner = self._entries.get(key)
            if owner is not None and owner != resource_id:
                errors.append(UniquenessConflict(path, value))
        return errors

    def add(self, resource_type: ResourceType, document: Dict[str, Any], resource_id: str) -> None:
        for key, _, _ in self.keys_for(resource_type, document):
            self._entries[key] = resource_id

    def discard(self, resource_type: ResourceType, document: Dict[str, Any], resource_id: str) -> None:
        for key, _, _ in self.keys_for(resource_type, document):
            if self._entries.get(key) == resource_id:
                del self._entries[key]

    def replace(
        self,
        resource_type: ResourceType,
        old_document: Dict[str, Any],
        new_document: Dict[str, Any],
        resource_id: str,
    ) -> None:
        self.discard(resource_type, old_document, resource_id)
        self.add(resource_type, new_document, resource_id)

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Uniqueness index cleared")
