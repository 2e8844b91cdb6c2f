from .base import (
    ListResponse,
    PatchOperation,
    PatchRequest,
    SCIMSchemaUri,
)
from .error import ErrorResponse
from .meta import (
    Schema,
    SchemaAttribute,
    SchemaExtension,
    ResourceType,
    ServiceProviderConfig,
    AttributeType,
    Mutability,
    Returned,
    Uniqueness,
)
from .definitions import (
    COMMON_ATTRIBUTES,
    common_attribute,
    USER_SCHEMA,
    GROUP_SCHEMA,
    ENTERPRISE_USER_SCHEMA,
    USER_RESOURCE_TYPE,
    GROUP_RESOURCE_TYPE,
    DEFAULT_SCHEMAS,
    DEFAULT_RESOURCE_TYPES,
)

__all__ = [
    # Base
    "ListResponse",
    "PatchOperation",
    "PatchRequest",
    "SCIMSchemaUri",
    # Error
    "ErrorResponse",
    # Meta
    "Schema",
    "SchemaAttribute",
    "SchemaExtension",
    "ResourceType",
    "ServiceProviderConfig",
    "AttributeType",
    "Mutability",
    "Returned",
    "Uniqueness",
    # Declarations
    "COMMON_ATTRIBUTES",
    "common_attribute",
    "USER_SCHEMA",
    "GROUP_SCHEMA",
    "ENTERPRISE_USER_SCHEMA",
    "USER_RESOURCE_TYPE",
    "GROUP_RESOURCE_TYPE",
    "DEFAULT_SCHEMAS",
    "DEFAULT_RESOURCE_TYPES",
]
