from typing import List, Dict, Any, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator
from enum import Enum


class AttributeType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    INTEGER = "integer"
    DATETIME = "dateTime"
    BINARY = "binary"
    REFERENCE = "reference"
    COMPLEX = "complex"


class Mutability(str, Enum):
    READ_ONLY = "readOnly"
    READ_WRITE = "readWrite"
    IMMUTABLE = "immutable"
    WRITE_ONCE = "writeOnce"
    WRITE_ONLY = "writeOnly"


class Returned(str, Enum):
    ALWAYS = "always"
    NEVER = "never"
    DEFAULT = "default"
    REQUEST = "request"


class Uniqueness(str, Enum):
    NONE = "none"
    SERVER = "server"
    GLOBAL = "global"


class SchemaAttribute(BaseModel):
    """A single attribute definition; complex attributes nest their sub-attributes."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    type: AttributeType
    multi_valued: bool = Field(False, alias="multiValued")
    description: Optional[str] = None
    required: bool = False
    canonical_values: Optional[List[str]] = Field(None, alias="canonicalValues")
    case_exact: bool = Field(False, alias="caseExact")
    mutability: Mutability = Mutability.READ_WRITE
    returned: Returned = Returned.DEFAULT
    uniqueness: Uniqueness = Uniqueness.NONE
    sub_attributes: Optional[List["SchemaAttribute"]] = Field(None, alias="subAttributes")
    reference_types: Optional[List[str]] = Field(None, alias="referenceTypes")

    @model_validator(mode="after")
    def check_sub_attributes(self) -> "SchemaAttribute":
        if self.type == AttributeType.COMPLEX:
            if not self.sub_attributes:
                raise ValueError(f"Complex attribute '{self.name}' must declare at least one sub-attribute")
            names = [sub.name.lower() for sub in self.sub_attributes]
            if len(names) != len(set(names)):
                raise ValueError(f"Complex attribute '{self.name}' declares duplicate sub-attributes")
        elif self.sub_attributes:
            raise ValueError(f"Attribute '{self.name}' of type '{self.type.value}' cannot declare sub-attributes")
        return self

    @property
    def is_complex(self) -> bool:
        return self.type == AttributeType.COMPLEX

    def sub_attribute(self, name: str) -> Optional["SchemaAttribute"]:
        # Attribute names are case-insensitive (RFC 7643 Section 2.1)
        for sub in self.sub_attributes or []:
            if sub.name.lower() == name.lower():
                return sub
        return None


class Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    attributes: List[SchemaAttribute]
    meta: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_attribute_names(self) -> "Schema":
        names = [attr.name.lower() for attr in self.attributes]
        if len(names) != len(set(names)):
            raise ValueError(f"Schema '{self.id}' declares duplicate attributes")
        return self

    def attribute(self, name: str) -> Optional[SchemaAttribute]:
        for attr in self.attributes:
            if attr.name.lower() == name.lower():
                return attr
        return None


class SchemaExtension(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schema_uri: str = Field(..., alias="schema")
    required: bool = False


class ResourceType(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schemas: List[str] = ["urn:ietf:params:scim:schemas:core:2.0:ResourceType"]
    id: str
    name: str
    endpoint: str
    description: Optional[str] = None
    schema_uri: str = Field(..., alias="schema")
    schema_extensions: List[SchemaExtension] = Field(default_factory=list, alias="schemaExtensions")
    meta: Optional[Dict[str, Any]] = None


class ServiceProviderConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schemas: List[str] = ["urn:ietf:params:scim:schemas:core:2.0:ServiceProviderConfig"]
    documentation_uri: Optional[str] = Field(None, alias="documentationUri")
    patch: Dict[str, bool]
    bulk: Dict[str, Any]
    filter: Dict[str, Any]
    change_password: Dict[str, bool] = Field(..., alias="changePassword")
    sort: Dict[str, bool]
    etag: Dict[str, bool]
    authentication_schemes: List[Dict[str, str]] = Field(..., alias="authenticationSchemes")
    meta: Optional[Dict[str, Any]] = None
