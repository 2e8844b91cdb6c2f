from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from enum import Enum


class SCIMSchemaUri(str, Enum):
    USER = "urn:ietf:params:scim:schemas:core:2.0:User"
    GROUP = "urn:ietf:params:scim:schemas:core:2.0:Group"
    ENTERPRISE_USER = "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"
    SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Schema"
    RESOURCE_TYPE = "urn:ietf:params:scim:schemas:core:2.0:ResourceType"
    SERVICE_PROVIDER_CONFIG = "urn:ietf:params:scim:schemas:core:2.0:ServiceProviderConfig"
    LIST_RESPONSE = "urn:ietf:params:scim:api:messages:2.0:ListResponse"
    ERROR = "urn:ietf:params:scim:api:messages:2.0:Error"
    PATCH_OP = "urn:ietf:params:scim:api:messages:2.0:PatchOp"


class ListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schemas: List[str] = [SCIMSchemaUri.LIST_RESPONSE.value]
    total_results: int = Field(..., alias="totalResults")
    Resources: List[Dict[str, Any]]
    start_index: int = Field(1, alias="startIndex")
    items_per_page: int = Field(..., alias="itemsPerPage")


class PatchOperation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    op: str
    path: Optional[str] = None
    value: Optional[Any] = None

    @field_validator("op")
    def normalize_op(cls, v: str) -> str:
        # Okta and Azure AD send "Add"/"Replace"; unsupported ops are rejected by the patch applier
        return v.strip().lower()


class PatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schemas: List[str]
    Operations: List[PatchOperation]
