from typing import Any, Dict
from fastapi import APIRouter, Path
from scimcore.config import settings
from scimcore.dependencies import Registry
from scimcore.exceptions import NotFound, UnknownResourceType
from scimcore.schemas import ListResponse, ErrorResponse, ResourceType

router = APIRouter(tags=["ResourceTypes"])


def resource_type_representation(resource_type: ResourceType) -> Dict[str, Any]:
    representation = resource_type.model_dump(by_alias=True, exclude_none=True, mode="json", exclude={"meta"})
    representation["meta"] = {
        "location": f"{settings.api_prefix}/ResourceTypes/{resource_type.id}",
        "resourceType": "ResourceType",
    }
    return representation


@router.get(
    "/ResourceTypes",
    response_model=ListResponse,
    response_model_exclude_none=True,
    name="List Resource Types"
)
async def list_resource_types(registry: Registry) -> ListResponse:
    """List all supported resource types"""
    resources = [resource_type_representation(rt) for rt in registry.resource_types()]
    return ListResponse(
        total_results=len(resources),
        Resources=resources,
        start_index=1,
        items_per_page=len(resources)
    )


@router.get(
    "/ResourceTypes/{resource_type_id}",
    responses={
        404: {"model": ErrorResponse, "description": "ResourceType not found"}
    },
    name="Get Resource Type"
)
async def get_resource_type(
    registry: Registry,
    resource_type_id: str = Path(..., description="ResourceType ID")
) -> Dict[str, Any]:
    """Get a specific resource type by ID"""
    try:
        resource_type = registry.resolve(resource_type_id)
    except UnknownResourceType:
        raise NotFound("ResourceType", resource_type_id)
    return resource_type_representation(resource_type)
