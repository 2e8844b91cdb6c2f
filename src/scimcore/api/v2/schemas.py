from typing import Any, Dict
from fastapi import APIRouter, Path
from scimcore.config import settings
from scimcore.dependencies import Registry
from scimcore.schemas import ListResponse, ErrorResponse, Schema, SCIMSchemaUri

router = APIRouter(tags=["Schemas"])


def schema_representation(schema: Schema) -> Dict[str, Any]:
    """Discovery form of a schema (RFC 7643 Section 7)."""
    representation = {"schemas": [SCIMSchemaUri.SCHEMA.value]}
    representation.update(schema.model_dump(by_alias=True, exclude_none=True, mode="json", exclude={"meta"}))
    representation["meta"] = {
        "resourceType": "Schema",
        "location": f"{settings.api_prefix}/Schemas/{schema.id}",
    }
    return representation


@router.get(
    "/Schemas",
    response_model=ListResponse,
    response_model_exclude_none=True,
    name="List Schemas"
)
async def list_schemas(registry: Registry) -> ListResponse:
    """List all supported schemas"""
    resources = [schema_representation(schema) for schema in registry.schemas()]
    return ListResponse(
        total_results=len(resources),
        Resources=resources,
        start_index=1,
        items_per_page=len(resources)
    )


@router.get(
    "/Schemas/{schema_id}",
    responses={
        404: {"model": ErrorResponse, "description": "Schema not found"}
    },
    name="Get Schema"
)
async def get_schema(
    registry: Registry,
    schema_id: str = Path(..., description="Schema URI")
) -> Dict[str, Any]:
    """Get a specific schema by its URI"""
    return schema_representation(registry.schema(schema_id))
