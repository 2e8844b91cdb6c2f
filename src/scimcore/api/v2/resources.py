from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Header, Path, Request, Response, status
from scimcore.dependencies import AttributesFilter, FilterParam, Pagination, Projection, RequestId, SortParams, Store
from scimcore.exceptions import InvalidSyntax
from scimcore.schemas import ErrorResponse, ListResponse, PatchRequest, ResourceType, SCIMSchemaUri
from scimcore.utils import logger, validate_etag
from .responses import SCIMResponse

router = APIRouter(tags=["Resources"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
}


def _respond(
    request: Request,
    resource_type: ResourceType,
    document: Dict[str, Any],
    projection,
    attributes,
    status_code: int = status.HTTP_200_OK,
    location: bool = False,
) -> SCIMResponse:
    headers = {"ETag": document["meta"]["version"]}
    if location:
        headers["Location"] = str(request.base_url).rstrip("/") + document["meta"]["location"]

    content = projection.filter_resource(document, resource_type, attributes[0], attributes[1])
    return SCIMResponse(status_code=status_code, content=content, headers=headers)


@router.post(
    "/{endpoint}",
    status_code=status.HTTP_201_CREATED,
    responses={**_ERRORS, 409: {"model": ErrorResponse, "description": "Uniqueness conflict"}},
)
async def create_resource(
    request: Request,
    store: Store,
    projection: Projection,
    endpoint: str = Path(..., description="Resource type endpoint"),
    document: Dict[str, Any] = Body(...),
    attributes: AttributesFilter = None,
    request_id: RequestId = None,
) -> SCIMResponse:
    resource_type = store.registry.resolve(endpoint)
    logger.info(f"Creating {resource_type.name} (request_id: {request_id})")

    created = await store.create(resource_type, document)
    return _respond(request, resource_type, created, projection, attributes, status.HTTP_201_CREATED, location=True)


@router.get("/{endpoint}", response_model=ListResponse, responses=_ERRORS)
async def list_resources(
    store: Store,
    projection: Projection,
    endpoint: str = Path(..., description="Resource type endpoint"),
    pagination: Pagination = None,
    filter_param: FilterParam = None,
    sort_params: SortParams = None,
    attributes: AttributesFilter = None,
) -> SCIMResponse:
    resource_type = store.registry.resolve(endpoint)
    logger.info(f"Listing {resource_type.name} (filter: {filter_param}, sort: {sort_params})")

    sort_by, sort_order = sort_params
    result = await store.list(
        resource_type,
        filter_string=filter_param,
        sort_by=sort_by,
        sort_order=sort_order,
        pagination=pagination,
    )

    resources = projection.filter_list_response(result.resources, resource_type, attributes[0], attributes[1])
    response = ListResponse(
        total_results=result.total_results,
        Resources=resources,
        start_index=result.start_index,
        items_per_page=result.items_per_page,
    )
    return SCIMResponse(content=response.model_dump(by_alias=True, mode="json"))


@router.get("/{endpoint}/{resource_id}", responses=_ERRORS)
async def get_resource(
    request: Request,
    store: Store,
    projection: Projection,
    endpoint: str = Path(..., description="Resource type endpoint"),
    resource_id: str = Path(..., description="Resource ID"),
    if_none_match: Optional[str] = Header(None, alias="If-None-Match"),
    attributes: AttributesFilter = None,
) -> Response:
    resource_type = store.registry.resolve(endpoint)
    logger.info(f"Getting {resource_type.name}: {resource_id}")

    document = await store.get(resource_type, resource_id)

    # Handle conditional retrieval (RFC 7644 Section 3.14)
    if if_none_match and not validate_etag(if_none_match, document["meta"]["version"], if_match=False):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": document["meta"]["version"]})

    return _respond(request, resource_type, document, projection, attributes)


@router.put(
    "/{endpoint}/{resource_id}",
    responses={
        **_ERRORS,
        409: {"model": ErrorResponse, "description": "Conflict"},
        412: {"model": ErrorResponse, "description": "Precondition failed"},
    },
)
async def replace_resource(
    request: Request,
    store: Store,
    projection: Projection,
    endpoint: str = Path(..., description="Resource type endpoint"),
    resource_id: str = Path(..., description="Resource ID"),
    document: Dict[str, Any] = Body(...),
    if_match: Optional[str] = Header(None, alias="If-Match"),
    attributes: AttributesFilter = None,
) -> SCIMResponse:
    resource_type = store.registry.resolve(endpoint)
    logger.info(f"Replacing {resource_type.name}: {resource_id}")

    replaced = await store.replace(resource_type, resource_id, document, version=if_match)
    return _respond(request, resource_type, replaced, projection, attributes)


@router.patch(
    "/{endpoint}/{resource_id}",
    responses={**_ERRORS, 412: {"model": ErrorResponse, "description": "Precondition failed"}},
)
async def patch_resource(
    request: Request,
    store: Store,
    projection: Projection,
    endpoint: str = Path(..., description="Resource type endpoint"),
    resource_id: str = Path(..., description="Resource ID"),
    patch_request: PatchRequest = Body(...),
    if_match: Optional[str] = Header(None, alias="If-Match"),
    attributes: AttributesFilter = None,
) -> SCIMResponse:
    resource_type = store.registry.resolve(endpoint)
    logger.info(f"Patching {resource_type.name}: {resource_id}")

    # Validate patch request
    if SCIMSchemaUri.PATCH_OP.value not in patch_request.schemas:
        raise InvalidSyntax("PATCH requests must declare the PatchOp message schema")

    patched = await store.patch(resource_type, resource_id, patch_request.Operations, version=if_match)
    return _respond(request, resource_type, patched, projection, attributes)


@router.delete(
    "/{endpoint}/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**_ERRORS, 412: {"model": ErrorResponse, "description": "Precondition failed"}},
)
async def delete_resource(
    store: Store,
    endpoint: str = Path(..., description="Resource type endpoint"),
    resource_id: str = Path(..., description="Resource ID"),
    if_match: Optional[str] = Header(None, alias="If-Match"),
) -> Response:
    resource_type = store.registry.resolve(endpoint)
    logger.info(f"Deleting {resource_type.name}: {resource_id}")

    await store.delete(resource_type, resource_id, version=if_match)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
