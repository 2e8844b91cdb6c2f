from typing import Optional, Annotated
from fastapi import Depends, Query, Request
from scimcore.config import settings
from scimcore.services import ResourceStore, SchemaRegistry
from scimcore.utils import AttributeFilter, PaginationParams


def get_pagination_params(
    start_index: Annotated[int, Query(alias="startIndex")] = 1,
    count: Annotated[int, Query()] = settings.default_page_size,
) -> PaginationParams:
    # Out-of-range values are clamped rather than rejected (RFC 7644 Section 3.4.2.4)
    return PaginationParams(start_index=start_index, count=count)


def get_attributes_params(
    attributes: Annotated[Optional[str], Query()] = None,
    excluded_attributes: Annotated[Optional[str], Query(alias="excludedAttributes")] = None,
) -> tuple[Optional[list[str]], Optional[list[str]]]:
    attrs = [a.strip() for a in attributes.split(",") if a.strip()] if attributes else None
    excluded = [a.strip() for a in excluded_attributes.split(",") if a.strip()] if excluded_attributes else None
    return attrs, excluded


def get_filter_param(filter: Annotated[Optional[str], Query()] = None) -> Optional[str]:
    return filter


def get_sort_params(
    sort_by: Annotated[Optional[str], Query(alias="sortBy")] = None,
    sort_order: Annotated[Optional[str], Query(alias="sortOrder")] = None,
) -> tuple[Optional[str], Optional[str]]:
    return sort_by, sort_order


async def get_request_id(request: Request) -> str:
    return request.headers.get("X-Request-ID", "unknown")


def get_registry(request: Request) -> SchemaRegistry:
    return request.app.state.registry


def get_store(request: Request) -> ResourceStore:
    return request.app.state.store


def get_attribute_filter(request: Request) -> AttributeFilter:
    return AttributeFilter(request.app.state.registry)


# Type aliases for dependency injection
Pagination = Annotated[PaginationParams, Depends(get_pagination_params)]
AttributesFilter = Annotated[tuple[Optional[list[str]], Optional[list[str]]], Depends(get_attributes_params)]
FilterParam = Annotated[Optional[str], Depends(get_filter_param)]
SortParams = Annotated[tuple[Optional[str], Optional[str]], Depends(get_sort_params)]
RequestId = Annotated[str, Depends(get_request_id)]
Registry = Annotated[SchemaRegistry, Depends(get_registry)]
Store = Annotated[ResourceStore, Depends(get_store)]
Projection = Annotated[AttributeFilter, Depends(get_attribute_filter)]
