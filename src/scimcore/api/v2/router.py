from fastapi import APIRouter
from scimcore.config import settings
from .responses import SCIMResponse
from .service_provider_config import router as sp_config_router
from .schemas import router as schemas_router
from .resource_types import router as resource_types_router
from .resources import router as resources_router

# Create the main v2 router
router = APIRouter(prefix=settings.api_prefix, default_response_class=SCIMResponse)

# Discovery endpoints first: the generic resource routes match any endpoint name
router.include_router(sp_config_router)
router.include_router(schemas_router)
router.include_router(resource_types_router)
router.include_router(resources_router)
