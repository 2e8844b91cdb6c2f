from fastapi import APIRouter
from scimcore.config import settings
from scimcore.dependencies import Registry
from scimcore.schemas import Mutability, SCIMSchemaUri
from scimcore.schemas.meta import ServiceProviderConfig
from scimcore.services import SchemaRegistry

router = APIRouter(tags=["ServiceProviderConfig"])


def supports_password_change(registry: SchemaRegistry) -> bool:
    """True when some resource type's base schema accepts a client-written ``password``."""
    for resource_type in registry.resource_types():
        password = registry.base_schema(resource_type).attribute("password")
        if password is not None and password.mutability != Mutability.READ_ONLY:
            return True
    return False


def build_service_provider_config(registry: SchemaRegistry) -> ServiceProviderConfig:
    # Bulk requests are not served, so no limits are advertised for them
    return ServiceProviderConfig(
        schemas=[SCIMSchemaUri.SERVICE_PROVIDER_CONFIG.value],
        documentation_uri=settings.documentation_uri,
        patch={"supported": True},
        bulk={"supported": False, "maxOperations": 0, "maxPayloadSize": 0},
        filter={"supported": True, "maxResults": settings.max_page_size},
        change_password={"supported": supports_password_change(registry)},
        sort={"supported": True},
        etag={"supported": True},
        authentication_schemes=[],
        meta={
            "location": f"{settings.api_prefix}/ServiceProviderConfig",
            "resourceType": "ServiceProviderConfig",
        },
    )


@router.get(
    "/ServiceProviderConfig",
    response_model=ServiceProviderConfig,
    response_model_exclude_none=True,
    name="Get Service Provider Configuration"
)
async def get_service_provider_config(registry: Registry) -> ServiceProviderConfig:
    return build_service_provider_config(registry)
