import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from scimcore.main import create_app
from scimcore.schemas import (
    AttributeType,
    Mutability,
    ResourceType,
    Schema,
    SchemaAttribute,
    Uniqueness,
)
from scimcore.services import ResourceStore, SchemaRegistry, build_default_registry

DEVICE_SCHEMA_URI = "urn:example:params:scim:schemas:core:2.0:Device"
SENSOR_SCHEMA_URI = "urn:example:params:scim:schemas:core:2.0:Sensor"


def _serial_number() -> SchemaAttribute:
    return SchemaAttribute(
        name="serialNumber",
        type=AttributeType.STRING,
        required=True,
        case_exact=True,
        mutability=Mutability.IMMUTABLE,
        uniqueness=Uniqueness.GLOBAL,
    )


@pytest.fixture
def registry() -> SchemaRegistry:
    return build_default_registry()


@pytest.fixture
def store(registry) -> ResourceStore:
    return ResourceStore(registry)


@pytest.fixture
def user_type(registry) -> ResourceType:
    return registry.resolve("User")


@pytest.fixture
def group_type(registry) -> ResourceType:
    return registry.resolve("Group")


@pytest.fixture
def device_schema() -> Schema:
    """Synthetic schema covering the mutabilities and kinds the core schemas lack."""
    return Schema(
        id=DEVICE_SCHEMA_URI,
        name="Device",
        attributes=[
            _serial_number(),
            SchemaAttribute(name="label", type=AttributeType.STRING, mutability=Mutability.WRITE_ONCE),
            SchemaAttribute(name="firmware", type=AttributeType.STRING),
            SchemaAttribute(name="ports", type=AttributeType.INTEGER),
            SchemaAttribute(name="weight", type=AttributeType.DECIMAL),
            SchemaAttribute(name="purchased", type=AttributeType.DATETIME),
            SchemaAttribute(name="certificate", type=AttributeType.BINARY),
            SchemaAttribute(name="tags", type=AttributeType.STRING, multi_valued=True),
        ],
    )


@pytest.fixture
def device_registry(device_schema) -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.register(device_schema)
    registry.register(Schema(id=SENSOR_SCHEMA_URI, name="Sensor", attributes=[_serial_number()]))
    registry.register_resource_type(
        ResourceType(id="Device", name="Device", endpoint="/Devices", schema_uri=DEVICE_SCHEMA_URI)
    )
    registry.register_resource_type(
        ResourceType(id="Sensor", name="Sensor", endpoint="/Sensors", schema_uri=SENSOR_SCHEMA_URI)
    )
    return registry


@pytest_asyncio.fixture
async def client(registry, store):
    app = create_app(registry=registry, store=store)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
