"""
SCIM core schema declarations (RFC 7643 Sections 3.1, 4, 8.7.1).

Declarations only; the registry that serves them lives in
``scimcore.services.registry``.
"""
from typing import List, Optional
from .meta import (
    AttributeType,
    Mutability,
    Returned,
    ResourceType,
    Schema,
    SchemaAttribute,
    SchemaExtension,
    Uniqueness,
)
from .base import SCIMSchemaUri


def _string(name: str, description: str, **kwargs) -> SchemaAttribute:
    return SchemaAttribute(name=name, type=AttributeType.STRING, description=description, **kwargs)


def _multi_valued(
    name: str,
    description: str,
    value_type: AttributeType = AttributeType.STRING,
    type_values: Optional[List[str]] = None,
    mutability: Mutability = Mutability.READ_WRITE,
) -> SchemaAttribute:
    """The value/display/type/primary shape shared by User collections such as emails."""
    return SchemaAttribute(
        name=name,
        type=AttributeType.COMPLEX,
        multi_valued=True,
        description=description,
        mutability=mutability,
        sub_attributes=[
            SchemaAttribute(name="value", type=value_type, description=f"Value of the {name} entry", mutability=mutability),
            _string("display", "A human-readable name, primarily used for display purposes", mutability=mutability),
            _string("type", "A label indicating the attribute's function", canonical_values=type_values, mutability=mutability),
            SchemaAttribute(
                name="primary",
                type=AttributeType.BOOLEAN,
                description="Indicates the primary or preferred value for this attribute",
                mutability=mutability,
            ),
        ],
    )


# Attributes carried by every resource regardless of its schema (RFC 7643 Section 3.1)
COMMON_ATTRIBUTES: List[SchemaAttribute] = [
    _string(
        "id",
        "Unique identifier for the SCIM resource as defined by the service provider",
        case_exact=True,
        mutability=Mutability.READ_ONLY,
        returned=Returned.ALWAYS,
        uniqueness=Uniqueness.SERVER,
    ),
    _string(
        "externalId",
        "An identifier for the resource as defined by the provisioning client",
        case_exact=True,
    ),
    SchemaAttribute(
        name="meta",
        type=AttributeType.COMPLEX,
        description="Resource metadata",
        mutability=Mutability.READ_ONLY,
        sub_attributes=[
            _string("resourceType", "The name of the resource type of the resource", case_exact=True, mutability=Mutability.READ_ONLY),
            SchemaAttribute(name="created", type=AttributeType.DATETIME, description="When the resource was added", mutability=Mutability.READ_ONLY),
            SchemaAttribute(name="lastModified", type=AttributeType.DATETIME, description="When the resource was last updated", mutability=Mutability.READ_ONLY),
            SchemaAttribute(name="location", type=AttributeType.REFERENCE, description="The URI of the resource", case_exact=True, mutability=Mutability.READ_ONLY),
            _string("version", "The version of the resource", case_exact=True, mutability=Mutability.READ_ONLY),
        ],
    ),
]


def common_attribute(name: str) -> Optional[SchemaAttribute]:
    for attr in COMMON_ATTRIBUTES:
        if attr.name.lower() == name.lower():
            return attr
    return None


USER_SCHEMA = Schema(
    id=SCIMSchemaUri.USER.value,
    name="User",
    description="User Account",
    attributes=[
        _string("userName", "Unique identifier for the User", required=True, uniqueness=Uniqueness.SERVER),
        SchemaAttribute(
            name="name",
            type=AttributeType.COMPLEX,
            description="The components of the user's real name",
            sub_attributes=[
                _string("formatted", "The full name"),
                _string("familyName", "The family name"),
                _string("givenName", "The given name"),
                _string("middleName", "The middle name(s)"),
                _string("honorificPrefix", "The honorific prefix(es), or title"),
                _string("honorificSuffix", "The honorific suffix(es)"),
            ],
        ),
        _string("displayName", "The name of the user, suitable for display to end-users"),
        _string("nickName", "The casual way to address the user in real life"),
        SchemaAttribute(
            name="profileUrl",
            type=AttributeType.REFERENCE,
            description="A fully qualified URL pointing to a page representing the user's online profile",
            reference_types=["external"],
        ),
        _string("title", "The user's title, such as Vice President"),
        _string("userType", "Used to identify the relationship between the organization and the user"),
        _string("preferredLanguage", "Indicates the user's preferred written or spoken language"),
        _string("locale", "Used to indicate the User's default location for purposes of localizing items"),
        _string("timezone", "The User's time zone in the 'Olson' time zone database format"),
        SchemaAttribute(
            name="active",
            type=AttributeType.BOOLEAN,
            description="A Boolean value indicating the user's administrative status",
        ),
        _string(
            "password",
            "The user's cleartext password",
            mutability=Mutability.WRITE_ONLY,
            returned=Returned.NEVER,
        ),
        _multi_valued("emails", "Email addresses for the user", type_values=["work", "home", "other"]),
        _multi_valued("phoneNumbers", "Phone numbers for the user", type_values=["work", "home", "mobile", "fax", "pager", "other"]),
        _multi_valued("ims", "Instant messaging addresses for the user", type_values=["aim", "gtalk", "icq", "xmpp", "msn", "skype", "qq", "yahoo"]),
        _multi_valued("photos", "URLs of photos of the user", value_type=AttributeType.REFERENCE, type_values=["photo", "thumbnail"]),
        SchemaAttribute(
            name="addresses",
            type=AttributeType.COMPLEX,
            multi_valued=True,
            description="A physical mailing address for this user",
            sub_attributes=[
                _string("formatted", "The full mailing address"),
                _string("streetAddress", "The full street address component"),
                _string("locality", "The city or locality component"),
                _string("region", "The state or region component"),
                _string("postalCode", "The zip code or postal code component"),
                _string("country", "The country name component"),
                _string("type", "A label indicating the attribute's function", canonical_values=["work", "home", "other"]),
                SchemaAttribute(name="primary", type=AttributeType.BOOLEAN, description="Indicates the primary mailing address"),
            ],
        ),
        _multi_valued("entitlements", "A list of entitlements for the user"),
        _multi_valued("roles", "A list of roles for the user"),
        _multi_valued("x509Certificates", "A list of certificates issued to the user", value_type=AttributeType.BINARY),
        SchemaAttribute(
            name="groups",
            type=AttributeType.COMPLEX,
            multi_valued=True,
            description="A list of groups to which the user belongs",
            mutability=Mutability.READ_ONLY,
            sub_attributes=[
                _string("value", "The identifier of the User's group", mutability=Mutability.READ_ONLY),
                SchemaAttribute(
                    name="$ref",
                    type=AttributeType.REFERENCE,
                    description="The URI of the corresponding Group resource",
                    mutability=Mutability.READ_ONLY,
                    reference_types=["Group"],
                ),
                _string("display", "A human-readable name of the group", mutability=Mutability.READ_ONLY),
                _string("type", "Direct or indirect membership", canonical_values=["direct", "indirect"], mutability=Mutability.READ_ONLY),
            ],
        ),
    ],
    meta={
        "resourceType": "Schema",
        "location": f"/Schemas/{SCIMSchemaUri.USER.value}",
    },
)


GROUP_SCHEMA = Schema(
    id=SCIMSchemaUri.GROUP.value,
    name="Group",
    description="Group",
    attributes=[
        _string("displayName", "A human-readable name for the Group", required=True, uniqueness=Uniqueness.SERVER),
        SchemaAttribute(
            name="members",
            type=AttributeType.COMPLEX,
            multi_valued=True,
            description="A list of members of the Group",
            sub_attributes=[
                _string("value", "Identifier of the member of this Group", required=True, case_exact=True, mutability=Mutability.IMMUTABLE),
                SchemaAttribute(
                    name="$ref",
                    type=AttributeType.REFERENCE,
                    description="The URI corresponding to a SCIM resource that is a member of this Group",
                    mutability=Mutability.IMMUTABLE,
                    reference_types=["User", "Group"],
                ),
                _string("type", "A label indicating the type of resource", canonical_values=["User", "Group"], mutability=Mutability.IMMUTABLE),
                _string("display", "A human-readable name of the member", mutability=Mutability.READ_ONLY),
            ],
        ),
    ],
    meta={
        "resourceType": "Schema",
        "location": f"/Schemas/{SCIMSchemaUri.GROUP.value}",
    },
)


ENTERPRISE_USER_SCHEMA = Schema(
    id=SCIMSchemaUri.ENTERPRISE_USER.value,
    name="EnterpriseUser",
    description="Enterprise User",
    attributes=[
        _string("employeeNumber", "Numeric or alphanumeric identifier assigned to a person"),
        _string("costCenter", "Identifies the name of a cost center"),
        _string("organization", "Identifies the name of an organization"),
        _string("division", "Identifies the name of a division"),
        _string("department", "Identifies the name of a department"),
        SchemaAttribute(
            name="manager",
            type=AttributeType.COMPLEX,
            description="The User's manager",
            sub_attributes=[
                _string("value", "The id of the SCIM resource representing the User's manager"),
                SchemaAttribute(
                    name="$ref",
                    type=AttributeType.REFERENCE,
                    description="The URI of the SCIM resource representing the User's manager",
                    reference_types=["User"],
                ),
                _string("displayName", "The displayName of the User's manager", mutability=Mutability.READ_ONLY),
            ],
        ),
    ],
    meta={
        "resourceType": "Schema",
        "location": f"/Schemas/{SCIMSchemaUri.ENTERPRISE_USER.value}",
    },
)


USER_RESOURCE_TYPE = ResourceType(
    id="User",
    name="User",
    endpoint="/Users",
    description="User Account",
    schema_uri=SCIMSchemaUri.USER.value,
    schema_extensions=[SchemaExtension(schema_uri=SCIMSchemaUri.ENTERPRISE_USER.value, required=False)],
    meta={
        "location": "/ResourceTypes/User",
        "resourceType": "ResourceType",
    },
)

GROUP_RESOURCE_TYPE = ResourceType(
    id="Group",
    name="Group",
    endpoint="/Groups",
    description="Group",
    schema_uri=SCIMSchemaUri.GROUP.value,
    meta={
        "location": "/ResourceTypes/Group",
        "resourceType": "ResourceType",
    },
)

DEFAULT_SCHEMAS = [USER_SCHEMA, GROUP_SCHEMA, ENTERPRISE_USER_SCHEMA]
DEFAULT_RESOURCE_TYPES = [USER_RESOURCE_TYPE, GROUP_RESOURCE_TYPE]
