"""
Tests for schema-driven validation of resource documents.
"""
import pytest
from scimcore.exceptions import (
    ImmutableAttributeModified,
    InvalidSyntax,
    MultiplePrimaryValues,
    MultiplicityMismatch,
    RequiredAttributeMissing,
    TypeMismatch,
    UnknownAttribute,
    ValidationErrors,
)
from scimcore.schemas import ENTERPRISE_USER_SCHEMA, GROUP_SCHEMA, USER_SCHEMA, SCIMSchemaUri
from scimcore.services import AttributeValidator, ValidationMode
from scimcore.services.validator import is_unassigned

USER = SCIMSchemaUri.USER.value
ENTERPRISE = SCIMSchemaUri.ENTERPRISE_USER.value


@pytest.fixture
def validator(registry):
    return AttributeValidator(registry, strict=True)


@pytest.fixture
def lenient(registry):
    return AttributeValidator(registry, strict=False)


def validate_user(validator, document, mode=ValidationMode.CREATE, existing=None):
    return validator.validate(USER_SCHEMA, [(ENTERPRISE_USER_SCHEMA, False)], document, mode, existing=existing)


class TestAttributeValidator:

    @pytest.fixture
    def sample_user(self):
        return {
            "schemas": [USER, ENTERPRISE],
            "externalId": "701984",
            "userName": "bjensen@example.com",
            "name": {"givenName": "Barbara", "familyName": "Jensen"},
            "active": True,
            "emails": [
                {"value": "bjensen@example.com", "type": "work", "primary": True},
                {"value": "babs@jensen.org", "type": "home"},
            ],
            ENTERPRISE: {"employeeNumber": "701984", "manager": {"value": "26118915"}},
        }

    def test_valid_user(self, validator, sample_user):
        result = validate_user(validator, sample_user)

        assert result["schemas"] == [USER, ENTERPRISE]
        assert result["userName"] == "bjensen@example.com"
        assert result["name"] == {"familyName": "Jensen", "givenName": "Barbara"}
        assert result["emails"][0] == {"value": "bjensen@example.com", "type": "work", "primary": True}
        assert result[ENTERPRISE]["manager"] == {"value": "26118915"}

    def test_revalidation_is_idempotent(self, validator, sample_user):
        first = validate_user(validator, sample_user)
        second = validate_user(validator, first)
        assert second == first

    def test_attribute_names_are_case_insensitive(self, validator):
        result = validate_user(validator, {"USERNAME": "bjensen", "Name": {"GIVENNAME": "Barbara"}})
        assert result["userName"] == "bjensen"
        assert result["name"] == {"givenName": "Barbara"}

    def test_missing_required_attribute(self, validator):
        with pytest.raises(RequiredAttributeMissing) as exc_info:
            validate_user(validator, {"displayName": "Babs"})
        assert exc_info.value.path == "userName"

    def test_type_mismatch(self, validator):
        with pytest.raises(TypeMismatch) as exc_info:
            validate_user(validator, {"userName": "bjensen", "active": "yes"})
        assert exc_info.value.scim_type == "invalidValue"

    def test_boolean_is_not_a_string(self, validator):
        with pytest.raises(TypeMismatch):
            validate_user(validator, {"userName": True})

    def test_multiplicity_mismatch(self, validator):
        with pytest.raises(MultiplicityMismatch):
            validate_user(validator, {"userName": "bjensen", "emails": {"value": "b@example.com"}})
        with pytest.raises(MultiplicityMismatch):
            validate_user(validator, {"userName": ["bjensen"]})

    def test_multiple_primary_values(self, validator):
        document = {
            "userName": "bjensen",
            "emails": [{"value": "a@x", "primary": True}, {"value": "b@x", "primary": True}],
        }
        with pytest.raises(MultiplePrimaryValues):
            validate_user(validator, document)

    def test_all_violations_are_reported(self, validator):
        with pytest.raises(ValidationErrors) as exc_info:
            validate_user(validator, {"active": "yes", "emails": "b@example.com"})

        error = exc_info.value
        assert {type(e) for e in error.errors} == {RequiredAttributeMissing, TypeMismatch, MultiplicityMismatch}
        assert error.status_code == 400
        assert "userName" in error.detail

    def test_unassigned_values_are_dropped(self, validator):
        result = validate_user(validator, {"userName": "bjensen", "emails": [], "name": {}, "title": None})
        assert "emails" not in result
        assert "name" not in result
        assert "title" not in result
        assert is_unassigned([]) and is_unassigned({}) and is_unassigned(None)
        assert not is_unassigned(False)

    def test_unknown_attribute_strict(self, validator):
        with pytest.raises(UnknownAttribute) as exc_info:
            validate_user(validator, {"userName": "bjensen", "shoeSize": 42})
        assert exc_info.value.path == "shoeSize"

    def test_unknown_sub_attribute_strict(self, validator):
        with pytest.raises(UnknownAttribute):
            validate_user(validator, {"userName": "bjensen", "name": {"nickName": "Babs"}})

    def test_unknown_attribute_lenient(self, lenient):
        result = validate_user(lenient, {"userName": "bjensen", "shoeSize": 42, "name": {"nick": "Babs"}})
        assert "shoeSize" not in result
        assert "name" not in result

    def test_unsupported_schema_uri_strict(self, validator, lenient):
        document = {"schemas": [USER, "urn:example:custom"], "userName": "bjensen"}
        with pytest.raises(InvalidSyntax):
            validate_user(validator, document)
        assert validate_user(lenient, document)["schemas"] == [USER]

    def test_schemas_are_recomputed(self, validator):
        result = validate_user(validator, {"schemas": [USER, ENTERPRISE], "userName": "bjensen"})
        assert result["schemas"] == [USER]

        result = validate_user(validator, {"userName": "bjensen", ENTERPRISE: {"department": "Tour"}})
        assert result["schemas"] == [USER, ENTERPRISE]

    def test_required_extension(self, validator):
        with pytest.raises(RequiredAttributeMissing) as exc_info:
            validator.validate(USER_SCHEMA, [(ENTERPRISE_USER_SCHEMA, True)], {"userName": "bjensen"})
        assert exc_info.value.path == ENTERPRISE

    def test_extension_must_be_an_object(self, validator):
        with pytest.raises(TypeMismatch):
            validate_user(validator, {"userName": "bjensen", ENTERPRISE: "Tour"})

    def test_read_only_attributes_ignored_on_create(self, validator):
        document = {
            "id": "client-chosen",
            "userName": "bjensen",
            "groups": [{"value": "e9e30dba", "display": "Admins"}],
            "meta": {"resourceType": "Robot"},
        }
        result = validate_user(validator, document)
        assert "id" not in result
        assert "groups" not in result
        assert "meta" not in result

    def test_read_only_attributes_keep_stored_value(self, validator):
        existing = {
            "schemas": [USER],
            "id": "2819c223",
            "userName": "bjensen",
            "groups": [{"value": "e9e30dba", "display": "Admins"}],
            "meta": {"resourceType": "User", "version": 'W/"1"'},
        }
        result = validate_user(
            validator,
            {"id": "other", "userName": "bjensen", "groups": []},
            ValidationMode.REPLACE,
            existing=existing,
        )
        assert result["id"] == "2819c223"
        assert result["groups"] == existing["groups"]
        assert result["meta"] == existing["meta"]

    def test_user_contract_payloads(self, validator):
        result = validate_user(validator, {
            "userName": "bjensen",
            "timezone": "America/Los_Angeles",
            "emails": [{"value": "bjensen@example.com", "primary": True}],
            "photos": [{"value": "https://photos.example.com/bjensen.jpg", "type": "thumbnail"}],
        })
        assert result["timezone"] == "America/Los_Angeles"
        assert "name" not in result
        assert result["photos"][0]["type"] == "thumbnail"

    def test_write_only_password_is_accepted(self, validator):
        result = validate_user(validator, {"userName": "bjensen", "password": "t1meMa$heen"})
        assert result["password"] == "t1meMa$heen"

    def test_group_member_value_is_immutable(self, validator):
        existing = {"displayName": "Admins", "members": [{"value": "u-1", "type": "User"}]}

        result = validator.validate(
            GROUP_SCHEMA, [], {"displayName": "Admins", "members": [{"value": "u-1", "type": "User"}]},
            ValidationMode.REPLACE, existing=existing,
        )
        assert result["members"] == [{"value": "u-1", "type": "User"}]

        with pytest.raises(ImmutableAttributeModified):
            validator.validate(
                GROUP_SCHEMA, [], {"displayName": "Admins", "members": [{"value": "u-1", "type": "Group"}]},
                ValidationMode.REPLACE, existing=existing,
            )


class TestMutability:
    """immutable and writeOnce semantics on a synthetic schema."""

    @pytest.fixture
    def stored(self, validator, device_schema):
        return validator.validate(device_schema, [], {"serialNumber": "SN-1", "label": "rack-7"})

    def test_immutable_change_rejected(self, validator, device_schema, stored):
        with pytest.raises(ImmutableAttributeModified) as exc_info:
            validator.validate(device_schema, [], {"serialNumber": "SN-2"}, ValidationMode.REPLACE, existing=stored)
        assert exc_info.value.scim_type == "mutability"

    def test_immutable_same_value_accepted(self, validator, device_schema, stored):
        result = validator.validate(
            device_schema, [], {"serialNumber": "SN-1", "label": "rack-7", "firmware": "2.1"},
            ValidationMode.REPLACE, existing=stored,
        )
        assert result["serialNumber"] == "SN-1"
        assert result["firmware"] == "2.1"

    def test_immutable_absent_on_replace_keeps_stored(self, validator, device_schema, stored):
        result = validator.validate(device_schema, [], {"firmware": "2.1"}, ValidationMode.REPLACE, existing=stored)
        assert result["serialNumber"] == "SN-1"
        assert result["label"] == "rack-7"

    def test_immutable_removal_rejected_in_partial_check(self, validator, device_schema, stored):
        with pytest.raises(ImmutableAttributeModified):
            validator.validate(device_schema, [], {"label": "rack-7"}, ValidationMode.PARTIAL_CHECK, existing=stored)

    def test_write_once_change_rejected(self, validator, device_schema, stored):
        with pytest.raises(ImmutableAttributeModified):
            validator.validate(
                device_schema, [], {"serialNumber": "SN-1", "label": "rack-8"},
                ValidationMode.REPLACE, existing=stored,
            )

    def test_write_once_cannot_be_introduced_after_create(self, validator, device_schema):
        stored = validator.validate(device_schema, [], {"serialNumber": "SN-1"})
        with pytest.raises(ImmutableAttributeModified):
            validator.validate(
                device_schema, [], {"serialNumber": "SN-1", "label": "late"},
                ValidationMode.REPLACE, existing=stored,
            )

    def test_scalar_kinds(self, validator, device_schema):
        result = validator.validate(
            device_schema,
            [],
            {
                "serialNumber": "SN-1",
                "ports": 4.0,
                "weight": 3,
                "purchased": "2024-05-01T10:00:00Z",
                "certificate": "TUlJRERqQ0NBZktnQXdJQkFnSUJBVEFOQmc=",
                "tags": ["edge", "lab"],
            },
        )
        assert result["ports"] == 4
        assert result["weight"] == 3.0
        assert result["purchased"] == "2024-05-01T10:00:00Z"
        assert result["tags"] == ["edge", "lab"]

    @pytest.mark.parametrize("attribute,value", [
        ("ports", 4.5),
        ("ports", True),
        ("weight", "heavy"),
        ("purchased", "last tuesday"),
        ("certificate", "not base64!"),
    ])
    def test_scalar_kind_violations(self, validator, device_schema, attribute, value):
        with pytest.raises(TypeMismatch):
            validator.validate(device_schema, [], {"serialNumber": "SN-1", attribute: value})
