import copy
import pytest
from scimcore.exceptions import (
    ImmutableAttributeModified,
    MalformedPath,
    NoTargetMatched,
    PathRequired,
    RequiredAttributeMissing,
    TargetAlreadyExists,
    TypeMismatch,
    UnknownAttribute,
    UnsupportedOperation,
    ValidationErrors,
)
from scimcore.schemas import PatchOperation, SCIMSchemaUri
from scimcore.services import PatchApplier

USER = SCIMSchemaUri.USER.value
ENTERPRISE = SCIMSchemaUri.ENTERPRISE_USER.value


@pytest.fixture
def patcher(registry):
    return PatchApplier(registry)


@pytest.fixture
def stored_user():
    return {
        "schemas": [USER],
        "id": "2819c223",
        "userName": "bjensen",
        "displayName": "Babs",
        "emails": [
            {"value": "bjensen@example.com", "type": "work", "primary": True},
            {"value": "babs@jensen.org", "type": "home"},
        ],
    }


@pytest.fixture
def stored_group():
    return {
        "schemas": [SCIMSchemaUri.GROUP.value],
        "id": "e9e30dba",
        "displayName": "Admins",
        "members": [{"value": "u-1", "type": "User"}, {"value": "u-2", "type": "User"}],
    }


class TestPatchApplier:

    def test_replace_simple_attribute(self, patcher, user_type, stored_user):
        original = copy.deepcopy(stored_user)
        result = patcher.apply(user_type, stored_user, [{"op": "replace", "path": "displayName", "value": "Barbara"}])

        assert result["displayName"] == "Barbara"
        assert result["id"] == "2819c223"
        assert stored_user == original

    def test_accepts_operation_models(self, patcher, user_type, stored_user):
        operation = PatchOperation(op="Replace", path="displayName", value="Barbara")
        assert patcher.apply(user_type, stored_user, [operation])["displayName"] == "Barbara"

    def test_add_appends_to_multi_valued(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [
            {"op": "add", "path": "emails", "value": [{"value": "b@work.example.com", "type": "other"}]}
        ])
        assert [email["value"] for email in result["emails"]] == [
            "bjensen@example.com",
            "babs@jensen.org",
            "b@work.example.com",
        ]

    def test_add_existing_value_merges(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [
            {"op": "add", "path": "emails", "value": {"value": "babs@jensen.org", "display": "Babs"}}
        ])
        assert len(result["emails"]) == 2
        assert result["emails"][1] == {"value": "babs@jensen.org", "display": "Babs", "type": "home"}

    def test_replace_filtered_sub_attribute(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [
            {"op": "replace", "path": 'emails[type eq "work"].value', "value": "barbara@example.com"}
        ])
        assert result["emails"][0]["value"] == "barbara@example.com"
        assert result["emails"][1]["value"] == "babs@jensen.org"

    def test_add_filtered_without_match_appends_seeded_element(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [
            {"op": "add", "path": 'emails[type eq "other"].value', "value": "babs@other.org"}
        ])
        assert result["emails"][-1] == {"value": "babs@other.org", "type": "other"}

    def test_replace_filtered_without_match(self, patcher, user_type, stored_user):
        with pytest.raises(NoTargetMatched) as exc_info:
            patcher.apply(user_type, stored_user, [
                {"op": "replace", "path": 'emails[type eq "other"].value', "value": "babs@other.org"}
            ])
        assert exc_info.value.scim_type == "noTarget"

    @pytest.mark.parametrize("path,value", [
        ('emails[type eq "work"]', {"value": "other@example.com"}),
        ('emails[type eq "work"].value', "other@example.com"),
    ])
    def test_add_filtered_with_match_is_rejected(self, patcher, user_type, stored_user, path, value):
        original = copy.deepcopy(stored_user)
        with pytest.raises(TargetAlreadyExists) as exc_info:
            patcher.apply(user_type, stored_user, [{"op": "add", "path": path, "value": value}])

        assert exc_info.value.scim_type == "invalidValue"
        assert exc_info.value.status_code == 400
        assert stored_user == original

    def test_filtered_replace_of_immutable_member_value(self, patcher, group_type, stored_group):
        with pytest.raises(ImmutableAttributeModified):
            patcher.apply(group_type, stored_group, [
                {"op": "replace", "path": 'members[value eq "u-1"].value', "value": "u-9"}
            ])

    def test_filtered_replace_with_same_immutable_value(self, patcher, group_type, stored_group):
        result = patcher.apply(group_type, stored_group, [
            {"op": "replace", "path": 'members[value eq "u-1"].value', "value": "u-1"}
        ])
        assert result["members"] == stored_group["members"]

    def test_unfiltered_sub_attribute_write_of_immutable_member_type(self, patcher, group_type, stored_group):
        with pytest.raises(ImmutableAttributeModified):
            patcher.apply(group_type, stored_group, [{"op": "replace", "path": "members.type", "value": "Group"}])

    def test_filtered_remove_of_immutable_sub_attribute(self, patcher, group_type, stored_group):
        with pytest.raises(ImmutableAttributeModified):
            patcher.apply(group_type, stored_group, [{"op": "remove", "path": 'members[value eq "u-1"].value'}])

    def test_filtered_element_replace_keeps_immutable_sub_attributes(self, patcher, group_type, stored_group):
        result = patcher.apply(group_type, stored_group, [
            {"op": "replace", "path": 'members[value eq "u-1"]', "value": {"value": "u-1"}}
        ])
        assert result["members"][0] == {"value": "u-1", "type": "User"}

        with pytest.raises(ImmutableAttributeModified):
            patcher.apply(group_type, stored_group, [
                {"op": "replace", "path": 'members[value eq "u-1"]', "value": {"value": "u-9", "type": "User"}}
            ])

    def test_remove_filtered_elements(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [{"op": "remove", "path": 'emails[type eq "home"]'}])
        assert result["emails"] == [{"value": "bjensen@example.com", "type": "work", "primary": True}]

    def test_remove_filtered_sub_attribute(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [{"op": "remove", "path": 'emails[primary eq true].primary'}])
        assert "primary" not in result["emails"][0]

    def test_remove_without_match_is_noop(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [{"op": "remove", "path": 'emails[type eq "other"]'}])
        assert result["emails"] == stored_user["emails"]

    def test_remove_whole_attribute(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [{"op": "remove", "path": "emails"}])
        assert "emails" not in result

    def test_replace_with_null_removes(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [{"op": "replace", "path": "displayName", "value": None}])
        assert "displayName" not in result

    def test_remove_members_by_value(self, patcher, group_type, stored_group):
        result = patcher.apply(group_type, stored_group, [
            {"op": "remove", "path": "members", "value": [{"value": "u-1"}]}
        ])
        assert result["members"] == [{"value": "u-2", "type": "User"}]

    def test_add_without_path_merges_keys(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [
            {"op": "add", "value": {"nickName": "Babs", ENTERPRISE: {"department": "Tour Operations"}}}
        ])
        assert result["nickName"] == "Babs"
        assert result[ENTERPRISE] == {"department": "Tour Operations"}
        assert result["schemas"] == [USER, ENTERPRISE]

    def test_extension_attribute_path(self, patcher, user_type, stored_user):
        result = patcher.apply(user_type, stored_user, [
            {"op": "add", "path": f"{ENTERPRISE}:manager.value", "value": "26118915"}
        ])
        assert result[ENTERPRISE]["manager"] == {"value": "26118915"}

    def test_remove_whole_extension(self, patcher, user_type, stored_user):
        stored_user[ENTERPRISE] = {"department": "Tour Operations"}
        stored_user["schemas"].append(ENTERPRISE)
        result = patcher.apply(user_type, stored_user, [{"op": "remove", "path": ENTERPRISE}])
        assert ENTERPRISE not in result
        assert result["schemas"] == [USER]

    def test_single_valued_complex_merge(self, patcher, user_type, stored_user):
        stored_user["name"] = {"givenName": "Barbara", "familyName": "Jensen"}
        result = patcher.apply(user_type, stored_user, [{"op": "replace", "path": "name", "value": {"givenName": "Babs"}}])
        assert result["name"] == {"givenName": "Babs", "familyName": "Jensen"}

    def test_remove_requires_path(self, patcher, user_type, stored_user):
        with pytest.raises(PathRequired):
            patcher.apply(user_type, stored_user, [{"op": "remove"}])

    def test_unsupported_operation(self, patcher, user_type, stored_user):
        with pytest.raises(UnsupportedOperation):
            patcher.apply(user_type, stored_user, [{"op": "move", "path": "displayName", "value": "x"}])

    def test_filter_on_single_valued_attribute(self, patcher, user_type, stored_user):
        with pytest.raises(MalformedPath):
            patcher.apply(user_type, stored_user, [{"op": "remove", "path": 'name[givenName eq "Babs"]'}])

    def test_core_schema_urn_is_not_a_path(self, patcher, user_type, stored_user):
        with pytest.raises(MalformedPath):
            patcher.apply(user_type, stored_user, [{"op": "remove", "path": USER}])

    def test_unknown_attribute_path(self, patcher, user_type, stored_user):
        with pytest.raises(UnknownAttribute) as exc_info:
            patcher.apply(user_type, stored_user, [{"op": "add", "path": "shoeSize", "value": 42}])
        assert exc_info.value.scim_type == "invalidPath"

    def test_failed_batch_leaves_stored_resource_unchanged(self, patcher, user_type, stored_user):
        original = copy.deepcopy(stored_user)
        with pytest.raises(UnknownAttribute):
            patcher.apply(user_type, stored_user, [
                {"op": "replace", "path": "displayName", "value": "Barbara"},
                {"op": "remove", "path": "emails"},
                {"op": "add", "path": "shoeSize", "value": 42},
            ])
        assert stored_user == original

    def test_violations_across_operations_are_aggregated(self, patcher, user_type, stored_user):
        with pytest.raises(ValidationErrors) as exc_info:
            patcher.apply(user_type, stored_user, [
                {"op": "add", "path": "shoeSize", "value": 42},
                {"op": "replace", "path": 'emails[type eq "other"].value', "value": "x@example.com"},
            ])
        assert {type(e) for e in exc_info.value.errors} == {UnknownAttribute, NoTargetMatched}

    def test_result_is_revalidated(self, patcher, user_type, stored_user):
        with pytest.raises(TypeMismatch):
            patcher.apply(user_type, stored_user, [{"op": "replace", "path": "active", "value": "yes"}])
        with pytest.raises(RequiredAttributeMissing):
            patcher.apply(user_type, stored_user, [{"op": "remove", "path": "userName"}])
