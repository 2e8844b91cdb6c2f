import asyncio
import pytest
from scimcore.exceptions import (
    ImmutableAttributeModified,
    InvalidSyntax,
    MalformedFilter,
    NotFound,
    StorageUnavailable,
    UniquenessConflict,
    UnknownAttribute,
    UnknownResourceType,
    VersionConflict,
)
from scimcore.services import InMemoryBackend, ResourceStore
from scimcore.utils import PaginationParams


class FailingBackend(InMemoryBackend):
    async def save(self, record):
        raise StorageUnavailable()


class SlowBackend(InMemoryBackend):
    async def save(self, record):
        await asyncio.sleep(0.05)
        await super().save(record)


async def create_users(store, count):
    return [await store.create("User", {"userName": f"user{i:02d}"}) for i in range(1, count + 1)]


class TestCreateAndRead:

    @pytest.mark.asyncio
    async def test_create_stamps_meta(self, store):
        created = await store.create("Users", {"userName": "bjensen", "displayName": "Babs"})

        assert created["id"]
        meta = created["meta"]
        assert meta["resourceType"] == "User"
        assert meta["location"] == f"/scim/v2/Users/{created['id']}"
        assert meta["created"] == meta["lastModified"]
        assert meta["created"].endswith("Z")
        assert meta["version"].startswith('W/"')
        assert await store.get("User", created["id"]) == created

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store):
        created = await store.create("User", {"userName": "bjensen"})
        created["userName"] = "mallory"
        fetched = await store.get("User", created["id"])
        fetched["displayName"] = "Mallory"

        stored = await store.get("User", created["id"])
        assert stored["userName"] == "bjensen"
        assert "displayName" not in stored

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        with pytest.raises(NotFound):
            await store.get("User", "missing")

    @pytest.mark.asyncio
    async def test_unknown_resource_type(self, store):
        with pytest.raises(UnknownResourceType):
            await store.create("Widgets", {"name": "sprocket"})

    @pytest.mark.asyncio
    async def test_rejected_create_stores_nothing(self, store):
        with pytest.raises(UnknownAttribute):
            await store.create("User", {"userName": "bjensen", "shoeSize": 42})
        assert store.count("User") == 0
        assert len(store.index) == 0


class TestUniqueness:

    @pytest.mark.asyncio
    async def test_server_unique_is_case_insensitive(self, store):
        await store.create("User", {"userName": "bjensen"})
        with pytest.raises(UniquenessConflict) as exc_info:
            await store.create("User", {"userName": "BJensen"})
        assert exc_info.value.status_code == 409
        assert store.count("User") == 1

    @pytest.mark.asyncio
    async def test_scope_is_per_resource_type(self, store):
        await store.create("Group", {"displayName": "Admins"})
        await store.create("User", {"userName": "u1", "displayName": "Admins"})
        with pytest.raises(UniquenessConflict):
            await store.create("Group", {"displayName": "admins"})

    @pytest.mark.asyncio
    async def test_delete_releases_value(self, store):
        created = await store.create("User", {"userName": "bjensen"})
        await store.delete("User", created["id"])
        recreated = await store.create("User", {"userName": "bjensen"})
        assert recreated["id"] != created["id"]

    @pytest.mark.asyncio
    async def test_replace_checks_other_resources(self, store):
        first = await store.create("User", {"userName": "bjensen"})
        second = await store.create("User", {"userName": "jsmith"})

        with pytest.raises(UniquenessConflict):
            await store.replace("User", second["id"], {"userName": "bjensen"})

        # A resource does not conflict with itself
        replaced = await store.replace("User", first["id"], {"userName": "BJENSEN"})
        assert replaced["userName"] == "BJENSEN"
        await store.create("User", {"userName": "new-name"})

    @pytest.mark.asyncio
    async def test_rename_releases_old_value(self, store):
        created = await store.create("User", {"userName": "bjensen"})
        await store.patch("User", created["id"], [{"op": "replace", "path": "userName", "value": "barbara"}])
        await store.create("User", {"userName": "bjensen"})

    @pytest.mark.asyncio
    async def test_global_uniqueness_spans_resource_types(self, device_registry):
        store = ResourceStore(device_registry)
        await store.create("Device", {"serialNumber": "SN-1"})
        with pytest.raises(UniquenessConflict):
            await store.create("Sensor", {"serialNumber": "SN-1"})
        await store.create("Sensor", {"serialNumber": "sn-1"})

    @pytest.mark.asyncio
    async def test_concurrent_creates_admit_one(self, store):
        results = await asyncio.gather(
            *[store.create("User", {"userName": "bjensen"}) for _ in range(10)],
            return_exceptions=True,
        )
        created = [r for r in results if isinstance(r, dict)]
        assert len(created) == 1
        assert all(isinstance(r, UniquenessConflict) for r in results if not isinstance(r, dict))


class TestVersions:

    @pytest.mark.asyncio
    async def test_every_mutation_changes_version(self, store):
        created = await store.create("User", {"userName": "bjensen"})
        replaced = await store.replace("User", created["id"], {"userName": "bjensen"})
        patched = await store.patch("User", created["id"], [{"op": "replace", "path": "userName", "value": "bjensen"}])

        versions = {created["meta"]["version"], replaced["meta"]["version"], patched["meta"]["version"]}
        assert len(versions) == 3
        assert patched["meta"]["created"] == created["meta"]["created"]

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, store):
        created = await store.create("User", {"userName": "bjensen"})
        stale = created["meta"]["version"]
        await store.replace("User", created["id"], {"userName": "bjensen", "title": "Guide"}, version=stale)

        with pytest.raises(VersionConflict) as exc_info:
            await store.replace("User", created["id"], {"userName": "bjensen"}, version=stale)
        assert exc_info.value.status_code == 412

        with pytest.raises(VersionConflict):
            await store.delete("User", created["id"], version=stale)
        assert store.count("User") == 1

    @pytest.mark.asyncio
    async def test_wildcard_version(self, store):
        created = await store.create("User", {"userName": "bjensen"})
        await store.delete("User", created["id"], version="*")
        assert store.count("User") == 0

    @pytest.mark.asyncio
    async def test_replace_immutable_change_rejected(self, device_registry):
        store = ResourceStore(device_registry)
        created = await store.create("Device", {"serialNumber": "SN-1", "label": "rack-7"})

        with pytest.raises(ImmutableAttributeModified):
            await store.replace("Device", created["id"], {"serialNumber": "SN-2"})
        replaced = await store.replace("Device", created["id"], {"serialNumber": "SN-1", "firmware": "2.1"})
        assert replaced["label"] == "rack-7"

    @pytest.mark.asyncio
    async def test_failed_patch_keeps_version_and_content(self, store):
        created = await store.create("User", {"userName": "bjensen", "displayName": "Babs"})

        with pytest.raises(UnknownAttribute):
            await store.patch("User", created["id"], [
                {"op": "replace", "path": "displayName", "value": "Barbara"},
                {"op": "add", "path": "shoeSize", "value": 42},
            ])

        assert await store.get("User", created["id"]) == created

    @pytest.mark.asyncio
    async def test_patch_uniqueness_conflict(self, store):
        await store.create("User", {"userName": "bjensen"})
        other = await store.create("User", {"userName": "jsmith"})
        with pytest.raises(UniquenessConflict):
            await store.patch("User", other["id"], [{"op": "replace", "path": "userName", "value": "bjensen"}])
        assert (await store.get("User", other["id"]))["userName"] == "jsmith"


class TestList:

    @pytest.mark.asyncio
    async def test_pagination(self, store):
        await create_users(store, 25)
        result = await store.list(
            "User", sort_by="userName", pagination=PaginationParams(start_index=21, count=10)
        )

        assert len(result.resources) == 5
        assert result.total_results == 25
        assert result.start_index == 21
        assert result.items_per_page == 5
        assert [r["userName"] for r in result.resources] == [f"user{i}" for i in range(21, 26)]

    @pytest.mark.asyncio
    async def test_count_zero_reports_total(self, store):
        await create_users(store, 3)
        result = await store.list("User", pagination=PaginationParams(count=0))
        assert result.resources == []
        assert result.total_results == 3

    @pytest.mark.asyncio
    async def test_filter_and_sort(self, store):
        await create_users(store, 25)
        result = await store.list("User", filter_string='userName sw "user1"', sort_by="userName", sort_order="descending")

        assert result.total_results == 10
        assert result.resources[0]["userName"] == "user19"
        assert result.resources[-1]["userName"] == "user10"

    @pytest.mark.asyncio
    async def test_invalid_sort_order(self, store):
        with pytest.raises(InvalidSyntax):
            await store.list("User", sort_order="sideways")

    @pytest.mark.asyncio
    async def test_ne_with_wrong_kind_matches_nothing(self, store):
        await store.create("User", {"userName": "alice", "active": True})
        await store.create("User", {"userName": "bob", "active": False})

        assert (await store.list("User", filter_string='active ne "yes"')).total_results == 0
        assert (await store.list("User", filter_string="active ne 5")).total_results == 0
        assert (await store.list("User", filter_string="active ne false")).total_results == 1

    @pytest.mark.asyncio
    async def test_malformed_filter(self, store):
        with pytest.raises(MalformedFilter):
            await store.list("User", filter_string="active eq")

    @pytest.mark.asyncio
    async def test_types_are_partitioned(self, store):
        await store.create("User", {"userName": "bjensen"})
        await store.create("Group", {"displayName": "Admins"})
        assert (await store.list("Group")).total_results == 1
        assert store.count("Users") == 1


class TestBackends:

    @pytest.mark.asyncio
    async def test_load_rebuilds_memory_and_index(self, registry):
        backend = InMemoryBackend()
        first = ResourceStore(registry, backend=backend)
        created = await first.create("User", {"userName": "bjensen"})

        second = ResourceStore(registry, backend=backend)
        assert await second.load() == 1
        assert await second.get("User", created["id"]) == created
        with pytest.raises(UniquenessConflict):
            await second.create("User", {"userName": "bjensen"})

    @pytest.mark.asyncio
    async def test_backend_failure_leaves_memory_untouched(self, registry):
        store = ResourceStore(registry, backend=FailingBackend())
        with pytest.raises(StorageUnavailable) as exc_info:
            await store.create("User", {"userName": "bjensen"})

        assert exc_info.value.retryable is True
        assert store.count("User") == 0
        assert len(store.index) == 0

    @pytest.mark.asyncio
    async def test_cancelled_caller_mutation_still_commits(self, registry):
        store = ResourceStore(registry, backend=SlowBackend())
        task = asyncio.create_task(store.create("User", {"userName": "bjensen"}))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.1)
        assert store.count("User") == 1
        assert len(store.backend.records) == 1
