"""
Keyed resource storage with optimistic concurrency and uniqueness enforcement.

Every mutation of a resource type runs inside that type's lock: validate,
check uniqueness, persist, then swap the new snapshot into the map and update
the uniqueness index. Stored documents are never modified in place, so
readers take no lock and always see a complete snapshot.
"""

import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar, Union
from scimcore.config import settings
from scimcore.exceptions import InvalidSyntax, NotFound, SCIMException, UnknownResourceType, VersionConflict
from scimcore.schemas import PatchOperation, ResourceType
from scimcore.utils.etag import generate_etag, validate_etag
from scimcore.utils.logging import get_logger
from scimcore.utils.pagination import PaginationParams
from .filter_evaluator import FilterEvaluator
from .patch import PatchApplier
from .storage import InMemoryBackend, StorageBackend, StoredRecord
from .uniqueness import UniquenessIndex
from .validator import AttributeValidator, ValidationMode

logger = get_logger("scimcore.engine.store")

T = TypeVar("T")

SORT_ORDERS = ("ascending", "descending")


@dataclass
class ListResult:
    resources: List[Dict[str, Any]]
    total_results: int
    start_index: int
    items_per_page: int


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ResourceStore:
    def __init__(
        self,
        registry,
        backend: Optional[StorageBackend] = None,
        validator: Optional[AttributeValidator] = None,
        evaluator: Optional[FilterEvaluator] = None,
        patcher: Optional[PatchApplier] = None,
    ):
        self.registry = registry
        self.backend = backend or InMemoryBackend()
        self.validator = validator or AttributeValidator(registry)
        self.evaluator = evaluator or FilterEvaluator(registry)
        self.patcher = patcher or PatchApplier(registry, self.validator, self.evaluator)
        self.index = UniquenessIndex(registry)
        self._partitions: Dict[str, Dict[str, StoredRecord]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def _resource_type(self, resource_type: Union[ResourceType, str]) -> ResourceType:
        if isinstance(resource_type, ResourceType):
            return resource_type
        return self.registry.resolve(resource_type)

    def _partition(self, resource_type: ResourceType) -> Dict[str, StoredRecord]:
        return self._partitions.setdefault(resource_type.name.lower(), {})

    @asynccontextmanager
    async def _mutation(self, resource_type: ResourceType):
        lock = self._locks.setdefault(resource_type.name.lower(), asyncio.Lock())
        # Global uniqueness spans resource types, so those writers also serialize globally
        if self.index.declares_global(resource_type):
            async with self._global_lock:
                async with lock:
                    yield
        else:
            async with lock:
                yield

    async def _shielded(self, description: str, mutation: Awaitable[T]) -> T:
        """
        Run a mutation to completion even if the caller is cancelled.

        An abandoned mutation stays committed; its outcome is only logged.
        """
        task = asyncio.ensure_future(mutation)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(lambda finished: self._log_abandoned(description, finished))
            raise
        except SCIMException as e:
            logger.warning(f"Rejected {description}: {e.detail}")
            raise

    @staticmethod
    def _log_abandoned(description: str, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Abandoned {description} failed: {error}")
        else:
            logger.info(f"Abandoned {description} completed and was kept")

    def _record(self, resource_type: ResourceType, resource_id: str) -> StoredRecord:
        record = self._partition(resource_type).get(resource_id)
        if record is None:
            raise NotFound(resource_type.name, resource_id)
        return record

    @staticmethod
    def _check_version(record: StoredRecord, version: Optional[str]) -> None:
        current = record.document["meta"]["version"]
        if version is not None and not validate_etag(version, current):
            raise VersionConflict(record.id, version, current)

    def _stamp(self, resource_type: ResourceType, record: StoredRecord, created: str, modified: str) -> None:
        document = record.document
        document.pop("meta", None)
        document["meta"] = {
            "resourceType": resource_type.name,
            "created": created,
            "lastModified": modified,
            "location": f"{settings.api_prefix}{resource_type.endpoint}/{record.id}",
            "version": generate_etag(document, record.revision),
        }

    async def load(self) -> int:
        """Hydrate memory and the uniqueness index from the backend."""
        records = await self.backend.load()
        loaded = 0
        for record in records:
            try:
                resource_type = self.registry.resolve(record.resource_type)
            except UnknownResourceType:
                logger.warning(f"Skipping stored resource {record.id} of unknown type '{record.resource_type}'")
                continue
            self._partition(resource_type)[record.id] = record
            self.index.add(resource_type, record.document, record.id)
            loaded += 1
        logger.info(f"Resource store loaded {loaded} resource(s)")
        return loaded

    async def create(self, resource_type: Union[ResourceType, str], document: Dict[str, Any]) -> Dict[str, Any]:
        resource_type = self._resource_type(resource_type)
        return await self._shielded(f"create of {resource_type.name}", self._create(resource_type, document))

    async def _create(self, resource_type: ResourceType, document: Dict[str, Any]) -> Dict[str, Any]:
        async with self._mutation(resource_type):
            resource_id = str(uuid.uuid4())
            normalized = self.validator.validate(
                self.registry.base_schema(resource_type),
                self.registry.extensions_for(resource_type),
                document,
                ValidationMode.CREATE,
                index=self.index,
                resource_type=resource_type,
                resource_id=resource_id,
            )

            now = _timestamp()
            record = StoredRecord(id=resource_id, resource_type=resource_type.name, revision=1, document=normalized)
            self._stamp(resource_type, record, created=now, modified=now)

            await self.backend.save(record)
            self._partition(resource_type)[resource_id] = record
            self.index.add(resource_type, record.document, resource_id)

        logger.info(f"Created {resource_type.name} {resource_id}")
        return copy.deepcopy(record.document)

    async def get(self, resource_type: Union[ResourceType, str], resource_id: str) -> Dict[str, Any]:
        resource_type = self._resource_type(resource_type)
        return copy.deepcopy(self._record(resource_type, resource_id).document)

    async def replace(
        self,
        resource_type: Union[ResourceType, str],
        resource_id: str,
        document: Dict[str, Any],
        version: Optional[str] = None,
    ) -> Dict[str, Any]:
        resource_type = self._resource_type(resource_type)
        return await self._shielded(
            f"replace of {resource_type.name} {resource_id}",
            self._update(resource_type, resource_id, version, document=document),
        )

    async def patch(
        self,
        resource_type: Union[ResourceType, str],
        resource_id: str,
        operations: Sequence[Union[PatchOperation, Dict[str, Any]]],
        version: Optional[str] = None,
    ) -> Dict[str, Any]:
        resource_type = self._resource_type(resource_type)
        return await self._shielded(
            f"patch of {resource_type.name} {resource_id}",
            self._update(resource_type, resource_id, version, operations=operations),
        )

    async def _update(
        self,
        resource_type: ResourceType,
        resource_id: str,
        version: Optional[str],
        document: Optional[Dict[str, Any]] = None,
        operations: Optional[Sequence[Union[PatchOperation, Dict[str, Any]]]] = None,
    ) -> Dict[str, Any]:
        async with self._mutation(resource_type):
            current = self._record(resource_type, resource_id)
            self._check_version(current, version)

            if operations is not None:
                normalized = self.patcher.apply(resource_type, current.document, operations, index=self.index)
            else:
                normalized = self.validator.validate(
                    self.registry.base_schema(resource_type),
                    self.registry.extensions_for(resource_type),
                    document,
                    ValidationMode.REPLACE,
                    existing=current.document,
                    index=self.index,
                    resource_type=resource_type,
                    resource_id=resource_id,
                )

            record = StoredRecord(
                id=resource_id,
                resource_type=resource_type.name,
                revision=current.revision + 1,
                document=normalized,
            )
            self._stamp(resource_type, record, created=current.document["meta"]["created"], modified=_timestamp())

            await self.backend.save(record)
            self._partition(resource_type)[resource_id] = record
            self.index.replace(resource_type, current.document, record.document, resource_id)

        logger.info(f"Updated {resource_type.name} {resource_id} (revision {record.revision})")
        return copy.deepcopy(record.document)

    async def delete(self, resource_type: Union[ResourceType, str], resource_id: str, version: Optional[str] = None) -> None:
        resource_type = self._resource_type(resource_type)
        await self._shielded(
            f"delete of {resource_type.name} {resource_id}",
            self._delete(resource_type, resource_id, version),
        )

    async def _delete(self, resource_type: ResourceType, resource_id: str, version: Optional[str]) -> None:
        async with self._mutation(resource_type):
            current = self._record(resource_type, resource_id)
            self._check_version(current, version)

            await self.backend.delete(resource_id)
            del self._partition(resource_type)[resource_id]
            self.index.discard(resource_type, current.document, resource_id)

        logger.info(f"Deleted {resource_type.name} {resource_id}")

    async def list(
        self,
        resource_type: Union[ResourceType, str],
        filter_string: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        pagination: Optional[PaginationParams] = None,
    ) -> ListResult:
        """
        Query resources of one type (RFC 7644 Section 3.4.2).

        Args:
            resource_type: Resource type, or its name or endpoint
            filter_string: SCIM filter expression
            sort_by: Attribute path to sort by
            sort_order: ``ascending`` (default) or ``descending``
            pagination: 1-based start index and page size

        Returns:
            The requested page together with the total number of matches

        Raises:
            MalformedFilter: If the filter cannot be parsed
        """
        resource_type = self._resource_type(resource_type)
        order = (sort_order or "ascending").lower()
        if order not in SORT_ORDERS:
            raise InvalidSyntax(f"sortOrder must be one of {list(SORT_ORDERS)}")

        expression = self.evaluator.parse(filter_string) if filter_string and filter_string.strip() else None
        pagination = pagination or PaginationParams()

        snapshot = [record.document for record in self._partition(resource_type).values()]
        matched = self.evaluator.filter_resources(expression, snapshot, resource_type)
        ordered = self.evaluator.sort_resources(matched, resource_type, sort_by, descending=order == "descending")
        page = pagination.slice(ordered)

        logger.debug(f"Listed {resource_type.name}: {len(matched)} match(es), returning {len(page)}")
        return ListResult(
            resources=[copy.deepcopy(document) for document in page],
            total_results=len(matched),
            start_index=pagination.start_index,
            items_per_page=len(page),
        )

    def count(self, resource_type: Union[ResourceType, str]) -> int:
        return len(self._partition(self._resource_type(resource_type)))
