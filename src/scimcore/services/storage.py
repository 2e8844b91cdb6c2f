import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from tortoise.exceptions import BaseORMException
from scimcore.config import settings
from scimcore.exceptions import StorageUnavailable
from scimcore.models import StoredResource
from scimcore.utils.logging import get_logger

logger = get_logger("scimcore.engine.storage")

T = TypeVar("T")


@dataclass
class StoredRecord:
    id: str
    resource_type: str
    revision: int
    document: Dict[str, Any]


class StorageBackend:
    """
    Durable copy of the resource map.

    The resource store keeps every resource in memory and writes through to
    its backend inside the same critical section as the in-memory update; a
    backend failure aborts the mutation before memory is touched.
    """

    async def load(self) -> List[StoredRecord]:
        raise NotImplementedError

    async def save(self, record: StoredRecord) -> None:
        raise NotImplementedError

    async def delete(self, resource_id: str) -> None:
        raise NotImplementedError


class InMemoryBackend(StorageBackend):
    """Keeps records in a dict; useful for tests and single-process deployments."""

    def __init__(self):
        self.records: Dict[str, StoredRecord] = {}

    async def load(self) -> List[StoredRecord]:
        return [copy.deepcopy(record) for record in self.records.values()]

    async def save(self, record: StoredRecord) -> None:
        self.records[record.id] = copy.deepcopy(record)

    async def delete(self, resource_id: str) -> None:
        self.records.pop(resource_id, None)


class TortoiseBackend(StorageBackend):
    """Persists normalized documents as JSON rows through Tortoise ORM."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.storage_timeout if timeout is None else timeout

    async def _call(self, description: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Storage timed out after {self.timeout}s during {description}")
            raise StorageUnavailable(f"Storage timed out during {description}")
        except BaseORMException as e:
            logger.error(f"Storage error during {description}: {e}")
            raise StorageUnavailable(f"Storage failed during {description}") from e

    async def load(self) -> List[StoredRecord]:
        rows = await self._call("load", self._fetch_all())
        logger.info(f"Loaded {len(rows)} resource(s) from the database")
        return [
            StoredRecord(id=row.id, resource_type=row.resource_type, revision=row.revision, document=row.document)
            for row in rows
        ]

    async def save(self, record: StoredRecord) -> None:
        await self._call(f"save of {record.resource_type} {record.id}", self._upsert(record))

    async def delete(self, resource_id: str) -> None:
        await self._call(f"delete of {resource_id}", self._delete(resource_id))

    @staticmethod
    async def _fetch_all() -> List[StoredResource]:
        return await StoredResource.all().order_by("created")

    @staticmethod
    async def _upsert(record: StoredRecord) -> None:
        await StoredResource.update_or_create(
            id=record.id,
            defaults={
                "resource_type": record.resource_type,
                "revision": record.revision,
                "document": record.document,
            },
        )

    @staticmethod
    async def _delete(resource_id: str) -> None:
        await StoredResource.filter(id=resource_id).delete()
