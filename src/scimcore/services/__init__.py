from .registry import SchemaRegistry, build_default_registry
from .validator import AttributeValidator, ValidationMode
from .uniqueness import UniquenessIndex
from .filter_evaluator import FilterEvaluator
from .patch import PatchApplier
from .storage import StorageBackend, InMemoryBackend, TortoiseBackend, StoredRecord
from .resource_store import ResourceStore, ListResult

__all__ = [
    # Registry
    "SchemaRegistry",
    "build_default_registry",
    # Engine
    "AttributeValidator",
    "ValidationMode",
    "UniquenessIndex",
    "FilterEvaluator",
    "PatchApplier",
    # Storage
    "StorageBackend",
    "InMemoryBackend",
    "TortoiseBackend",
    "StoredRecord",
    "ResourceStore",
    "ListResult",
]
