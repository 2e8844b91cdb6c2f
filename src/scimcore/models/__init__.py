from .resource import StoredResource

__all__ = [
    "StoredResource",
]
