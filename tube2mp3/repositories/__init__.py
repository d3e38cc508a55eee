from .objects import ObjectStore, S3ObjectStore, InMemoryObjectStore

__all__ = [
    "ObjectStore",
    "S3ObjectStore",
    "InMemoryObjectStore",
]
