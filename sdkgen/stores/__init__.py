"""Blob and state storage for generation runs."""

from .blob import BlobStore, FileSystemBlobStore, InMemoryBlobStore, join_blob
from .state import GenerationStateStore, STATE_BLOB_NAME

__all__ = [
    "BlobStore",
    "FileSystemBlobStore",
    "GenerationStateStore",
    "InMemoryBlobStore",
    "STATE_BLOB_NAME",
    "join_blob",
]
