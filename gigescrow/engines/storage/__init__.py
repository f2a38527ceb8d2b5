"""
Storage Engine - content-addressed blob store client.
"""

from gigescrow.engines.storage.blob_store import (
    BlobStore,
    BlobStoreError,
    HttpBlobStore,
    PreparedBlob,
    compute_content_id,
)

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "HttpBlobStore",
    "PreparedBlob",
    "compute_content_id",
]
