"""Object upload relay to content-addressed storage."""

from .relay import CID_HEADER, S3StorageBackend, StorageBackend, UploadRelay

__all__ = [
    "CID_HEADER",
    "S3StorageBackend",
    "StorageBackend",
    "UploadRelay",
]
