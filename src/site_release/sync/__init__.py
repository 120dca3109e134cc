"""Build tree synchronization to object storage."""

from .pipeline import AssetSyncPipeline, S3Uploader, SyncSummary, UploadOutcome
from .scanner import (
    LONG_CACHE,
    SHORT_CACHE,
    FileDescriptor,
    cache_control_for,
    content_type_for,
    scan,
)

__all__ = [
    "AssetSyncPipeline",
    "S3Uploader",
    "SyncSummary",
    "UploadOutcome",
    "LONG_CACHE",
    "SHORT_CACHE",
    "FileDescriptor",
    "cache_control_for",
    "content_type_for",
    "scan",
]
