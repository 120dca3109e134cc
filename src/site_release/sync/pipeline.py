"""Uploads the build tree to the storage bucket."""

from __future__ import annotations

import io
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from ..config import DeployConfig
from ..errors import TransferError
from ..utils.logging import get_logger
from .scanner import FileDescriptor, scan

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class UploadOutcome:
    descriptor: FileDescriptor
    success: bool
    error: Optional[str] = None


@dataclass
class SyncSummary:
    """Per-run aggregate of upload outcomes."""

    outcomes: List[UploadOutcome] = field(default_factory=list)
    dry_run: bool = False
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def uploaded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> int:
        return self.total - self.uploaded


class S3Uploader:
    """Puts descriptors into one bucket through boto3's managed transfer."""

    def __init__(
        self,
        bucket: str,
        region: str,
        client: Any = None,
        client_factory: Callable[..., Any] = boto3.client,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self._client = client
        self._client_factory = client_factory

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory("s3", region_name=self.region)
        return self._client

    def upload(self, descriptor: FileDescriptor) -> UploadOutcome:
        """Upload one file; failures come back as an unsuccessful outcome."""
        try:
            body = descriptor.local_path.read_bytes()
        except OSError as exc:
            return UploadOutcome(descriptor, False, f"cannot read {descriptor.local_path}: {exc}")

        extra_args: Dict[str, Any] = {
            "ContentType": descriptor.content_type,
            "CacheControl": descriptor.cache_control,
            "Metadata": {"uploadedAt": datetime.now(timezone.utc).isoformat()},
        }
        try:
            # upload_fileobj 会对大文件自动切换为分片上传
            self.client.upload_fileobj(
                io.BytesIO(body),
                self.bucket,
                descriptor.remote_key,
                ExtraArgs=extra_args,
            )
        except (BotoCoreError, ClientError, S3UploadFailedError) as exc:
            return UploadOutcome(descriptor, False, str(exc))

        logger.debug("Uploaded: %s (%s)", descriptor.remote_key, descriptor.content_type)
        return UploadOutcome(descriptor, True)


class AssetSyncPipeline:
    """
    Scans the build directory and uploads every file to the bucket.

    Uploads are keyed, not ordered, so they run on a bounded thread pool. The
    first failure cancels the uploads that have not started and raises
    ``TransferError``; re-running the whole sync is safe because the same key
    is simply overwritten.
    """

    def __init__(self, config: DeployConfig, uploader: Optional[S3Uploader] = None) -> None:
        self.config = config
        self._uploader = uploader

    @property
    def uploader(self) -> S3Uploader:
        if self._uploader is None:
            self._uploader = S3Uploader(self.config.bucket_name, self.config.region)
        return self._uploader

    def scan(self) -> List[FileDescriptor]:
        return scan(self.config.build_dir)

    def upload(self, descriptor: FileDescriptor) -> UploadOutcome:
        if self.config.dry_run:
            logger.debug(
                "[DRY RUN] Would upload: %s (%s, %s)",
                descriptor.remote_key,
                descriptor.content_type,
                descriptor.cache_control,
            )
            return UploadOutcome(descriptor, True)
        return self.uploader.upload(descriptor)

    def sync_all(self, progress: Optional[ProgressCallback] = None) -> SyncSummary:
        started = time.monotonic()
        files = self.scan()
        logger.info("Found %d files to upload", len(files))

        if self.config.dry_run:
            logger.warning("DRY RUN mode - no files will actually be uploaded")
            outcomes = []
            for index, descriptor in enumerate(files, 1):
                outcomes.append(self.upload(descriptor))
                if progress:
                    progress(index, len(files))
        else:
            outcomes = self._upload_concurrently(files, progress)

        outcomes.sort(key=lambda outcome: outcome.descriptor.remote_key)
        summary = SyncSummary(
            outcomes=outcomes,
            dry_run=self.config.dry_run,
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info(
            "%s %d files to s3://%s",
            "Would upload" if summary.dry_run else "Successfully uploaded",
            summary.uploaded,
            self.config.bucket_name,
        )
        return summary

    def _upload_concurrently(
        self,
        files: List[FileDescriptor],
        progress: Optional[ProgressCallback],
    ) -> List[UploadOutcome]:
        if not files:
            return []

        uploader = self.uploader
        # 在进入线程池前创建客户端，避免多个线程同时初始化
        _ = uploader.client

        outcomes: List[UploadOutcome] = []
        workers = min(self.config.max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as pool:
            futures: Dict[Future, FileDescriptor] = {
                pool.submit(uploader.upload, descriptor): descriptor for descriptor in files
            }
            for future in as_completed(futures):
                outcome = future.result()
                if not outcome.success:
                    for pending in futures:
                        pending.cancel()
                    raise TransferError(outcome.descriptor.remote_key, outcome.error)
                outcomes.append(outcome)
                if progress:
                    progress(len(outcomes), len(files))
        return outcomes
