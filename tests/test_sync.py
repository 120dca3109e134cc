"""Tests for the asset sync pipeline."""

import threading
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from site_release.config import DeployConfig
from site_release.errors import TransferError
from site_release.sync import AssetSyncPipeline, S3Uploader


class FakeS3Client:
    def __init__(self, fail_keys=()):
        self.fail_keys = set(fail_keys)
        self.uploads = []
        self._lock = threading.Lock()

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if key in self.fail_keys:
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                "PutObject",
            )
        with self._lock:
            self.uploads.append(
                {"bucket": bucket, "key": key, "body": fileobj.read(), "extra": ExtraArgs}
            )


def _forbidden_factory(*args, **kwargs):
    raise AssertionError("dry run must not create an AWS client")


def _site(root: Path) -> Path:
    (root / "index.html").write_text("<html><title>Home</title></html>", encoding="utf-8")
    (root / "styles.css").write_text("body{}", encoding="utf-8")
    (root / "js").mkdir()
    (root / "js" / "app.js").write_text("console.log(1)", encoding="utf-8")
    return root


def _config(build_dir: Path, dry_run: bool = False, max_workers: int = 4) -> DeployConfig:
    return DeployConfig(
        region="us-east-1",
        bucket_name="site-bucket",
        distribution_id="E1",
        build_dir=build_dir,
        dry_run=dry_run,
        max_workers=max_workers,
    )


class TestDryRun:
    def test_dry_run_makes_no_network_calls(self, tmp_path):
        uploader = S3Uploader("site-bucket", "us-east-1", client_factory=_forbidden_factory)
        pipeline = AssetSyncPipeline(_config(_site(tmp_path), dry_run=True), uploader=uploader)

        summary = pipeline.sync_all()

        assert summary.dry_run is True
        assert summary.total == 3
        assert summary.uploaded == 3
        assert summary.failed == 0

    def test_dry_run_outcomes_carry_cache_policy(self, tmp_path):
        pipeline = AssetSyncPipeline(_config(_site(tmp_path), dry_run=True))
        summary = pipeline.sync_all()
        policies = {o.descriptor.remote_key: o.descriptor.cache_control for o in summary.outcomes}
        assert policies == {
            "index.html": "public, max-age=300",
            "js/app.js": "public, max-age=31536000",
            "styles.css": "public, max-age=31536000",
        }

    def test_progress_reports_every_file(self, tmp_path):
        pipeline = AssetSyncPipeline(_config(_site(tmp_path), dry_run=True))
        seen = []
        pipeline.sync_all(progress=lambda done, total: seen.append((done, total)))
        assert seen == [(1, 3), (2, 3), (3, 3)]


class TestUpload:
    def test_uploads_every_file_with_headers(self, tmp_path):
        client = FakeS3Client()
        uploader = S3Uploader("site-bucket", "us-east-1", client=client)
        pipeline = AssetSyncPipeline(_config(_site(tmp_path)), uploader=uploader)

        summary = pipeline.sync_all()

        assert summary.uploaded == 3
        assert [o.descriptor.remote_key for o in summary.outcomes] == ["index.html", "js/app.js", "styles.css"]
        by_key = {u["key"]: u for u in client.uploads}
        assert set(by_key) == {"index.html", "styles.css", "js/app.js"}
        assert all(u["bucket"] == "site-bucket" for u in client.uploads)

        index = by_key["index.html"]
        assert index["body"] == b"<html><title>Home</title></html>"
        assert index["extra"]["ContentType"] == "text/html"
        assert index["extra"]["CacheControl"] == "public, max-age=300"
        assert "uploadedAt" in index["extra"]["Metadata"]

        css = by_key["styles.css"]
        assert css["extra"]["ContentType"] == "text/css"
        assert css["extra"]["CacheControl"] == "public, max-age=31536000"

    def test_client_created_lazily_through_factory(self, tmp_path):
        created = []

        def factory(service, region_name=None):
            created.append((service, region_name))
            return FakeS3Client()

        uploader = S3Uploader("site-bucket", "eu-central-1", client_factory=factory)
        AssetSyncPipeline(_config(_site(tmp_path)), uploader=uploader).sync_all()
        assert created == [("s3", "eu-central-1")]

    def test_first_failure_aborts_with_key(self, tmp_path):
        client = FakeS3Client(fail_keys={"styles.css"})
        uploader = S3Uploader("site-bucket", "us-east-1", client=client)
        pipeline = AssetSyncPipeline(_config(_site(tmp_path), max_workers=1), uploader=uploader)

        with pytest.raises(TransferError) as excinfo:
            pipeline.sync_all()

        assert excinfo.value.key == "styles.css"
        assert "styles.css" in str(excinfo.value)
        assert "AccessDenied" in str(excinfo.value)

    def test_single_upload_failure_is_an_outcome(self, tmp_path):
        _site(tmp_path)
        client = FakeS3Client(fail_keys={"index.html"})
        uploader = S3Uploader("site-bucket", "us-east-1", client=client)
        pipeline = AssetSyncPipeline(_config(tmp_path), uploader=uploader)
        descriptor = next(d for d in pipeline.scan() if d.remote_key == "index.html")

        outcome = uploader.upload(descriptor)

        assert outcome.success is False
        assert "AccessDenied" in outcome.error

    def test_empty_build_dir_uploads_nothing(self, tmp_path):
        uploader = S3Uploader("site-bucket", "us-east-1", client_factory=_forbidden_factory)
        summary = AssetSyncPipeline(_config(tmp_path), uploader=uploader).sync_all()
        assert summary.total == 0
