import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from site_release.config import AppConfig, DeployConfig, HealthConfig, load_config
from site_release.errors import ConfigurationError
from site_release.infra import InfraOutputs

_ENV_NAMES = (
    "INFRA_DIR",
    "INFRA_ENGINE",
    "AWS_REGION",
    "S3_BUCKET",
    "CLOUDFRONT_DISTRIBUTION_ID",
    "BUILD_DIR",
    "DOMAIN_NAME",
    "UPLOAD_MAX_WORKERS",
    "SITE_URL",
    "S3_URL",
    "HEALTH_TIMEOUT_MS",
    "HEALTH_EXPECTED_MARKER",
    "RELEASE_VERBOSE",
)


class _CleanEnvMixin:
    def setUp(self) -> None:
        patcher = mock.patch.dict(os.environ)
        patcher.start()
        self.addCleanup(patcher.stop)
        for name in _ENV_NAMES:
            os.environ.pop(name, None)


class ConfigTests(_CleanEnvMixin, unittest.TestCase):
    def test_loads_default_config(self) -> None:
        config = load_config()
        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.infra.engine_binary, "tofu")
        self.assertEqual(config.infra.required_files, ["main.tf", "variables.tf", "terraform.tfvars"])
        self.assertEqual(config.health.timeout_ms, 10000)
        self.assertEqual(config.health.expected_marker, "<title>")
        self.assertEqual(config.site.region, "us-east-1")
        self.assertFalse(config.verbose)

    def test_loads_custom_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "release.json"
            temp_file.write_text(
                """
{
  "_comment": "ignored",
  "site": {"region": "eu-west-1", "max_workers": 2, "_note": "ignored too"},
  "health": {"timeout_ms": 2500},
  "verbose": true
}
""".strip()
            )
            config = load_config(str(temp_file))
        self.assertEqual(config.site.region, "eu-west-1")
        self.assertEqual(config.site.max_workers, 2)
        self.assertEqual(config.health.timeout_ms, 2500)
        self.assertTrue(config.verbose)

    def test_missing_explicit_file_is_an_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_config("does/not/exist.json")

    def test_invalid_json_is_an_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "broken.json"
            temp_file.write_text("{not json")
            with self.assertRaises(ConfigurationError):
                load_config(str(temp_file))

    def test_unknown_field_is_an_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            AppConfig.from_dict({"site": {"bucket": "typo"}})

    def test_env_vars_override_file(self) -> None:
        os.environ["S3_BUCKET"] = "my-bucket"
        os.environ["CLOUDFRONT_DISTRIBUTION_ID"] = "E123"
        os.environ["AWS_REGION"] = "ap-south-1"
        os.environ["INFRA_ENGINE"] = "terraform"
        os.environ["HEALTH_TIMEOUT_MS"] = "500"
        os.environ["RELEASE_VERBOSE"] = "yes"
        config = load_config()
        self.assertEqual(config.site.bucket_name, "my-bucket")
        self.assertEqual(config.site.distribution_id, "E123")
        self.assertEqual(config.site.region, "ap-south-1")
        self.assertEqual(config.infra.engine_binary, "terraform")
        self.assertEqual(config.health.timeout_ms, 500)
        self.assertTrue(config.verbose)

    def test_domain_fills_site_url(self) -> None:
        os.environ["DOMAIN_NAME"] = "example.com"
        config = load_config()
        self.assertEqual(config.health.site_url, "https://example.com")
        self.assertEqual(config.health.urls(), ["https://example.com"])

    def test_explicit_site_url_wins_over_domain(self) -> None:
        os.environ["DOMAIN_NAME"] = "example.com"
        os.environ["SITE_URL"] = "https://www.example.org"
        os.environ["S3_URL"] = "http://bucket.s3-website-us-east-1.amazonaws.com"
        config = load_config()
        self.assertEqual(
            config.health.urls(),
            ["https://www.example.org", "http://bucket.s3-website-us-east-1.amazonaws.com"],
        )

    def test_malformed_integer_env_is_an_error(self) -> None:
        os.environ["UPLOAD_MAX_WORKERS"] = "many"
        with self.assertRaises(ConfigurationError) as ctx:
            load_config()
        self.assertIn("UPLOAD_MAX_WORKERS", str(ctx.exception))

    def test_non_positive_timeout_env_is_an_error(self) -> None:
        for raw in ("0", "-5"):
            os.environ["HEALTH_TIMEOUT_MS"] = raw
            with self.assertRaises(ConfigurationError) as ctx:
                load_config()
            self.assertIn("timeout", str(ctx.exception))

    def test_non_positive_timeout_in_file_is_an_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "release.json"
            temp_file.write_text('{"health": {"timeout_ms": 0}}')
            with self.assertRaises(ConfigurationError):
                load_config(str(temp_file))

    def test_unresolved_template_urls_are_skipped(self) -> None:
        self.assertEqual(HealthConfig().urls(), [])


class DeployConfigTests(_CleanEnvMixin, unittest.TestCase):
    def test_validate_lists_every_missing_setting(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = DeployConfig.from_app_config(AppConfig(), build_dir=tmp)
            self.assertEqual(config.bucket_name, "")
            with self.assertRaises(ConfigurationError) as ctx:
                config.validate()
        self.assertEqual(ctx.exception.missing, ["S3_BUCKET", "CLOUDFRONT_DISTRIBUTION_ID"])
        self.assertIn("S3_BUCKET, CLOUDFRONT_DISTRIBUTION_ID", str(ctx.exception))

    def test_validate_requires_build_dir(self) -> None:
        config = DeployConfig(
            region="us-east-1",
            bucket_name="bucket",
            distribution_id="E1",
            build_dir=Path("no/such/dist"),
        )
        with self.assertRaises(ConfigurationError) as ctx:
            config.validate()
        self.assertIn("Build directory not found", str(ctx.exception))

    def test_with_infra_outputs_returns_new_config(self) -> None:
        config = DeployConfig(
            region="us-east-1",
            bucket_name="",
            distribution_id="",
            build_dir=Path("."),
        )
        outputs = InfraOutputs({"s3_bucket_name": "site-bucket", "cloudfront_distribution_id": "E9", "other": "x"})
        merged = config.with_infra_outputs(outputs)
        self.assertEqual(merged.bucket_name, "site-bucket")
        self.assertEqual(merged.distribution_id, "E9")
        self.assertEqual(config.bucket_name, "")

    def test_null_outputs_do_not_replace_settings(self) -> None:
        config = DeployConfig(
            region="us-east-1",
            bucket_name="from-env",
            distribution_id="E1",
            build_dir=Path("."),
        )
        outputs = InfraOutputs.parse('{"s3_bucket_name": {"value": null}}')
        self.assertEqual(config.with_infra_outputs(outputs).bucket_name, "from-env")

    def test_with_infra_outputs_keeps_values_missing_from_outputs(self) -> None:
        config = DeployConfig(
            region="us-east-1",
            bucket_name="from-env",
            distribution_id="E1",
            build_dir=Path("."),
        )
        merged = config.with_infra_outputs(InfraOutputs({}))
        self.assertEqual(merged, config)


if __name__ == "__main__":
    unittest.main()
