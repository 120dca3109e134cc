"""Configuration loading utilities for site-release."""

from __future__ import annotations

import dataclasses
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .paths import BUILD_DIR, CONFIG_FILE, INFRA_DIR, PLAN_FILE, REQUIRED_INFRA_FILES

if TYPE_CHECKING:
    from .infra.controller import InfraOutputs

# Load .env file if it exists
load_dotenv()

_PLACEHOLDER = re.compile(r"\{\{\s*[A-Z0-9_]+\s*\}\}")
_DOMAIN_SLOT = re.compile(r"\{\{\s*DOMAIN_NAME\s*\}\}")

# 引擎输出名 -> DeployConfig 字段
WELL_KNOWN_OUTPUTS = {
    "s3_bucket_name": "bucket_name",
    "cloudfront_distribution_id": "distribution_id",
}


def resolve_placeholder(value: Optional[str]) -> Optional[str]:
    """Return ``value`` unless it is empty or still holds a ``{{NAME}}`` template slot."""
    if not value or _PLACEHOLDER.search(value):
        return None
    return value


@dataclass
class InfraConfig:
    """Settings for the infrastructure engine."""

    infra_dir: str = str(INFRA_DIR)
    engine_binary: str = "tofu"
    plan_file: str = PLAN_FILE
    required_files: List[str] = field(default_factory=lambda: list(REQUIRED_INFRA_FILES))


@dataclass
class SiteConfig:
    """Where the built site goes."""

    region: str = "us-east-1"
    bucket_name: str = "{{PROJECT_NAME}}-site-bucket"
    distribution_id: str = ""
    build_dir: str = str(BUILD_DIR)
    domain_name: str = "{{DOMAIN_NAME}}"
    max_workers: int = 8


@dataclass
class HealthConfig:
    """Endpoints and thresholds for post-deploy health checks."""

    site_url: Optional[str] = "https://{{DOMAIN_NAME}}"
    s3_url: Optional[str] = None
    timeout_ms: int = 10000
    expected_marker: str = "<title>"
    user_agent: str = "Site Release Health Check"
    max_workers: int = 4

    def urls(self) -> List[str]:
        """Configured URLs, skipping unset and unresolved template values."""
        candidates = [self.site_url, self.s3_url]
        return [url for url in (resolve_placeholder(c) for c in candidates) if url]


@dataclass
class AppConfig:
    """Top-level configuration."""

    infra: InfraConfig = field(default_factory=InfraConfig)
    site: SiteConfig = field(default_factory=SiteConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    verbose: bool = False

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        infra_payload = payload.get("infra", {}) or {}
        site_payload = payload.get("site", {}) or {}
        health_payload = payload.get("health", {}) or {}

        # 过滤掉以下划线开头的注释字段
        def _clean(section: Dict[str, Any]) -> Dict[str, Any]:
            return {k: v for k, v in section.items() if not k.startswith("_")}

        try:
            return cls(
                infra=InfraConfig(**{**InfraConfig().__dict__, **_clean(infra_payload)}),
                site=SiteConfig(**{**SiteConfig().__dict__, **_clean(site_payload)}),
                health=HealthConfig(**{**HealthConfig().__dict__, **_clean(health_payload)}),
                verbose=bool(payload.get("verbose", False)),
            )
        except TypeError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc


@dataclass(frozen=True)
class DeployConfig:
    """Immutable settings for one publish run."""

    region: str
    bucket_name: str
    distribution_id: str
    build_dir: Path
    dry_run: bool = False
    verbose: bool = False
    max_workers: int = 8

    @classmethod
    def from_app_config(
        cls,
        config: AppConfig,
        *,
        dry_run: bool = False,
        verbose: Optional[bool] = None,
        build_dir: Optional[str] = None,
    ) -> "DeployConfig":
        site = config.site
        return cls(
            region=site.region,
            bucket_name=resolve_placeholder(site.bucket_name) or "",
            distribution_id=resolve_placeholder(site.distribution_id) or "",
            build_dir=Path(build_dir or site.build_dir),
            dry_run=dry_run,
            verbose=config.verbose if verbose is None else verbose,
            max_workers=max(1, site.max_workers),
        )

    def with_infra_outputs(self, outputs: "InfraOutputs") -> "DeployConfig":
        """Return a copy whose bucket/distribution come from the engine outputs."""
        overrides = {
            attr: outputs[name]
            for name, attr in WELL_KNOWN_OUTPUTS.items()
            if outputs.get(name)
        }
        return dataclasses.replace(self, **overrides)

    def validate(self) -> "DeployConfig":
        """Fail fast before any network call; lists every missing setting."""
        missing = []
        if not resolve_placeholder(self.bucket_name):
            missing.append("S3_BUCKET")
        if not self.distribution_id:
            missing.append("CLOUDFRONT_DISTRIBUTION_ID")
        if missing:
            raise ConfigurationError("Missing required environment variables", missing)
        if not self.build_dir.is_dir():
            raise ConfigurationError(
                f"Build directory not found: {self.build_dir} (build the site first)"
            )
        return self


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path`, the default location, or built-in defaults.

    Environment variables (higher priority than config file):
    - AWS_REGION: Region for S3 and CloudFront clients
    - S3_BUCKET: Bucket receiving the site
    - CLOUDFRONT_DISTRIBUTION_ID: Distribution to invalidate
    - BUILD_DIR / INFRA_DIR / INFRA_ENGINE: Local layout and engine binary
    - DOMAIN_NAME: Public domain, used for the post-deploy summary
    - UPLOAD_MAX_WORKERS: Upload concurrency
    - SITE_URL / S3_URL: Health check targets
    - HEALTH_TIMEOUT_MS / HEALTH_EXPECTED_MARKER: Health check tuning
    - RELEASE_VERBOSE: Verbose output
    """

    if path and not Path(path).is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")

    config = AppConfig()
    candidate = Path(path) if path else CONFIG_FILE
    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid JSON in {candidate}: {exc}") from exc
        config = AppConfig.from_dict(data)

    env_region = os.getenv("AWS_REGION")
    if env_region:
        config.site.region = env_region

    env_bucket = os.getenv("S3_BUCKET")
    if env_bucket:
        config.site.bucket_name = env_bucket

    env_distribution = os.getenv("CLOUDFRONT_DISTRIBUTION_ID")
    if env_distribution:
        config.site.distribution_id = env_distribution

    env_build_dir = os.getenv("BUILD_DIR")
    if env_build_dir:
        config.site.build_dir = env_build_dir

    env_domain = os.getenv("DOMAIN_NAME")
    if env_domain:
        config.site.domain_name = env_domain

    env_workers = _env_int("UPLOAD_MAX_WORKERS")
    if env_workers is not None:
        config.site.max_workers = env_workers

    env_infra_dir = os.getenv("INFRA_DIR")
    if env_infra_dir:
        config.infra.infra_dir = env_infra_dir

    env_engine = os.getenv("INFRA_ENGINE")
    if env_engine:
        config.infra.engine_binary = env_engine

    env_site_url = os.getenv("SITE_URL")
    if env_site_url:
        config.health.site_url = env_site_url

    # 未设置 SITE_URL 时从域名推导
    domain = resolve_placeholder(config.site.domain_name)
    site_url = config.health.site_url
    if domain and site_url and resolve_placeholder(site_url) is None:
        config.health.site_url = _DOMAIN_SLOT.sub(domain, site_url)

    env_s3_url = os.getenv("S3_URL")
    if env_s3_url:
        config.health.s3_url = env_s3_url

    env_timeout = _env_int("HEALTH_TIMEOUT_MS")
    if env_timeout is not None:
        config.health.timeout_ms = env_timeout

    if config.health.timeout_ms <= 0:
        raise ConfigurationError(
            f"Health check timeout must be a positive number of milliseconds, got {config.health.timeout_ms}"
        )

    env_marker = os.getenv("HEALTH_EXPECTED_MARKER")
    if env_marker:
        config.health.expected_marker = env_marker

    env_verbose = _env_flag("RELEASE_VERBOSE")
    if env_verbose is not None:
        config.verbose = env_verbose

    return config
