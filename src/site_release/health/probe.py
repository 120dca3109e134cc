"""HTTP health probe for the live site."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import requests

from ..errors import NetworkError
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "Site Release Health Check"


@dataclass
class HealthResult:
    """Outcome of probing one URL."""

    url: str
    status: Optional[int]
    response_time_ms: int
    success: bool
    content_signature_matched: bool = False
    error: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    body_length: int = 0


@dataclass
class HealthReport:
    """Aggregate over one ``check_all`` call."""

    results: List[HealthResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed_urls(self) -> List[str]:
        return [result.url for result in self.results if not result.success]

    @property
    def average_response_time_ms(self) -> float:
        if not self.results:
            return 0.0
        return sum(result.response_time_ms for result in self.results) / len(self.results)

    @property
    def healthy(self) -> bool:
        """True when every configured URL succeeded (vacuously true for none)."""
        return self.succeeded == self.total


class HealthProbe:
    """Issues GET requests against the deployed endpoints.

    Never raises for network trouble: timeouts and connection errors come
    back as failed ``HealthResult`` entries.
    """

    def __init__(
        self,
        timeout_ms: int = 10000,
        expected_marker: str = "<title>",
        user_agent: str = DEFAULT_USER_AGENT,
        max_workers: int = 4,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.expected_marker = expected_marker
        self.user_agent = user_agent
        self.max_workers = max(1, max_workers)
        self.session = session or requests.Session()

    def check_one(self, url: str, timeout_ms: Optional[int] = None) -> HealthResult:
        timeout_ms = timeout_ms or self.timeout_ms
        started = time.monotonic()
        try:
            response = self._fetch(url, timeout_ms, started)
        except NetworkError as exc:
            return HealthResult(
                url=url,
                status=None,
                response_time_ms=exc.elapsed_ms,
                success=False,
                error=exc.reason,
            )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        body = response.text or ""
        status = response.status_code
        success = 200 <= status < 400
        return HealthResult(
            url=url,
            status=status,
            response_time_ms=elapsed_ms,
            success=success,
            content_signature_matched=bool(self.expected_marker) and self.expected_marker in body,
            error=None if success else f"HTTP {status}",
            headers=dict(response.headers or {}),
            body_length=len(body),
        )

    def check_all(self, urls: Sequence[str], timeout_ms: Optional[int] = None) -> HealthReport:
        """Probe every URL concurrently; returns once all checks completed."""
        if not urls:
            logger.warning("No URLs configured for health checks")
            logger.info("Set SITE_URL and/or S3_URL environment variables")
            return HealthReport()

        workers = min(self.max_workers, len(urls))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="health") as pool:
            results = list(pool.map(lambda url: self.check_one(url, timeout_ms), urls))

        report = HealthReport(results=results)
        logger.debug(
            "Health checks finished: %d/%d healthy, avg %.0fms",
            report.succeeded,
            report.total,
            report.average_response_time_ms,
        )
        return report

    def _fetch(self, url: str, timeout_ms: int, started: float) -> requests.Response:
        try:
            return self.session.get(
                url,
                timeout=timeout_ms / 1000,
                headers={"User-Agent": self.user_agent},
            )
        except requests.Timeout as exc:
            raise NetworkError(url, "Request timeout", timeout_ms) from exc
        except (requests.RequestException, ValueError) as exc:
            # urllib3 rejects non-positive timeouts with ValueError
            elapsed_ms = int((time.monotonic() - started) * 1000)
            raise NetworkError(url, str(exc) or exc.__class__.__name__, elapsed_ms) from exc
