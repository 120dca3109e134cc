"""CloudFront cache invalidation after a sync."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import InvalidationError
from ..utils.logging import get_logger

logger = get_logger(__name__)

FULL_SITE: Tuple[str, ...] = ("/*",)
DRY_RUN_ID = "dry-run"


@dataclass(frozen=True)
class InvalidationRecord:
    caller_reference: str
    paths: Tuple[str, ...]
    id: str


def new_caller_reference() -> str:
    return f"deploy-{time.time_ns()}"


class CDNInvalidator:
    """Issues one invalidation request per call and returns once it is accepted."""

    def __init__(
        self,
        region: str = "us-east-1",
        client: Any = None,
        client_factory: Callable[..., Any] = boto3.client,
        dry_run: bool = False,
    ) -> None:
        self.region = region
        self.dry_run = dry_run
        self._client = client
        self._client_factory = client_factory

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory("cloudfront", region_name=self.region)
        return self._client

    def invalidate(
        self,
        distribution_id: Optional[str],
        paths: Sequence[str] = FULL_SITE,
    ) -> Optional[InvalidationRecord]:
        """
        Invalidate ``paths`` on ``distribution_id``.

        Returns:
            The accepted record, a synthetic record in dry-run mode, or None
            when no distribution is configured.

        Raises:
            InvalidationError: The CDN rejected the request.
        """
        if not distribution_id:
            logger.warning("No CloudFront distribution ID provided, skipping cache invalidation")
            return None

        items = tuple(paths)
        caller_reference = new_caller_reference()

        if self.dry_run:
            logger.info("[DRY RUN] Would create CloudFront invalidation for %s", ", ".join(items))
            return InvalidationRecord(caller_reference, items, DRY_RUN_ID)

        try:
            response = self.client.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": len(items), "Items": list(items)},
                    "CallerReference": caller_reference,
                },
            )
        except (BotoCoreError, ClientError) as exc:
            raise InvalidationError(f"CloudFront invalidation failed: {exc}") from exc

        invalidation_id = response["Invalidation"]["Id"]
        logger.info("CloudFront invalidation created: %s", invalidation_id)
        logger.info("Cache invalidation may take 5-15 minutes to complete")
        return InvalidationRecord(caller_reference, items, invalidation_id)
