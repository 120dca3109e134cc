"""CDN cache invalidation."""

from .invalidation import CDNInvalidator, InvalidationRecord

__all__ = ["CDNInvalidator", "InvalidationRecord"]
