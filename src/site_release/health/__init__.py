"""Post-deploy health verification."""

from .probe import HealthProbe, HealthReport, HealthResult

__all__ = ["HealthProbe", "HealthReport", "HealthResult"]
