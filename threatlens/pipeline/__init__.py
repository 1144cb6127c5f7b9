"""Scan pipeline: coordination, alert fan-out and metrics."""

from .alerts import AlertHub
from .coordinator import ScanCoordinator, ScanOptions
from .metrics import ScanMetrics

__all__ = ["AlertHub", "ScanCoordinator", "ScanMetrics", "ScanOptions"]
