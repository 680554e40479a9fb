"""
Monitoring Module

Prometheus metrics for viewport passes and tile processing.
"""

from .metrics import MetricsCollector

__all__ = [
    "MetricsCollector"
]
