"""
Metrics Collection

Prometheus metrics for viewport passes and tile processing, kept in a
private registry so several collectors (e.g. one per test) can coexist.
Recording a metric never raises: failures are logged and counted.
"""

import json
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, generate_latest


@dataclass
class MetricValue:
    """Represents a single metric value with metadata."""
    name: str
    value: Union[int, float]
    timestamp: datetime
    labels: Dict[str, str] = field(default_factory=dict)


class MetricsCollector:
    """
    Metrics for the viewport pipeline.

    Args:
        enabled: Record into Prometheus metrics when True; only the local buffer otherwise
        namespace: Prefix for every Prometheus metric name
    """

    def __init__(self, enabled: bool = True, namespace: str = "mapfilter"):
        self.enabled = enabled
        self.namespace = namespace
        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        self.metrics_buffer = deque(maxlen=1000)
        self.lock = threading.RLock()

        self.builtin_metrics = {
            'system_start_time': time.time(),
            'total_metrics_collected': 0,
            'metrics_collection_errors': 0,
            'last_metric_timestamp': None
        }

        self.registry = CollectorRegistry()
        self.counters: Dict[str, Counter] = {}
        self.histograms: Dict[str, Histogram] = {}
        self.gauges: Dict[str, Gauge] = {}

        if self.enabled:
            self._init_prometheus()

    def _init_prometheus(self) -> None:
        self._create_metric(
            'counter', 'tiles_processed_total',
            'Tiles handled by viewport passes, by outcome',
            ['status']
        )
        self._create_metric(
            'counter', 'point_features_emitted_total',
            'Point features delivered to the rendering sink'
        )
        self._create_metric(
            'counter', 'point_features_skipped_total',
            'Point features dropped because their coordinates could not be projected'
        )
        self._create_metric(
            'histogram', 'tile_processing_duration_seconds',
            'Time to check, fetch, decode and project one tile'
        )
        self._create_metric(
            'counter', 'viewport_passes_total',
            'Viewport passes run, by result',
            ['status']
        )
        self._create_metric(
            'histogram', 'viewport_pass_duration_seconds',
            'Duration of a viewport pass'
        )
        self._create_metric(
            'gauge', 'processed_tiles',
            'Tile keys recorded in the processed tile store'
        )

    def _create_metric(
        self,
        metric_type: str,
        name: str,
        description: str,
        labels: Optional[List[str]] = None
    ) -> None:
        """Create a Prometheus metric."""
        full_name = f"{self.namespace}_{name}"
        labels = labels or []

        if metric_type == 'counter':
            self.counters[name] = Counter(full_name, description, labels, registry=self.registry)
        elif metric_type == 'histogram':
            self.histograms[name] = Histogram(full_name, description, labels, registry=self.registry)
        elif metric_type == 'gauge':
            self.gauges[name] = Gauge(full_name, description, labels, registry=self.registry)
        else:
            raise ValueError(f"Unsupported metric type: {metric_type}")

    def _record(self, kind: str, name: str, value: Union[int, float], labels: Dict[str, str]) -> None:
        try:
            with self.lock:
                self.metrics_buffer.append(MetricValue(
                    name=name,
                    value=value,
                    timestamp=datetime.now(timezone.utc),
                    labels=labels
                ))
                self.builtin_metrics['total_metrics_collected'] += 1
                self.builtin_metrics['last_metric_timestamp'] = time.time()

                if not self.enabled:
                    return

                if kind == 'counter' and name in self.counters:
                    metric = self.counters[name]
                    (metric.labels(**labels) if labels else metric).inc(value)
                elif kind == 'histogram' and name in self.histograms:
                    metric = self.histograms[name]
                    (metric.labels(**labels) if labels else metric).observe(value)
                elif kind == 'gauge' and name in self.gauges:
                    metric = self.gauges[name]
                    (metric.labels(**labels) if labels else metric).set(value)

        except Exception as e:
            self.builtin_metrics['metrics_collection_errors'] += 1
            self.logger.error(
                "Failed to record metric",
                metric_name=name,
                metric_kind=kind,
                error=str(e)
            )

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """Increment a counter metric."""
        self._record('counter', name, value, labels or {})

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """Record a histogram observation."""
        self._record('histogram', name, value, labels or {})

    def set_gauge(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        self._record('gauge', name, value, labels or {})

    def time_function(self, name: str, labels: Optional[Dict[str, str]] = None):
        """
        Decorator to time function execution.

        Args:
            name: Histogram name
            labels: Metric labels

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_histogram(name, time.time() - start_time, labels)
            return wrapper
        return decorator

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Current value of a Prometheus sample, e.g. ``tiles_processed_total``."""
        return self.registry.get_sample_value(f"{self.namespace}_{name}", labels or {})

    def get_system_health(self) -> Dict[str, Any]:
        """Get overall collector health."""
        uptime = time.time() - self.builtin_metrics['system_start_time']
        error_rate = (
            self.builtin_metrics['metrics_collection_errors'] /
            max(self.builtin_metrics['total_metrics_collected'], 1)
        )

        return {
            'status': 'degraded' if error_rate > 0.1 else 'healthy',
            'uptime_seconds': uptime,
            'total_metrics_collected': self.builtin_metrics['total_metrics_collected'],
            'metrics_collection_errors': self.builtin_metrics['metrics_collection_errors'],
            'last_metric_timestamp': self.builtin_metrics['last_metric_timestamp'],
            'metrics_buffer_size': len(self.metrics_buffer),
            'prometheus_enabled': self.enabled
        }

    def export_metrics(self, format: str = "json") -> str:
        """Export metrics as JSON (recent buffer) or Prometheus text exposition."""
        if format.lower() == "prometheus":
            return generate_latest(self.registry).decode('utf-8')

        if format.lower() == "json":
            with self.lock:
                recent = [
                    {
                        'name': m.name,
                        'value': m.value,
                        'timestamp': m.timestamp.isoformat(),
                        'labels': m.labels
                    }
                    for m in self.metrics_buffer
                ]
            return json.dumps({
                'export_timestamp': datetime.now(timezone.utc).isoformat(),
                'metrics_count': len(recent),
                'metrics': recent
            }, indent=2)

        raise ValueError(f"Unsupported export format: {format}")
