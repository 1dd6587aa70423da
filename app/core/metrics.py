"""
In-process metrics kept in Prometheus exposition shape.
"""
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

# Simple in-memory metrics storage
_metrics = {
    "http_requests_total": defaultdict(int),  # {(method, path, status): count}
    "http_request_duration_seconds": defaultdict(list),  # {(method, path): [durations]}
    "webhook_events_total": defaultdict(int),  # {(kind, outcome): count}
    "status_transitions_total": defaultdict(int),  # {(status, source): count}
    "startup_time": None,
}

# Gauges read at scrape time
_gauges: Dict[str, Callable[[], float]] = {}

MAX_DURATIONS = 1000


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record an HTTP request metric."""
    _metrics["http_requests_total"][(method, path, str(status_code))] += 1

    durations: List[float] = _metrics["http_request_duration_seconds"][(method, path)]
    durations.append(duration)
    # Keep only the most recent durations
    if len(durations) > MAX_DURATIONS:
        del durations[:-MAX_DURATIONS]


def record_webhook_event(kind: str, outcome: str) -> None:
    """Count one webhook message/status by its processing outcome."""
    _metrics["webhook_events_total"][(kind, outcome)] += 1


def record_status_transition(status: str, source: str) -> None:
    _metrics["status_transitions_total"][(status, source)] += 1


def register_gauge(name: str, read: Callable[[], float]) -> None:
    _gauges[name] = read


def set_startup_time() -> None:
    """Record application startup time."""
    _metrics["startup_time"] = time.time()


def reset_metrics() -> None:
    for key, value in _metrics.items():
        if isinstance(value, defaultdict):
            value.clear()
    _metrics["startup_time"] = None
    _gauges.clear()


def _labels(names: Tuple[str, ...], values: Tuple[str, ...]) -> str:
    return ",".join(f'{name}="{value}"' for name, value in zip(names, values))


def generate_prometheus_metrics(version: Optional[str] = None) -> str:
    """Generate Prometheus-format metrics output."""
    lines = []

    lines.append("# HELP app_info Application information")
    lines.append("# TYPE app_info gauge")
    lines.append(f'app_info{{version="{version or "unknown"}"}} 1')
    lines.append("")

    if _metrics["startup_time"]:
        lines.append("# HELP app_start_time_seconds Unix timestamp when the app started")
        lines.append("# TYPE app_start_time_seconds gauge")
        lines.append(f'app_start_time_seconds {_metrics["startup_time"]:.3f}')
        lines.append("")

    lines.append("# HELP http_requests_total Total number of HTTP requests")
    lines.append("# TYPE http_requests_total counter")
    for key, count in _metrics["http_requests_total"].items():
        lines.append(f'http_requests_total{{{_labels(("method", "path", "status"), key)}}} {count}')
    lines.append("")

    lines.append("# HELP http_request_duration_seconds HTTP request duration in seconds")
    lines.append("# TYPE http_request_duration_seconds summary")
    for key, durations in _metrics["http_request_duration_seconds"].items():
        if durations:
            labels = _labels(("method", "path"), key)
            lines.append(f"http_request_duration_seconds_sum{{{labels}}} {sum(durations):.6f}")
            lines.append(f"http_request_duration_seconds_count{{{labels}}} {len(durations)}")
    lines.append("")

    lines.append("# HELP webhook_events_total Webhook messages and statuses by outcome")
    lines.append("# TYPE webhook_events_total counter")
    for key, count in _metrics["webhook_events_total"].items():
        lines.append(f'webhook_events_total{{{_labels(("kind", "outcome"), key)}}} {count}')
    lines.append("")

    lines.append("# HELP status_transitions_total Applied message status transitions")
    lines.append("# TYPE status_transitions_total counter")
    for key, count in _metrics["status_transitions_total"].items():
        lines.append(f'status_transitions_total{{{_labels(("status", "source"), key)}}} {count}')

    for name, read in _gauges.items():
        lines.append("")
        lines.append(f"# TYPE {name} gauge")
        lines.append(f"{name} {read()}")

    return "\n".join(lines) + "\n"
