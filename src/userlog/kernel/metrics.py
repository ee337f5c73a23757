"""
Prometheus metrics collection for userlog.

Provides observability into the write path (transactions, appends, commands)
and the read path (events served).
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "userlog_events_appended_total",
    "Total number of events appended to the event store",
    ["aggregate_kind", "kind"],
)

events_loaded_total = Counter(
    "userlog_events_loaded_total",
    "Total number of events returned by event store queries",
    ["scope"],  # scope: global, aggregate
)

# ============================================================================
# Transaction Metrics
# ============================================================================

transactions_total = Counter(
    "userlog_transactions_total",
    "Total number of atomic scopes closed",
    ["outcome"],  # outcome: committed, rolled_back
)

update_conflicts_total = Counter(
    "userlog_update_conflicts_total",
    "Total number of updates rejected by the expected_updated_at check",
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "userlog_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

commands_processed_total = Counter(
    "userlog_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command processing duration and outcome.

    Args:
        command_type: Type of command being processed

    Returns:
        Decorated function that tracks duration
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                command_duration_seconds.labels(command_type=command_type).observe(duration)
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
