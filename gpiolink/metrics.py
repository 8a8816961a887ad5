"""Connection counters and Prometheus export for gpiolink."""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterator
from typing import Any

import msgspec
from prometheus_client import CollectorRegistry
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_]")
_METRIC_PREFIX = "gpiolink"
_GAUGE_DOC = "gpiolink client counter"
_INFO_METRIC = "gpiolink_connection_info"


class ClientStats(msgspec.Struct):
    """Monotonic counters for one connection."""

    commands_sent: int = 0
    commands_failed: int = 0
    daemon_errors: int = 0
    transport_failures: int = 0
    protocol_failures: int = 0
    timeouts: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0
    last_command_latency_ms: float = 0.0
    last_command_unix: float = 0.0
    notifications_received: int = 0
    level_reports: int = 0
    keepalives: int = 0
    watchdog_reports: int = 0
    event_reports: int = 0
    sequence_gaps: int = 0
    records_dropped: int = 0
    callbacks_dispatched: int = 0
    callback_errors: int = 0
    last_notification_unix: float = 0.0

    def record_command(self, sent: int, received: int, latency_ms: float) -> None:
        self.commands_sent += 1
        self.bytes_sent += sent
        self.bytes_received += received
        self.last_command_latency_ms = latency_ms
        self.last_command_unix = time.time()

    def record_failure(self, kind: str) -> None:
        self.commands_failed += 1
        if kind == "daemon":
            self.daemon_errors += 1
        elif kind == "timeout":
            self.timeouts += 1
            self.transport_failures += 1
        elif kind == "protocol":
            self.protocol_failures += 1
        else:
            self.transport_failures += 1

    def record_notification(self, nbytes: int) -> None:
        self.notifications_received += 1
        self.bytes_received += nbytes
        self.last_notification_unix = time.time()

    def record_gap(self, missing: int) -> None:
        self.sequence_gaps += 1
        self.records_dropped += missing

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


def _sanitize_metric_name(name: str) -> str:
    return _SANITIZE_RE.sub("_", name)


class ClientStatsCollector(Collector):
    """Prometheus collector that projects connection counters as gauges."""

    def __init__(
        self,
        stats: Callable[[], ClientStats],
        *,
        endpoint: str = "",
        state: Callable[[], str] | None = None,
    ) -> None:
        self._stats = stats
        self._endpoint = endpoint
        self._state = state

    def collect(self) -> Iterator[Any]:
        for name, value in self._stats().as_dict().items():
            metric = GaugeMetricFamily(
                _sanitize_metric_name(f"{_METRIC_PREFIX}_{name}"),
                _GAUGE_DOC,
            )
            metric.add_metric((), float(value))
            yield metric

        info = InfoMetricFamily(_INFO_METRIC, "gpiolink connection details")
        info.add_metric(
            (),
            {
                "endpoint": self._endpoint,
                "state": self._state() if self._state is not None else "unknown",
            },
        )
        yield info


def register_client_metrics(connection: Any, registry: CollectorRegistry | None = None) -> CollectorRegistry:
    """Attach a :class:`ClientStatsCollector` for *connection* to *registry*.

    A fresh registry is created when none is given; it is returned either way.
    """
    target = registry if registry is not None else CollectorRegistry()
    collector = ClientStatsCollector(
        lambda: connection.stats,
        endpoint=f"{connection.host}:{connection.port}",
        state=lambda: connection.fsm_state,
    )
    target.register(collector)
    return target
