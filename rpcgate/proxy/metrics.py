"""Gateway counters with a Prometheus text exporter."""

from __future__ import annotations

from collections import defaultdict

# Distinct label values kept per labelled counter; the rest fold into "other".
MAX_LABEL_VALUES = 64
OVERFLOW_LABEL = "other"


def _bounded_key(counter: dict, key: str) -> str:
    if key in counter or len(counter) < MAX_LABEL_VALUES:
        return key
    return OVERFLOW_LABEL


def _escape_label(value) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class GatewayMetrics:
    """Prometheus-compatible metrics."""

    def __init__(self):
        self.requests_total = 0
        self.requests_by_route: dict[str, int] = defaultdict(int)
        self.requests_by_method: dict[str, int] = defaultdict(int)
        self.requests_by_endpoint: dict[str, int] = defaultdict(int)
        self.requests_rate_limited = 0
        self.requests_failed = 0
        self.errors_by_status: dict[int, int] = defaultdict(int)
        self.upstream_timeouts = 0

        self.uploads_total = 0
        self.upload_bytes_total = 0

        self.latency_sum_ms = 0.0
        self.latency_count = 0

    def record_rpc(self, route: str, method: str, endpoint: str | None, latency_ms: float):
        """Record a successfully relayed RPC call.

        Method and endpoint labels are capped at MAX_LABEL_VALUES distinct values.
        Pass ``endpoint=None`` for caller-chosen endpoints.
        """
        self.requests_total += 1
        self.requests_by_route[route] += 1
        self.requests_by_method[_bounded_key(self.requests_by_method, method)] += 1
        if endpoint is not None:
            self.requests_by_endpoint[_bounded_key(self.requests_by_endpoint, endpoint)] += 1
        self.latency_sum_ms += latency_ms
        self.latency_count += 1

    def record_upload(self, size: int):
        self.requests_total += 1
        self.requests_by_route["upload"] += 1
        self.uploads_total += 1
        self.upload_bytes_total += size

    def record_rate_limited(self):
        self.requests_rate_limited += 1

    def record_failed(self, route: str, status_code: int):
        self.requests_total += 1
        self.requests_by_route[route] += 1
        self.requests_failed += 1
        self.errors_by_status[status_code] += 1
        if status_code == 504:
            self.upstream_timeouts += 1

    def export(self) -> str:
        """Export metrics in Prometheus format."""
        lines = [
            "# HELP rpcgate_requests_total Total number of proxied requests",
            "# TYPE rpcgate_requests_total counter",
            f"rpcgate_requests_total {self.requests_total}",
            "",
            "# HELP rpcgate_requests_rate_limited_total Rate limited requests",
            "# TYPE rpcgate_requests_rate_limited_total counter",
            f"rpcgate_requests_rate_limited_total {self.requests_rate_limited}",
            "",
            "# HELP rpcgate_requests_failed_total Failed requests",
            "# TYPE rpcgate_requests_failed_total counter",
            f"rpcgate_requests_failed_total {self.requests_failed}",
            "",
            "# HELP rpcgate_upstream_timeouts_total Upstream calls that timed out",
            "# TYPE rpcgate_upstream_timeouts_total counter",
            f"rpcgate_upstream_timeouts_total {self.upstream_timeouts}",
            "",
            "# HELP rpcgate_uploads_total Artifacts relayed to storage",
            "# TYPE rpcgate_uploads_total counter",
            f"rpcgate_uploads_total {self.uploads_total}",
            "",
            "# HELP rpcgate_upload_bytes_total Bytes relayed to storage",
            "# TYPE rpcgate_upload_bytes_total counter",
            f"rpcgate_upload_bytes_total {self.upload_bytes_total}",
            "",
            "# HELP rpcgate_latency_ms_sum Sum of upstream RPC latencies",
            "# TYPE rpcgate_latency_ms_sum counter",
            f"rpcgate_latency_ms_sum {self.latency_sum_ms:.2f}",
            "",
            "# HELP rpcgate_latency_ms_count Number of timed upstream RPC calls",
            "# TYPE rpcgate_latency_ms_count counter",
            f"rpcgate_latency_ms_count {self.latency_count}",
        ]

        lines.extend(
            [
                "",
                "# HELP rpcgate_requests_by_route Requests by route",
                "# TYPE rpcgate_requests_by_route counter",
            ]
        )
        for route, count in self.requests_by_route.items():
            lines.append(f'rpcgate_requests_by_route{{route="{_escape_label(route)}"}} {count}')

        lines.extend(
            [
                "",
                "# HELP rpcgate_requests_by_method Relayed RPC calls by method",
                "# TYPE rpcgate_requests_by_method counter",
            ]
        )
        for method, count in self.requests_by_method.items():
            lines.append(f'rpcgate_requests_by_method{{method="{_escape_label(method)}"}} {count}')

        lines.extend(
            [
                "",
                "# HELP rpcgate_errors_by_status Failed requests by response status",
                "# TYPE rpcgate_errors_by_status counter",
            ]
        )
        for status, count in sorted(self.errors_by_status.items()):
            lines.append(f'rpcgate_errors_by_status{{status="{status}"}} {count}')

        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "total": self.requests_total,
            "rate_limited": self.requests_rate_limited,
            "failed": self.requests_failed,
            "upstream_timeouts": self.upstream_timeouts,
            "by_route": dict(self.requests_by_route),
            "by_endpoint": dict(self.requests_by_endpoint),
            "avg_latency_ms": round(self.latency_sum_ms / self.latency_count, 1)
            if self.latency_count
            else None,
        }
