from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, Tuple


_lock = threading.Lock()
_count: Dict[Tuple[str, str, int], int] = defaultdict(int)
_asset_count: Dict[int, int] = defaultdict(int)
_build_count: Dict[str, int] = defaultdict(int)
_reload_count = 0
_sse_clients = 0
_buckets = [
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
]
_hist_count: Dict[str, int] = defaultdict(int)
_hist_sum: Dict[str, float] = defaultdict(float)
_hist_buckets: Dict[Tuple[str, float], int] = defaultdict(int)


def _observe_duration(name: str, duration_s: float) -> None:
    # caller holds _lock
    _hist_count[name] += 1
    _hist_sum[name] += float(duration_s)
    for le in _buckets:
        if duration_s <= le:
            _hist_buckets[(name, le)] += 1
            return
    _hist_buckets[(name, float("inf"))] += 1


def observe_request(handler: str, method: str, status: int, duration_s: float) -> None:
    key = (handler, method.upper(), int(status))
    with _lock:
        _count[key] += 1
        _observe_duration("http", duration_s)


def observe_asset(status: int) -> None:
    with _lock:
        _asset_count[int(status)] += 1


def observe_build(outcome: str, duration_s: float) -> None:
    with _lock:
        _build_count[outcome] += 1
        _observe_duration("build", duration_s)


def observe_reload() -> None:
    global _reload_count
    with _lock:
        _reload_count += 1


def set_sse_clients(count: int) -> None:
    global _sse_clients
    with _lock:
        _sse_clients = int(count)


def reset_metrics() -> None:
    """Testing helper to clear all counters."""
    global _reload_count, _sse_clients
    with _lock:
        _count.clear()
        _asset_count.clear()
        _build_count.clear()
        _hist_count.clear()
        _hist_sum.clear()
        _hist_buckets.clear()
        _reload_count = 0
        _sse_clients = 0


def _esc(v: str) -> str:
    return v.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _histogram_lines(metric: str, name: str) -> list[str]:
    lines = []
    cumulative = 0
    for le in _buckets:
        cumulative += _hist_buckets.get((name, le), 0)
        lines.append(f'{metric}_bucket{{le="{le}"}} {int(cumulative)}')
    cumulative += _hist_buckets.get((name, float("inf")), 0)
    lines.append(f'{metric}_bucket{{le="+Inf"}} {int(cumulative)}')
    lines.append(f"{metric}_sum {float(_hist_sum.get(name, 0.0))}")
    lines.append(f"{metric}_count {int(_hist_count.get(name, 0))}")
    return lines


def export_prometheus() -> str:
    lines = []
    with _lock:
        lines.append("# HELP assets_http_request_total Total HTTP requests")
        lines.append("# TYPE assets_http_request_total counter")
        for (handler, method, status), val in sorted(_count.items()):
            lines.append(
                f'assets_http_request_total{{handler="{_esc(handler)}",method="{_esc(method)}",status="{int(status)}"}} {int(val)}'
            )
        lines.append("# HELP assets_http_request_duration_seconds Request duration histogram")
        lines.append("# TYPE assets_http_request_duration_seconds histogram")
        lines.extend(_histogram_lines("assets_http_request_duration_seconds", "http"))

        lines.append("# HELP assets_served_total Static asset responses by status")
        lines.append("# TYPE assets_served_total counter")
        for status, val in sorted(_asset_count.items()):
            lines.append(f'assets_served_total{{status="{int(status)}"}} {int(val)}')

        lines.append("# HELP assets_builds_total Pipeline builds by outcome")
        lines.append("# TYPE assets_builds_total counter")
        for outcome, val in sorted(_build_count.items()):
            lines.append(f'assets_builds_total{{outcome="{_esc(outcome)}"}} {int(val)}')
        lines.append("# HELP assets_build_duration_seconds Pipeline build duration histogram")
        lines.append("# TYPE assets_build_duration_seconds histogram")
        lines.extend(_histogram_lines("assets_build_duration_seconds", "build"))

        lines.append("# HELP assets_reloads_total Reload broadcasts sent to dev clients")
        lines.append("# TYPE assets_reloads_total counter")
        lines.append(f"assets_reloads_total {int(_reload_count)}")
        lines.append("# HELP assets_sse_clients Connected hot reload clients")
        lines.append("# TYPE assets_sse_clients gauge")
        lines.append(f"assets_sse_clients {int(_sse_clients)}")
    return "\n".join(lines) + "\n"
