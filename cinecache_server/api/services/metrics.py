from __future__ import annotations

from collections.abc import Mapping
from threading import RLock

_LOCK = RLock()
_METRICS: dict[str, int] = {
    "http_requests_total": 0,
    "http_errors_4xx_total": 0,
    "http_errors_5xx_total": 0,
    "search_requests_total": 0,
    "detail_requests_total": 0,
    "provider_failures_total": 0,
    "store_unavailable_total": 0,
    "admin_denied_total": 0,
}


def inc(name: str, value: int = 1) -> None:
    with _LOCK:
        _METRICS[name] = _METRICS.get(name, 0) + value


def snapshot() -> dict[str, int]:
    with _LOCK:
        return dict(_METRICS)


def render_prometheus(extra: Mapping[str, Mapping[str, int]] | None = None) -> str:
    """
    Contadores del servidor + snapshots de componentes del core
    (prefijados: `<componente>_<métrica>_total`).
    """
    with _LOCK:
        merged: dict[str, int] = dict(_METRICS)

    for prefix, values in (extra or {}).items():
        for k, v in values.items():
            merged[f"{prefix}_{k}_total"] = int(v)

    lines: list[str] = []
    for k, v in sorted(merged.items()):
        lines.append(f"# TYPE {k} counter")
        lines.append(f"{k} {v}")
    return "\n".join(lines) + "\n"
