"""
Thread-safe in-memory metrics collector.

Tracks:
  - Traffic: generation counters by task kind
  - Errors: failure counters by error kind, plus the last 50 errors
  - Latency: per-task-kind duration samples with p50/p95
  - Fallback: how often a video model was abandoned for the next one

All data is ephemeral (resets on restart).
"""

import time
import threading
from typing import Dict, List
from collections import defaultdict

_lock = threading.Lock()
_started_at = time.time()

# ── Counters ──────────────────────────────────────────────────────────────────
_counters: Dict[str, int] = defaultdict(int)

# ── Gauges ────────────────────────────────────────────────────────────────────
_gauges: Dict[str, float] = defaultdict(float)

# ── Latency samples (last 100 per task kind) ─────────────────────────────────
_latency_samples: Dict[str, List[float]] = defaultdict(list)
MAX_SAMPLES = 100

# ── Error log (last 50 errors) ────────────────────────────────────────────────
_recent_errors: List[dict] = []
MAX_ERRORS = 50


# ── Public API ────────────────────────────────────────────────────────────────

def inc_counter(name: str, amount: int = 1):
    """Increment a counter (e.g. 'generate.video', 'errors.rate_limited')."""
    with _lock:
        _counters[name] += amount


def set_gauge(name: str, value: float):
    """Set a gauge value (e.g. 'active_generations')."""
    with _lock:
        _gauges[name] = value


def record_latency(task_kind: str, duration_ms: float):
    """Record a latency sample in milliseconds."""
    with _lock:
        samples = _latency_samples[task_kind]
        samples.append(duration_ms)
        if len(samples) > MAX_SAMPLES:
            _latency_samples[task_kind] = samples[-MAX_SAMPLES:]


def record_error(task_kind: str, error_kind: str, message: str, node_id: str = ""):
    """Record an error and bump its counter."""
    with _lock:
        _counters[f"errors.{error_kind}"] += 1
        _recent_errors.append({
            "timestamp": time.time(),
            "task_kind": task_kind,
            "error_kind": error_kind,
            "message": message[:300],
            "node_id": node_id,
        })
        if len(_recent_errors) > MAX_ERRORS:
            _recent_errors.pop(0)


def _percentile(sorted_values: List[float], pct: float) -> float:
    if not sorted_values:
        return 0.0
    idx = int(len(sorted_values) * pct / 100)
    idx = min(idx, len(sorted_values) - 1)
    return round(sorted_values[idx], 1)


def get_snapshot() -> dict:
    """Return a JSON-serializable snapshot of all metrics."""
    with _lock:
        latency = {}
        for task_kind, samples in _latency_samples.items():
            s = sorted(samples)
            latency[task_kind] = {
                "count": len(s),
                "p50": _percentile(s, 50),
                "p95": _percentile(s, 95),
                "max": round(s[-1], 1) if s else 0,
            }

        return {
            "uptime_seconds": round(time.time() - _started_at, 1),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "latency": latency,
            "recent_errors": list(reversed(_recent_errors[-20:])),
        }


def reset():
    """Clear everything (used by tests)."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _latency_samples.clear()
        _recent_errors.clear()
