"""
Thread-safe in-memory metrics collector for the API.

Tracks:
  - Traffic: request counters by endpoint
  - Latency: request and generation duration samples
  - Errors: failure counters by kind, plus the last few for RCA
  - Business: credit rejections, provider polls, videos per platform

All data is ephemeral (resets on restart).
"""

import time
import threading
from typing import Dict, List
from collections import defaultdict

_lock = threading.Lock()

# ── Counters ──────────────────────────────────────────────────────────────────
_counters: Dict[str, int] = defaultdict(int)

# ── Latency samples (last 100 per key) ───────────────────────────────────────
_latency_samples: Dict[str, List[float]] = defaultdict(list)
MAX_SAMPLES = 100

# ── Gauges ────────────────────────────────────────────────────────────────────
_gauges: Dict[str, float] = defaultdict(float)

# ── Error log (last 50 errors for RCA) ────────────────────────────────────────
_recent_errors: List[dict] = []
MAX_ERRORS = 50


# ── Public API ────────────────────────────────────────────────────────────────

def inc_counter(name: str, amount: int = 1):
    """Increment a counter (e.g. 'requests./api/remove-background', 'errors.ProviderError')."""
    with _lock:
        _counters[name] += amount


def record_latency(key: str, duration_ms: float):
    """Record a latency sample in milliseconds."""
    with _lock:
        samples = _latency_samples[key]
        samples.append(duration_ms)
        if len(samples) > MAX_SAMPLES:
            _latency_samples[key] = samples[-MAX_SAMPLES:]


def set_gauge(name: str, value: float):
    with _lock:
        _gauges[name] = value


def record_error(endpoint: str, error_type: str, message: str):
    """Count an error and keep it for root-cause analysis."""
    with _lock:
        _counters[f"errors.{error_type}"] += 1
        _recent_errors.append({
            "timestamp": time.time(),
            "endpoint": endpoint,
            "error_type": error_type,
            "message": message[:300],
        })
        if len(_recent_errors) > MAX_ERRORS:
            _recent_errors.pop(0)


def record_rejection():
    inc_counter("credits.rejected")


def record_poll(provider: str):
    inc_counter(f"polls.{provider}")


def record_generation(platform: str, duration_s: float):
    inc_counter(f"videos.{platform}")
    record_latency(f"generation.{platform}", duration_s * 1000)


def reset():
    """Clear everything (tests)."""
    with _lock:
        _counters.clear()
        _latency_samples.clear()
        _gauges.clear()
        _recent_errors.clear()


def get_snapshot() -> dict:
    """
    Return a complete metrics snapshot for the /metrics endpoint.
    Thread-safe read of all collected data.
    """
    now = time.time()

    with _lock:
        latency_stats = {}
        for key, samples in _latency_samples.items():
            if not samples:
                continue
            sorted_s = sorted(samples)
            n = len(sorted_s)
            latency_stats[key] = {
                "p50": sorted_s[n // 2],
                "p95": sorted_s[int(n * 0.95)] if n >= 20 else sorted_s[-1],
                "avg": sum(sorted_s) / n,
                "count": n,
            }

        requests_total = sum(v for k, v in _counters.items() if k.startswith("requests."))
        errors_total = sum(v for k, v in _counters.items() if k.startswith("errors."))
        error_rate = (errors_total / requests_total * 100) if requests_total > 0 else 0

        return {
            "timestamp": now,
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "latency": latency_stats,
            "error_rate": round(error_rate, 2),
            "recent_errors": list(_recent_errors[-10:]),
            "uptime_seconds": now - _gauges.get("start_time", now),
        }
