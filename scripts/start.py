#!/usr/bin/env python3
"""
Production entry point.

1. release.py: migrations + idempotent seed
2. catch-up maintenance: shifts left ACTIVE while the service was down are
   closed and due HELD bonuses released (same job as auto_close_shifts.py)
3. exec gunicorn

Environment: PORT (default 8080), WEB_CONCURRENCY (2), GUNICORN_TIMEOUT (60),
SKIP_STARTUP_MAINTENANCE=1 to skip step 2.

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _int_env(name: str, default: int, *, low: int, high: int) -> str:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return str(default)
    try:
        value = int(raw)
    except ValueError:
        value = low - 1
    if not low <= value <= high:
        print(f"ERROR: Invalid {name} value '{raw}'. Must be integer {low}-{high}.", flush=True)
        sys.exit(1)
    return str(value)


def _maintenance() -> None:
    if (os.environ.get("SKIP_STARTUP_MAINTENANCE") or "").strip() in ("1", "true", "yes"):
        print("Startup maintenance skipped.", flush=True)
        return
    from scripts.auto_close_shifts import run

    # Maintenance problems must not keep the API down; cron retries later
    try:
        result = run()
    except Exception as e:
        print(f"WARNING: startup maintenance failed: {e}", flush=True)
        return
    print(
        f"Startup maintenance: closed {result['closed']} shift(s), "
        f"released {result['releasedPayments']} and burned {result['burnedPayments']} held bonus payment(s).",
        flush=True,
    )


def main() -> None:
    port = _int_env("PORT", 8080, low=1, high=65535)
    workers = _int_env("WEB_CONCURRENCY", 2, low=1, high=64)
    timeout = _int_env("GUNICORN_TIMEOUT", 60, low=1, high=3600)

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    _maintenance()

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers, timeout {timeout}s) ===", flush=True)
    # exec keeps gunicorn as PID 1 so it receives signals directly
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--workers", workers,
            "--timeout", timeout,
            "--preload",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()
