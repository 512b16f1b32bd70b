#!/usr/bin/env python3
"""
Production startup script.

1. Validates PORT
2. Runs migrations + seed (release.py) unless SKIP_RELEASE=1
3. Replaces this process with gunicorn serving app.wsgi:app

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

DEFAULT_PORT = 8080
DEFAULT_WORKERS = 2


def _port() -> int:
    raw = (os.environ.get("PORT") or "").strip()
    if not raw:
        print(f"WARNING: PORT not set, using default {DEFAULT_PORT}", flush=True)
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        port = -1
    if port < 1 or port > 65535:
        print(f"ERROR: Invalid PORT value '{raw}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)
    return port


def _workers() -> int:
    raw = (os.environ.get("WEB_CONCURRENCY") or "").strip()
    try:
        return max(int(raw), 1) if raw else DEFAULT_WORKERS
    except ValueError:
        return DEFAULT_WORKERS


def gunicorn_argv(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _port()

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        print("=== Running release phase ===", flush=True)
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    argv = gunicorn_argv(port, _workers())
    print(f"=== Starting gunicorn on 0.0.0.0:{port} ===", flush=True)
    # exec keeps gunicorn as PID 1 so it receives container signals directly.
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
