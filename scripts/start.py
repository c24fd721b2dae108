#!/usr/bin/env python3
"""
Container entry point: release, then hand the process over to gunicorn.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("crm.start")

DEFAULT_PORT = 8080


def listen_port() -> int:
    raw = (os.environ.get("PORT") or "").strip()
    if not raw:
        return DEFAULT_PORT
    if not raw.isdigit() or not 1 <= int(raw) <= 65535:
        raise SystemExit(f"PORT={raw!r} is not a TCP port number.")
    return int(raw)


def gunicorn_argv(port: int) -> list[str]:
    workers = (os.environ.get("WEB_CONCURRENCY") or "2").strip()
    return [
        "gunicorn",
        "app.wsgi:app",
        f"--bind=0.0.0.0:{port}",
        f"--workers={workers}",
        "--timeout=60",
        "--preload",
        "--access-logfile=-",
        "--error-logfile=-",
    ]


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = listen_port()

    from scripts.release import run_release

    try:
        run_release()
    except Exception:
        logger.exception("Release step failed; not starting the web server")
        raise SystemExit(1)

    argv = gunicorn_argv(port)
    logger.info("exec %s", " ".join(argv))
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
