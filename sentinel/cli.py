from __future__ import annotations

import argparse

import uvicorn

from sentinel.service.app import create_app
from sentinel.settings import Settings


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Server Sentinel dashboard client")
    ap.add_argument("--backend", default=None, help="backend origin, e.g. http://localhost:8080 (default: SENTINEL_BASE_URL)")
    ap.add_argument("--host", default=None, help="address to serve the dashboard on")
    ap.add_argument("--port", type=int, default=None, help="port to serve the dashboard on")
    ap.add_argument("--run-timeout", type=float, default=None, help="re-enable controls if a run reports no completion within N seconds")
    args = ap.parse_args(argv)

    overrides: dict = {}
    if args.backend:
        overrides["base_url"] = args.backend
    if args.run_timeout is not None:
        overrides["run_timeout_s"] = args.run_timeout
    settings = Settings(**overrides)

    app = create_app(settings)
    uvicorn.run(app, host=args.host or settings.ui_host, port=args.port or settings.ui_port)


if __name__ == "__main__":
    main()
