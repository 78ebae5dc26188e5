from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _bootstrap_src() -> None:
    root = Path(__file__).resolve().parent
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def main() -> int:
    _bootstrap_src()

    parser = argparse.ArgumentParser(description="Serve the Array of Babel HTTP API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--live", action="store_true", help="advance the game in real time between requests")
    args = parser.parse_args()

    import uvicorn

    if args.live:
        from babelsim.webapp import create_app

        uvicorn.run(create_app(live=True), host=args.host, port=args.port, reload=False)
    else:
        uvicorn.run("babelsim.webapp:app", host=args.host, port=args.port, reload=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
