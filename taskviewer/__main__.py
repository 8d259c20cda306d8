"""Command-line launcher: ``python -m taskviewer``."""
from __future__ import annotations

import argparse
import threading
import webbrowser

import uvicorn

from taskviewer import config


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve a live view of coding-assistant task lists.")
    parser.add_argument("--host", default=config.HOST, help="Interface to bind.")
    parser.add_argument("--port", type=int, default=config.PORT, help="Port to listen on.")
    parser.add_argument("--open", action="store_true", help="Open the viewer in a browser once started.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    url = f"http://{'localhost' if args.host in {'0.0.0.0', '127.0.0.1'} else args.host}:{args.port}"
    print(f"Task viewer running at {url}")
    if args.open:
        threading.Timer(1.0, webbrowser.open, args=(url,)).start()
    uvicorn.run("taskviewer.main:app", host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
