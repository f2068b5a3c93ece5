#!/usr/bin/env python
"""Run the SheetPilot backend under uvicorn.

Usage:
    python api_server.py [--port 8000] [--host 0.0.0.0] [--reload] [--verbose] [--log-file]
"""

import argparse
import os
from datetime import datetime

import uvicorn

from api.app import create_app

app = create_app()


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SheetPilot spreadsheet-assistant server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    parser.add_argument("--verbose", "-v", action="store_true", help="DEBUG logs on the console")
    parser.add_argument(
        "--log-file", action="store_true", help="Also write DEBUG logs to <data_dir>/logs/"
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = _parse_args()
    # Read back by the app lifespan
    if args.verbose:
        os.environ["SHEETPILOT_VERBOSE"] = "1"
    if args.log_file:
        os.environ.setdefault("SHEETPILOT_LOG_FILE", datetime.now().strftime("%Y%m%d_%H%M%S"))
    uvicorn.run("api_server:app", host=args.host, port=args.port, reload=args.reload)
