#!/usr/bin/env python3
"""Serve the MAKER API with uvicorn.

    python run.py --reload              # development, 127.0.0.1:8000
    python run.py --host 0.0.0.0        # HOST / PORT env vars work too
"""

import argparse
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Serve the MAKER API")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument("--reload", action="store_true", help="restart on code changes")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default=os.getenv("LOG_LEVEL", "info").lower(),
    )
    args = parser.parse_args()

    # One worker: the quest flow busy flag is held in process memory.
    uvicorn.run(
        "maker.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
