#!/usr/bin/env python3
"""
Serve the live score trigger API.

Point the scheduler (cron, Netlify/Vercel cron, Cloud Scheduler) at
POST /api/v1/live-scores/poll.

Usage:
  python backend/scripts/run_api.py [--port 8000] [--no-reload]
"""
import argparse
import os
import sys
from pathlib import Path

backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend / "src"))
os.chdir(backend)

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the live score sync API")
    parser.add_argument("--host", default=os.getenv("API_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload in development")
    args = parser.parse_args()

    reload = os.getenv("ENVIRONMENT", "development") == "development" and not args.no_reload
    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=reload)


if __name__ == "__main__":
    main()
