#!/usr/bin/env python3
"""
Background Sync Worker
Runs tender syncs on a fixed interval as a separate process from the API.
The scheduling loop itself is SyncScheduler.run_forever, shared with the API process.

Usage:
    python worker.py            # loop forever
    python worker.py --once     # single run, exit code reflects success
    python worker.py --full     # single forced full resync
"""

import os
import sys
import argparse
import traceback
from datetime import datetime
from dotenv import load_dotenv

# Add the parent directory to the path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

# Load environment variables
load_dotenv()

import requests

from config.settings import create_supabase_client
from services.scheduler_service import build_scheduler
from utils.logging_config import get_logger

# Setup logger
logger = get_logger(__name__, "worker")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Tender sync worker")
    parser.add_argument("--once", action="store_true", help="run a single sync and exit")
    parser.add_argument("--full", action="store_true", help="run a single forced full resync and exit")
    args = parser.parse_args(argv)

    scheduler = build_scheduler(create_supabase_client(service_role=True), session=requests.Session())

    if args.once or args.full:
        result = scheduler.run_once(force_full=args.full)
        logger.info(f"Single sync finished: success={result.get('success')}")
        return 0 if result.get("success") else 1

    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Worker stopped by user (KeyboardInterrupt)")
        scheduler.stop()
    return 0


if __name__ == "__main__":
    logger.info("=" * 80)
    logger.info("Tender Sync Worker Starting")
    logger.info(f"Started at: {datetime.now().isoformat()}")
    logger.info("=" * 80)

    try:
        sys.exit(main())
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        traceback.print_exc()
        sys.exit(1)
    finally:
        logger.info("Worker shutting down")
