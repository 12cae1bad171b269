#!/usr/bin/env python
"""Run the daily outreach job once, outside the scheduler."""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.core.config import settings
from backend.core.database import init_database
from backend.core.logger import logger
from backend.services.container import get_services


async def run_once():
    services = get_services()
    result = await services.runner.run()

    logger.info("=" * 50)
    logger.info(f"Job:       {result.job_id}")
    logger.info(f"Status:    {result.status.value}")
    logger.info(f"Attempted: {result.leads_processed}")
    logger.info(f"Sent:      {result.leads_sent}")
    if result.error_message:
        logger.info(f"Note:      {result.error_message}")
    logger.info("=" * 50)
    return result


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run one outreach pass over new leads")
    parser.add_argument("--live", action="store_true",
                        help="Really send messages (default follows DRY_RUN)")

    args = parser.parse_args()
    if args.live:
        settings.dry_run = False

    init_database()
    logger.info(f"Mode: {'DRY RUN' if settings.dry_run else 'LIVE'}")
    asyncio.run(run_once())
