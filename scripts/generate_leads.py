#!/usr/bin/env python
"""Script to generate leads with the scraper stub and save them to the database."""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.core.config import settings
from backend.core.database import init_database
from backend.core.logger import logger
from backend.services.lead_generator import SOURCES, LeadGenerator
from backend.stores.jobs import JobStore
from backend.stores.leads import LeadStore
from backend.stores.records import LogStore


def main():
    """Generate leads and save to database."""
    import argparse

    parser = argparse.ArgumentParser(description="Generate leads using Faker")
    parser.add_argument("-s", "--seed", type=int, default=None,
                        help="Random seed (default: 15 from config)")
    parser.add_argument("-n", "--count", type=int, default=20,
                        help="Number of leads to generate")
    parser.add_argument("-k", "--keywords", default="",
                        help="Keywords added to each lead name")

    args = parser.parse_args()

    seed = args.seed if args.seed is not None else settings.random_seed

    logger.info("=" * 50)
    logger.info("Lead Generation Script")
    logger.info(f"Using seed: {seed}")
    logger.info(f"Generating: {args.count} leads")
    logger.info("=" * 50)

    init_database()
    generator = LeadGenerator(LeadStore(), JobStore(), LogStore(), seed=seed)

    candidates = generator.generate_leads(args.count, args.keywords, SOURCES)
    result = generator.save_leads(candidates)

    logger.info("=" * 50)
    logger.info("Summary:")
    logger.info(f"  Generated: {len(candidates)} leads")
    logger.info(f"  Saved:     {result['saved']} leads")
    logger.info(f"  Skipped:   {result['skipped']} duplicates")
    logger.info("=" * 50)

    logger.info("Sample leads:")
    for i, lead in enumerate(candidates[:5], 1):
        logger.info(f"{i}. {lead.name}")
        logger.info(f"   Email:  {lead.email}")
        logger.info(f"   Phone:  {lead.phone}")
        logger.info(f"   Source: {lead.source_url}")


if __name__ == "__main__":
    main()
