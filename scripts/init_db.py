#!/usr/bin/env python
"""Create the LeadBot tables in the configured SQLite database."""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.core.database import get_db_path, init_database
from backend.core.logger import logger


if __name__ == "__main__":
    init_database()
    logger.info(f"Database initialized at {get_db_path()}")
