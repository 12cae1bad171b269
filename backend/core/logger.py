import logging
import sys
from pathlib import Path

from .config import settings

# Create logs directory
log_path = Path(settings.log_file)
log_path.parent.mkdir(parents=True, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_path)
    ]
)

logger = logging.getLogger("leadbot")
