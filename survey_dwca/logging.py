"""
Logging configuration
"""

import logging
import sys


def setup_logging(level: str = "INFO"):
    """Configure application logging"""

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # HTTP and AWS client chatter
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging configured at %s level", level.upper())
