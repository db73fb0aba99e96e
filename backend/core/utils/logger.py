import logging
import os
import sys
from datetime import datetime
from typing import Optional

log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: Optional[str] = None, logs_dir: Optional[str] = None) -> None:
    """
    Configure the root logger for the service.

    Args:
        log_level: Level name, defaults to the LOG_LEVEL environment variable
        logs_dir: Directory for the dated log file; no file is written when empty
    """
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handlers = [logging.StreamHandler(sys.stdout)]

    if logs_dir:
        os.makedirs(logs_dir, exist_ok=True)
        handlers.append(
            logging.FileHandler(
                os.path.join(logs_dir, f"template_generator_{datetime.now().strftime('%Y-%m-%d')}.log")
            )
        )

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=log_format,
        handlers=handlers,
        force=True,
    )
