"""Package-wide logger."""

import logging

from .config import LOG_LEVEL

logger = logging.getLogger("congo_growth")

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(_handler)
    logger.setLevel(LOG_LEVEL)
