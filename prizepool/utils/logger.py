import logging
import sys
from datetime import datetime
from pathlib import Path

from prizepool.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _daily_file_handler(log_dir: Path, prefix: str, level: int, formatter: logging.Formatter) -> logging.FileHandler:
    handler = logging.FileHandler(
        log_dir / f'{prefix}_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str) -> logging.Logger:
    """
    Setup a settlement logger.

    Everything goes to stdout and the daily settlement log. ERROR and above
    (failed days, consistency anomalies, migration holds) is also written to
    a separate daily anomalies log that operators review.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.addHandler(_daily_file_handler(log_dir, 'settlement', logging.DEBUG, formatter))
    logger.addHandler(_daily_file_handler(log_dir, 'anomalies', logging.ERROR, formatter))

    return logger
