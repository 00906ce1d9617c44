import logging
import logging.config
import sys
from pathlib import Path
from typing import Optional
import yaml

LOG_FORMAT = '%(asctime)s | %(name)20s | %(levelname)8s | %(funcName)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints the level name."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        # Tint a copy; the file handlers format the same record afterwards
        tinted = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        tinted.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(tinted)


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    config_path: Optional[str] = None,
    log_level: str = "INFO",
    log_dir: str = "logs"
) -> None:
    """
    Configure the root logger.

    A YAML ``dictConfig`` at ``config_path`` wins. Otherwise logs go to the
    console, to ``billing.log`` and, for errors only, to ``error.log``.
    """
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            logging.config.dictConfig(yaml.safe_load(f))
        return

    level = logging.getLevelName(log_level.upper())
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [
        console,
        _file_handler(log_path / 'billing.log', level),
        _file_handler(log_path / 'error.log', logging.ERROR),
    ]
    # SQL echo is controlled by DB_ECHO, not by the app log level
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
