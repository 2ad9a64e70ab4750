import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _configured
    root = logging.getLogger()
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    root.setLevel(level)
    if _configured:
        return

    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # uvicorn's access log is noisy at DEBUG
    logging.getLogger("uvicorn.access").setLevel(max(level, logging.INFO))
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
