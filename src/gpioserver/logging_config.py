import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Union


def setup_logging(
    log_level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    when: str = "midnight",
    backup_count: int = 7,
) -> None:
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            rotating_handler = TimedRotatingFileHandler(
                filename=log_file,
                when=when,
                interval=1,
                backupCount=backup_count,
                encoding="utf-8",
            )
            rotating_handler.setFormatter(formatter)
            root_logger.addHandler(rotating_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
