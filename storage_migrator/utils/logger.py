import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DEFAULT_LOG_DIR = Path.home() / ".storage-migrator" / "logs"

# boto3 logs every request at DEBUG; keep it out of --verbose output.
NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    log_format: str = DEFAULT_LOG_FORMAT,
) -> logging.Logger:
    resolved_level = level or os.environ.get("LOG_LEVEL", "INFO")
    package_logger = logging.getLogger("storage_migrator")
    package_logger.setLevel(getattr(logging, resolved_level.upper(), logging.INFO))

    package_logger.handlers.clear()

    formatter = logging.Formatter(log_format)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"storage_migrator.{name}")


def run_log_path(mode: str, log_dir: Optional[Path] = None) -> Path:
    """Timestamped path for the audit log of one run."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return (log_dir or DEFAULT_LOG_DIR) / f"{mode}-{stamp}.json"
