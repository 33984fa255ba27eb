"""
Logging setup for the bakery inventory app.

- Rotating file log under the data directory (info and up by default)
- Console output for errors
"""
import logging
import logging.handlers
from pathlib import Path

APP_LOGGER = "bakery"


def setup_logging(log_dir, *, file_level: int = logging.INFO, console_level: int = logging.ERROR) -> logging.Logger:
    """
    Attach handlers to the package logger once; later calls return it unchanged.

    Args:
        log_dir: Directory for log files (created if missing)
        file_level: Minimum level written to the log file
        console_level: Minimum level echoed to stderr

    Returns:
        The configured "bakery" logger
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers (Streamlit re-runs scripts on every interaction)
    if logger.handlers:
        return logger

    file_handler = logging.handlers.RotatingFileHandler(
        log_path / "bakery.log",
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(console_handler)

    return logger
