"""I/O utilities for logging setup and atomic file writes."""

import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path


def setup_logging(log_dir: Path, log_level: str = "INFO") -> logging.Logger:
    """Set up logging configuration for gifcompose.

    Args:
        log_dir: Directory to store log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"gifcompose_{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    return logging.getLogger("gifcompose")


@contextmanager
def atomic_write(target_path: Path, mode: str = "wb"):
    """Context manager for atomic file writes using temporary files.

    The temporary file lives next to the target, so the final rename never
    crosses a filesystem. On any exception the temporary file is removed and
    ``target_path`` is left untouched.

    Args:
        target_path: Final path where file should be written
        mode: File open mode

    Yields:
        File handle for writing

    Example:
        with atomic_write(Path("out.gif")) as f:
            f.write(data)
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    temp_file = tempfile.NamedTemporaryFile(
        mode=mode,
        dir=target_path.parent,
        delete=False,
        suffix=f".tmp_{target_path.name}"
    )
    try:
        with temp_file:
            yield temp_file
            temp_file.flush()
        os.replace(temp_file.name, target_path)
    except BaseException:
        Path(temp_file.name).unlink(missing_ok=True)
        raise


def ensure_directories(*paths: Path) -> None:
    """Ensure that all specified directories exist.

    Args:
        *paths: Directory paths to create
    """
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)
