"""
Logging setup for fold runs.

Log records go to stderr so that structures printed on stdout stay machine
readable. While the MFE, partition function and outside fills draw `tqdm`
progress bars on stderr, records are routed through `tqdm.write` so that a
message never tears a bar apart.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from tqdm import tqdm

DEFAULT_LOG_DIR = Path("var/log")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# `-v` count to logging level.
VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that writes through `tqdm.write`.

    Records printed while a fill's progress bar is active appear above the
    bar, which is then redrawn.
    """

    def __init__(self, stream=None, level: int = logging.NOTSET):
        super().__init__(level)
        self.stream = stream if stream is not None else sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        if self.stream and hasattr(self.stream, "flush"):
            self.stream.flush()


def level_for_verbosity(verbose_level: int) -> int:
    """Logging level of a `-v` count; anything above two means DEBUG."""
    return VERBOSITY_LEVELS.get(verbose_level, logging.DEBUG)


def get_log_file_path(
        logger_name: str,
        log_dir: Optional[Path] = None,
        include_timestamp: bool = True
) -> Path:
    """
    Path of the log file of one fold run, e.g. `var/log/rna_ali_fold_20260101_120000.log`.

    The directory is created if needed.
    """
    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    safe_name = logger_name.replace(".", "_")
    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return log_dir / f"{safe_name}_{timestamp}.log"
    return log_dir / f"{safe_name}.log"


def setup_logger(
    name: str,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = False,
    progress_bars: bool = True,
) -> logging.Logger:
    """
    Configures a logger with a console handler and an optional file handler.

    Existing handlers are cleared to prevent duplicate messages.

    Parameters
    ----------
    name : str
        The logger name, normally the package name `rna_ali_fold`.
    level : int
        Level of the logger and its handlers.
    log_file : Optional[str]
        Explicit log file path; overrides `log_dir`.
    log_dir : Optional[Path]
        Directory of the timestamped log file. Defaults to `DEFAULT_LOG_DIR`.
    enable_file_logging : bool
        Create a timestamped log file when `log_file` is not given.
    progress_bars : bool
        Write console records through `TqdmLoggingHandler`. The fills only
        draw progress bars at INFO and below, so a plain stream handler is
        used otherwise.

    Returns
    -------
    logging.Logger
        The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if progress_bars and level <= logging.INFO:
        console_handler: logging.Handler = TqdmLoggingHandler(sys.stderr)
    else:
        console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    file_handler = None
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
    elif enable_file_logging:
        log_path = get_log_file_path(name, log_dir=log_dir)
        file_handler = logging.FileHandler(log_path, mode="a")
        logger.info(f"Logging to file: {log_path}")

    if file_handler:
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger
