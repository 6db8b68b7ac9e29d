"""
Logging for bidescrow.

Every line carries the auction it belongs to:

    2026-01-01 12:00:00 [bidescrow.engine] [0x3f2a9c1e] INFO     Bid accepted: ...

Engine instances log through an AuctionLogAdapter bound to their auction ID.
Subsystems that are not tied to one auction (bank, events, cli) log through
plain loggers and show "-" in the auction column.

Console output is colored with colorlog; a plain-text file handler can be
enabled through AuctionConfig.log_to_file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog


# =============================================================================
# Formats
# =============================================================================

ROOT_LOGGER = "bidescrow"
LOG_FILE = "bidescrow.log"
NO_AUCTION = "-"
AUCTION_ID_CHARS = 10  # "0x" + 8 hex digits

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = (
    "%(log_color)s%(asctime)s [%(name)s] [%(auction)s] %(levelname)-8s%(reset)s %(message)s"
)
FILE_FORMAT = "%(asctime)s [%(name)s] [%(auction)s] %(levelname)-8s %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def resolve_level(level: Union[int, str]) -> int:
    """
    Turn a level name from configuration ("info", "DEBUG") into its number.

    Raises:
        ValueError: for an unknown level name
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


# =============================================================================
# Auction context
# =============================================================================


class AuctionContextFilter(logging.Filter):
    """Give records without an auction tag the placeholder "-"."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "auction"):
            record.auction = NO_AUCTION
        return True


class AuctionLogAdapter(logging.LoggerAdapter):
    """
    Tags every record with the (abbreviated) auction ID.

    Attributes:
        auction_id: Full auction ID, see bidescrow.crypto.auction_id
    """

    def __init__(self, logger: logging.Logger, auction_id: str):
        super().__init__(logger, {"auction": auction_id[:AUCTION_ID_CHARS]})
        self.auction_id = auction_id

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# Setup
# =============================================================================


class EscrowLogger:
    """Owns the handlers of the bidescrow logger tree"""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: Union[int, str] = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Setup logging configuration.

        Args:
            level: Logging level, as a number or a name such as "INFO"
            log_dir: Directory for the log file. If None, uses ./logs
            log_to_file: Whether to also write to bidescrow.log
            force: Reconfigure even if already initialized
        """
        if cls._initialized and not force:
            return

        level = resolve_level(level)
        root_logger = logging.getLogger(ROOT_LOGGER)
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        context = AuctionContextFilter()

        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.addFilter(context)
        console_handler.setFormatter(colorlog.ColoredFormatter(
            CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS,
        ))
        root_logger.addHandler(console_handler)

        if log_to_file:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            cls._log_dir.mkdir(exist_ok=True, parents=True)

            file_handler = logging.FileHandler(cls._log_dir / LOG_FILE)
            file_handler.setLevel(level)
            file_handler.addFilter(context)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'engine', 'bank')

        Returns:
            Logger instance
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return EscrowLogger.get_logger(name)


def get_auction_logger(name: str, auction_id: str) -> AuctionLogAdapter:
    """Get a subsystem logger whose records are tagged with `auction_id`"""
    return AuctionLogAdapter(EscrowLogger.get_logger(name), auction_id)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
):
    """Setup logging configuration, replacing any earlier handlers"""
    EscrowLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=True)
