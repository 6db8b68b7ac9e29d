"""
Auction configuration parameters for bidescrow.

Defines bidding rules, anti-sniping timing, settlement economics and
logging options. Values can be overridden from the environment or a
.env file using BIDESCROW_* variables.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Tuple

from dotenv import dotenv_values

from bidescrow.utils.logger import resolve_level
from bidescrow.utils.validation import (
    validate_address,
    validate_integer,
    validate_percentage,
)

ENV_PREFIX = "BIDESCROW_"

REFUND_POLICIES = ("outstanding", "replace")


@dataclass
class AuctionConfig:
    """Auction-wide configuration parameters"""

    # Settlement
    commission_rate: int = 2  # Percent of the winning bid kept as commission
    commission_recipient: Optional[str] = None  # None = owner

    # Bidding rules
    min_increment_percent: int = 5  # New bid >= highest + highest * 5 // 100
    refund_policy: str = "outstanding"  # "outstanding" or "replace"

    # Anti-sniping (seconds)
    extension_threshold: int = 600  # Extend when this close to the end
    extension_seconds: int = 600  # Amount added to end_time per late bid

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: Path = Path("logs")

    def validate(self) -> Tuple[bool, str]:
        """
        Check configuration values.

        Returns:
            (is_valid, error_message)
        """
        valid, err = validate_percentage(self.commission_rate, "commission_rate")
        if not valid:
            return False, err

        valid, err = validate_percentage(self.min_increment_percent, "min_increment_percent")
        if not valid:
            return False, err

        valid, err = validate_integer(self.extension_threshold, "extension_threshold", 0, 2**32)
        if not valid:
            return False, err

        valid, err = validate_integer(self.extension_seconds, "extension_seconds", 0, 2**32)
        if not valid:
            return False, err

        if self.refund_policy not in REFUND_POLICIES:
            return False, f"refund_policy must be one of {REFUND_POLICIES}, got {self.refund_policy!r}"

        if self.commission_recipient is not None:
            valid, err = validate_address(self.commission_recipient, "commission_recipient")
            if not valid:
                return False, err

        try:
            resolve_level(self.log_level)
        except ValueError as e:
            return False, str(e)

        return True, ""


def _coerce(name: str, raw: str, default):
    """Convert an environment string to the type of the field default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, Path):
        return Path(raw)
    if name == "commission_recipient":
        return raw or None
    return raw


def load_config(env_file: Optional[str] = None) -> AuctionConfig:
    """
    Load configuration from a .env file and the process environment.

    Process environment variables win over values in the file.

    Args:
        env_file: Optional path to a .env file

    Returns:
        AuctionConfig instance

    Raises:
        ValueError: if a value cannot be parsed or fails validation
    """
    values = {}
    if env_file:
        values.update(dotenv_values(env_file))
    values.update(os.environ)

    overrides = {}
    defaults = AuctionConfig()
    for f in fields(AuctionConfig):
        raw = values.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        try:
            overrides[f.name] = _coerce(f.name, raw, getattr(defaults, f.name))
        except ValueError:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}")

    cfg = replace(defaults, **overrides)
    valid, err = cfg.validate()
    if not valid:
        raise ValueError(f"Invalid configuration: {err}")

    return cfg
