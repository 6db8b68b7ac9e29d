"""
Input Validation - checks for values crossing the engine boundary.

Every external input (principal addresses, attached value, timestamps,
durations) is validated before it reaches the accounting code, so that
malformed input is rejected without touching state.
"""

from typing import Any, Tuple

from bidescrow.crypto import is_valid_address

# =============================================================================
# Constants
# =============================================================================

MIN_AMOUNT = 0
MAX_AMOUNT = 2**256 - 1  # uint256, as on the EVM
MIN_TIMESTAMP = 0
MAX_TIMESTAMP = 2**64 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass; True is not a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any) -> Tuple[bool, str]:
    """Validate a value amount."""
    return validate_integer(amount, "amount", MIN_AMOUNT, MAX_AMOUNT)


def validate_timestamp(timestamp: Any) -> Tuple[bool, str]:
    """Validate a ledger timestamp (seconds)."""
    return validate_integer(timestamp, "current_time", MIN_TIMESTAMP, MAX_TIMESTAMP)


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a principal address (0x + 40 hex chars)."""
    if not isinstance(address, str):
        return False, f"{name} must be str, got {type(address).__name__}"

    if not is_valid_address(address):
        return False, f"{name} is not a valid address: {address!r}"

    return True, ""


def validate_percentage(value: Any, name: str) -> Tuple[bool, str]:
    """Validate an integer percentage in [0, 100]."""
    return validate_integer(value, name, 0, 100)


__all__ = [
    "validate_integer",
    "validate_amount",
    "validate_timestamp",
    "validate_address",
    "validate_percentage",
    "MIN_AMOUNT",
    "MAX_AMOUNT",
]
