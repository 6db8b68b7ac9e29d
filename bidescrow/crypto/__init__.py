"""
Hashing and address helpers for bidescrow.

Principals are identified by Ethereum-style addresses: a 0x prefix followed
by 20 hex-encoded bytes. Addresses for demos and tests are derived from a
human-readable seed so the same label always maps to the same principal.

Keccak-256 is used for:
- Address derivation (EVM convention)
- Bid record IDs in the audit trail
- Auction IDs used to tag log lines
"""

from Crypto.Hash import keccak


# =============================================================================
# Constants
# =============================================================================

ADDRESS_SIZE = 20  # bytes


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation, bid record IDs, auction IDs.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Addresses
# =============================================================================


def address_from_public_key(public_key: bytes) -> str:
    """
    Derive address from public key.

    Address = last 20 bytes of keccak256(public_key), hex-encoded with 0x prefix.
    """
    return bytes_to_hex(keccak256(public_key)[-ADDRESS_SIZE:])


def address_from_seed(seed: str) -> str:
    """Deterministic address for a label such as 'alice'."""
    return address_from_public_key(seed.encode("utf-8"))


def bid_record_id(bidder: str, amount: int, position: int) -> str:
    """Content ID of a bid record: keccak256(bidder || amount || position)."""
    payload = (
        hex_to_bytes(bidder)
        + amount.to_bytes(32, "big")
        + position.to_bytes(8, "big")
    )
    return bytes_to_hex(keccak256(payload))


def auction_id(owner: str, created_time: int) -> str:
    """
    Stable identifier of an auction: keccak256(owner || created_time).

    Neither input changes after creation, so the ID survives extensions
    and settlement.
    """
    payload = hex_to_bytes(owner) + created_time.to_bytes(8, "big")
    return bytes_to_hex(keccak256(payload))


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not isinstance(address, str):
        return False
    if not address.startswith("0x"):
        return False
    if len(address) != 2 + ADDRESS_SIZE * 2:
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def short(address: str) -> str:
    """Abbreviated address for log lines."""
    return address[:10] if address else "<none>"


__all__ = [
    "ADDRESS_SIZE",
    "keccak256",
    "address_from_public_key",
    "address_from_seed",
    "bid_record_id",
    "auction_id",
    "bytes_to_hex",
    "hex_to_bytes",
    "is_valid_address",
    "short",
]
