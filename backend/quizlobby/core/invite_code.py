"""
Invite code generator for shareable lobby codes.

Codes are random hex tokens drawn from the ``secrets`` module. They act
as capabilities, so they must be unguessable rather than memorable.
Example: 9f2c4a7be01d53c8
"""

import re
import secrets

# Minimum entropy for a code, in bytes
MIN_CODE_BYTES = 8

_CODE_PATTERN = re.compile(r"^[0-9a-f]+$")


def generate_invite_code(num_bytes: int = MIN_CODE_BYTES) -> str:
    """
    Generate a random invite code.

    Args:
        num_bytes: Bytes of entropy (at least MIN_CODE_BYTES)

    Returns:
        Lowercase hex string, two characters per byte

    Raises:
        ValueError: If num_bytes is below the minimum
    """
    if num_bytes < MIN_CODE_BYTES:
        raise ValueError(f"Invite codes need at least {MIN_CODE_BYTES} bytes of entropy")
    return secrets.token_hex(num_bytes)


def normalize_invite_code(code: str) -> str:
    """Strip whitespace and lowercase a user-supplied code."""
    return (code or "").strip().lower()


def is_valid_invite_code(code: str) -> bool:
    """
    Validate invite code format.

    Args:
        code: Code to validate

    Returns:
        True if code is an even-length hex string of sufficient entropy
    """
    if not code:
        return False

    code = normalize_invite_code(code)
    if len(code) < MIN_CODE_BYTES * 2 or len(code) % 2:
        return False

    return bool(_CODE_PATTERN.match(code))
