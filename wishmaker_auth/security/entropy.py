"""Signing-secret strength checks."""

import math
from collections import Counter
from typing import Optional

from wishmaker_auth.exceptions import SecretValidationError

DEFAULT_MIN_LENGTH = 16
DEFAULT_MIN_ENTROPY_BITS = 128


def compute_entropy_bits(secret: str) -> float:
    """
    Total Shannon entropy of a string in bits.

    Per-symbol entropy is computed from the character frequencies of the
    string itself and multiplied by its length.

    Args:
        secret: String to measure

    Returns:
        float: Total entropy in bits, 0.0 for an empty string
    """
    if not secret:
        return 0.0

    length = len(secret)
    per_symbol = 0.0
    for count in Counter(secret).values():
        probability = count / length
        per_symbol -= probability * math.log2(probability)

    return per_symbol * length


def validate_high_entropy_secret(
    secret: Optional[str],
    min_length: int = DEFAULT_MIN_LENGTH,
    min_entropy_bits: float = DEFAULT_MIN_ENTROPY_BITS,
) -> str:
    """
    Check that a signing secret is present, long enough and random enough.

    Args:
        secret: Candidate secret
        min_length: Minimum number of characters
        min_entropy_bits: Minimum total Shannon entropy

    Returns:
        str: The secret, unchanged

    Raises:
        SecretValidationError: If any requirement is not met
    """
    if not secret:
        raise SecretValidationError("JWT_SECRET is not set")

    if len(secret) < min_length:
        raise SecretValidationError(
            f"JWT_SECRET must be at least {min_length} characters long"
        )

    bits = compute_entropy_bits(secret)
    if bits < min_entropy_bits:
        raise SecretValidationError(
            f"JWT_SECRET has insufficient entropy ({bits:.1f} bits, "
            f"need at least {min_entropy_bits:g})"
        )

    return secret
