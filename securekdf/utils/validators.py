"""
Validation Utilities
====================

Argument validation for key derivation settings.

Configuration mistakes (zero memory, non-positive time targets, degenerate
step counts) produce a weak or broken derivation, so they are always
rejected loudly instead of being clamped to defaults.
"""

from __future__ import annotations

import math
from typing import Optional


class ValidationError(ValueError):
    """Raised when validation fails."""
    pass


class KdfConfigurationError(ValidationError):
    """Raised when key derivation parameters are invalid or missing."""
    pass


def validate_positive_number(
    value: float,
    field_name: str = "value",
) -> float:
    """
    Validate a strictly positive, finite number.

    Args:
        value: The number to validate
        field_name: Name of the field for error messages

    Returns:
        The value as a float

    Raises:
        KdfConfigurationError: If validation fails
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise KdfConfigurationError(f"{field_name} must be a number")

    if math.isnan(value) or math.isinf(value):
        raise KdfConfigurationError(f"{field_name} must be finite")

    if value <= 0:
        raise KdfConfigurationError(f"{field_name} must be positive, got {value}")

    return float(value)


def validate_positive_int(
    value: int,
    field_name: str = "value",
    minimum: int = 1,
) -> int:
    """
    Validate an integer is at least ``minimum``.

    Raises:
        KdfConfigurationError: If validation fails
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise KdfConfigurationError(f"{field_name} must be an integer")

    if value < minimum:
        raise KdfConfigurationError(
            f"{field_name} must be at least {minimum}, got {value}"
        )

    return value


def validate_memory_budget(
    memory_bytes: int,
    hash_output_bytes: int,
    field_name: str = "memory_bytes",
    maximum: Optional[int] = None,
) -> int:
    """
    Validate a lookup-table memory budget.

    The budget must hold at least one hash output, otherwise the table
    degenerates to zero entries.

    Args:
        memory_bytes: Requested budget in bytes
        hash_output_bytes: Digest size of the hash in use
        field_name: Name of the field for error messages
        maximum: Optional upper bound

    Returns:
        The validated budget

    Raises:
        KdfConfigurationError: If validation fails
    """
    validate_positive_int(memory_bytes, field_name)

    if memory_bytes < hash_output_bytes:
        raise KdfConfigurationError(
            f"{field_name} ({memory_bytes}) must be at least one hash "
            f"output ({hash_output_bytes} bytes)"
        )

    if maximum is not None and memory_bytes > maximum:
        raise KdfConfigurationError(
            f"{field_name} ({memory_bytes}) exceeds maximum ({maximum})"
        )

    return memory_bytes
