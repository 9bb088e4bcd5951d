"""
Utils module - Validation helpers.

This module contains the argument validators and the error taxonomy
shared by the key derivation code.
"""

from securekdf.utils.validators import (
    ValidationError,
    KdfConfigurationError,
    validate_positive_number,
    validate_positive_int,
    validate_memory_budget,
)

__all__ = [
    "ValidationError",
    "KdfConfigurationError",
    "validate_positive_number",
    "validate_positive_int",
    "validate_memory_budget",
]
