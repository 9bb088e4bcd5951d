"""
securekdf - Memory-Hard Key Derivation
======================================

This package derives encryption keys from passwords with a memory-hard
ROMix KDF that calibrates its cost to the host, keeping every secret in
locked, zero-on-release buffers.

Security Notice:
- No secrets are logged
- Lookup tables and keys live in locked memory and are wiped on release
- Weak parameters are rejected, never silently clamped
"""

from securekdf.core.config import SecureConfig
from securekdf.core.logging import get_secure_logger, configure_logging
from securekdf.core.memory import SecureBuffer
from securekdf.core.crypto import HashAlgorithm, KdfParameters, MemoryHardKdf, derive_key

__version__ = "0.1.0"
__author__ = "securekdf Team"

__all__ = [
    "SecureConfig",
    "get_secure_logger",
    "configure_logging",
    "SecureBuffer",
    "HashAlgorithm",
    "KdfParameters",
    "MemoryHardKdf",
    "derive_key",
    "__version__",
]
