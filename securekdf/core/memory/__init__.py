"""
securekdf Memory Security Module
================================

Provides secure memory handling primitives.

Security Features:
- Locked memory buffers (prevent swapping)
- Explicit zeroization (don't rely on GC)
- Exception-safe cleanup

Components:
- secure_memory.py: SecureBuffer
- zeroization.py: Memory wiping utilities

WARNING:
- Python's memory model doesn't guarantee secure erasure
- These are best-effort mitigations
"""

from securekdf.core.memory.secure_memory import (
    SecureBuffer,
    MemoryLockWarning,
)
from securekdf.core.memory.zeroization import (
    secure_zero,
    ZeroizeContext,
)

__all__ = [
    "SecureBuffer",
    "MemoryLockWarning",
    "secure_zero",
    "ZeroizeContext",
]
