"""
Secure Random Source
====================

Capability object for cryptographically unpredictable bytes. Salt
generation is its only consumer; tests substitute a deterministic source
with the same ``random_bytes`` method.
"""

from __future__ import annotations

import secrets
from typing import Final


class SystemRandomSource:
    """Operating system CSPRNG (via the ``secrets`` module)."""

    __slots__ = ()

    name: Final[str] = "system"

    def random_bytes(self, num_bytes: int) -> bytes:
        """
        Return ``num_bytes`` cryptographically secure random bytes.

        Raises:
            ValueError: If num_bytes is negative
        """
        if num_bytes < 0:
            raise ValueError(f"Cannot generate {num_bytes} random bytes")
        return secrets.token_bytes(num_bytes)

    def __repr__(self) -> str:
        return "SystemRandomSource()"


DEFAULT_RANDOM_SOURCE: Final[SystemRandomSource] = SystemRandomSource()
