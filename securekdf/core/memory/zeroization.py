"""
Buffer Wiping
=============

Overwrites password copies, ROMix scratch space and derived-key staging
buffers in place so their contents do not outlive the call that used them.

- ``secure_zero`` wipes one mutable buffer immediately
- ``ZeroizeContext`` wipes a group of buffers when a block exits
"""

from __future__ import annotations

import ctypes
from contextlib import contextmanager
from typing import Final, Iterator


# Alternating fill, last byte written is always zero
_FILL_SEQUENCE: Final[tuple[int, ...]] = (0x00, 0xFF, 0x00)


def _memset_all(data: bytearray) -> None:
    window = (ctypes.c_char * len(data)).from_buffer(data)
    address = ctypes.addressof(window)
    for fill in _FILL_SEQUENCE:
        ctypes.memset(address, fill, len(data))


def secure_zero(data: bytearray | memoryview) -> None:
    """
    Overwrite ``data`` with zeros in place.

    A bytearray is filled through ``ctypes.memset``; a memoryview (for
    example a slice of a larger table) is assigned zeros through the view
    so only the viewed range changes.

    Python may still hold other copies of the same bytes (interned
    ``bytes`` objects, freed allocator blocks); this only clears the
    buffer it is handed.
    """
    size = len(data)
    if not size:
        return

    if isinstance(data, memoryview):
        data[:] = bytes(size)
        return

    try:
        _memset_all(data)
    except (TypeError, ValueError, BufferError):
        # Buffer is exported elsewhere and cannot be re-exported to ctypes
        data[:] = bytes(size)


@contextmanager
def ZeroizeContext(*buffers: bytearray) -> Iterator[None]:
    """
    Wipe every buffer in ``buffers`` when the block exits, even on error.

        block = bytearray(64)
        with ZeroizeContext(block):
            block[:] = hash_fn.digest(seed)
    """
    try:
        yield
    finally:
        for buffer in buffers:
            secure_zero(buffer)
