"""
Secure Memory Buffers
=====================

``SecureBuffer`` holds passwords, salts, ROMix tables and derived keys.
Its pages are locked against swapping while it holds data, and every
byte is overwritten before the storage is dropped: on resize, on
reassignment, on release and when the object is collected.

Caveats:
- ``bytes()`` conversions and hash calls make copies this class cannot reach
- Locking is per page; unlocking one buffer can unlock a neighbour on
  the same page
- A refused lock is reported with MemoryLockWarning and the buffer is
  still usable
"""

from __future__ import annotations

import ctypes
import ctypes.util
import hmac
import logging
import platform
import secrets
import warnings
from contextlib import contextmanager
from typing import Final, Iterator, Optional, Union

from securekdf.core.config import SecurityWarning
from securekdf.core.memory.zeroization import secure_zero


IS_WINDOWS: Final[bool] = platform.system() == "Windows"
IS_MACOS: Final[bool] = platform.system() == "Darwin"

_log = logging.getLogger("securekdf.memory")

_libc: Optional[ctypes.CDLL] = None


class MemoryLockWarning(SecurityWarning):
    """The host refused to lock a buffer's pages; contents may be swapped."""
    pass


def _load_libc() -> Optional[ctypes.CDLL]:
    """Load the C library once, for mlock/munlock."""
    global _libc
    if _libc is None and not IS_WINDOWS:
        name = ctypes.util.find_library("c") or ("libc.dylib" if IS_MACOS else "libc.so.6")
        try:
            _libc = ctypes.CDLL(name, use_errno=True)
        except OSError:
            _log.debug("C library unavailable, memory locking disabled")
    return _libc


def _page_call(windows_name: str, posix_name: str, address: int, size: int) -> bool:
    """Invoke VirtualLock/VirtualUnlock or mlock/munlock; True on success."""
    args = (ctypes.c_void_p(address), ctypes.c_size_t(size))
    try:
        if IS_WINDOWS:
            return bool(getattr(ctypes.windll.kernel32, windows_name)(*args))
        libc = _load_libc()
        if libc is None:
            return False
        if getattr(libc, posix_name)(*args) != 0:
            _log.debug("%s failed (errno=%d)", posix_name, ctypes.get_errno())
            return False
        return True
    except (AttributeError, OSError):
        return False


def _mlock(address: int, size: int) -> bool:
    return _page_call("VirtualLock", "mlock", address, size)


def _munlock(address: int, size: int) -> bool:
    return _page_call("VirtualUnlock", "munlock", address, size)


def _address_of(storage: bytearray) -> int:
    return ctypes.addressof((ctypes.c_char * len(storage)).from_buffer(storage))


BytesLike = Union[bytes, bytearray, memoryview, "SecureBuffer"]


class SecureBuffer:
    """
    Secure byte buffer with page locking and explicit zeroization.

    Every path that gives up a backing region (resize, assign, append,
    wipe_and_release, context exit, destruction) zeroes it first and
    releases its page lock. Copies get their own, independently locked
    storage.

    Usage:
        with SecureBuffer.from_bytes(b"correct horse") as password:
            key = kdf.derive_key(password)
        # password is now zeroed

        key = SecureBuffer(32)
        try:
            key.write(material)
            use_key(key)
        finally:
            key.wipe_and_release()

    Security Notes:
        - Always use context manager or call wipe_and_release() explicitly
        - Prefer exposed() over to_bytes(); bytes objects cannot be wiped
        - Locking failure is not fatal; a MemoryLockWarning is emitted
    """

    __slots__ = ("_buffer", "_locked", "_lock_memory", "__weakref__")

    def __init__(
        self,
        size: int = 0,
        lock_memory: bool = True,
    ) -> None:
        """
        Initialize a zero-filled secure buffer.

        Args:
            size: Initial length; may be zero
            lock_memory: Request page locking for the backing storage
        """
        if size < 0:
            raise ValueError(f"Buffer size cannot be negative: {size}")

        self._lock_memory = lock_memory
        self._locked = False
        self._buffer = bytearray(size)
        self._lock_current()

    @classmethod
    def from_bytes(
        cls,
        data: BytesLike,
        lock_memory: bool = True,
    ) -> "SecureBuffer":
        """
        Copy ``data`` into a new buffer.

        ``data`` itself is left untouched; wiping it is up to the caller.
        """
        if isinstance(data, str):
            raise TypeError("Encode strings before storing them in a SecureBuffer")
        buf = cls(size=len(data), lock_memory=lock_memory)
        if isinstance(data, SecureBuffer):
            with data.exposed() as view:
                buf._buffer[:] = view
        else:
            buf._buffer[:] = data
        return buf

    @classmethod
    def generate_random(
        cls,
        num_bytes: int,
        random_source=None,
        lock_memory: bool = True,
    ) -> "SecureBuffer":
        """
        Create a buffer filled from a cryptographically secure source.

        Args:
            num_bytes: Number of random bytes
            random_source: Object with ``random_bytes(n)``; system CSPRNG if None
        """
        if num_bytes < 0:
            raise ValueError(f"Cannot generate {num_bytes} random bytes")

        buf = cls(size=num_bytes, lock_memory=lock_memory)
        if random_source is None:
            buf._buffer[:] = secrets.token_bytes(num_bytes)
        else:
            buf._buffer[:] = random_source.random_bytes(num_bytes)
        return buf

    # ------------------------------------------------------------------
    # Lock / wipe primitives. Every change of backing storage goes here.
    # ------------------------------------------------------------------

    def _lock_current(self) -> None:
        """Lock the current backing storage, warning if the host refuses."""
        self._locked = False
        if not self._lock_memory or len(self._buffer) == 0:
            return

        self._locked = _mlock(_address_of(self._buffer), len(self._buffer))
        if not self._locked:
            warnings.warn(
                f"Could not lock {len(self._buffer)} bytes of memory; "
                "sensitive data may be written to swap",
                MemoryLockWarning,
                stacklevel=3,
            )

    def _release_current(self) -> None:
        """Zero and unlock the current backing storage."""
        old = self._buffer
        if len(old) == 0:
            self._locked = False
            return

        secure_zero(old)
        if self._locked:
            _munlock(_address_of(old), len(old))
        self._locked = False

    def _replace_storage(self, storage: bytearray) -> None:
        """Swap in new backing storage, wiping the previous one."""
        self._release_current()
        self._buffer = storage
        self._lock_current()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Get buffer size."""
        return len(self._buffer)

    @property
    def is_locked(self) -> bool:
        """True while the backing pages are locked."""
        return self._locked

    @property
    def data(self) -> bytes:
        """
        Return an immutable copy of the contents.

        Warning: This creates a copy that cannot be wiped.
        """
        return bytes(self._buffer)

    def to_bytes(self) -> bytes:
        """Return an unprotected copy of the contents."""
        return bytes(self._buffer)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def resize(self, new_size: int) -> None:
        """
        Resize the buffer.

        New storage is allocated and locked, the overlapping prefix is
        copied across, and the old storage is zeroed and unlocked. Growth
        is zero-filled.
        """
        if new_size < 0:
            raise ValueError(f"Buffer size cannot be negative: {new_size}")
        if new_size == len(self._buffer):
            return

        storage = bytearray(new_size)
        keep = min(new_size, len(self._buffer))
        storage[:keep] = memoryview(self._buffer)[:keep]
        self._replace_storage(storage)

    def assign(self, other: BytesLike) -> None:
        """Replace the contents with ``other``; the old storage is wiped."""
        storage = bytearray(len(other))
        with _view_of(other) as view:
            storage[:] = view
        self._replace_storage(storage)

    def append(self, other: BytesLike) -> "SecureBuffer":
        """Append ``other`` in place and return self."""
        if other is self:
            duplicate = self.copy()
            try:
                return self.append(duplicate)
            finally:
                duplicate.wipe_and_release()

        start = len(self._buffer)
        with _view_of(other) as view:
            self.resize(start + len(view))
            self._buffer[start:] = view
        return self

    def write(self, data: BytesLike, offset: int = 0) -> int:
        """
        Write data into the buffer at offset without growing it.

        Returns:
            Number of bytes written
        """
        if offset < 0 or offset > len(self._buffer):
            raise ValueError(f"Invalid offset: {offset}")

        with _view_of(data) as view:
            write_len = min(len(view), len(self._buffer) - offset)
            self._buffer[offset:offset + write_len] = view[:write_len]
        return write_len

    def read(self, size: int = -1, offset: int = 0) -> bytes:
        """
        Read a copy of the buffer contents.

        Args:
            size: Bytes to return, or -1 for the rest of the buffer
            offset: Starting offset
        """
        if size < 0:
            return bytes(self._buffer[offset:])
        return bytes(self._buffer[offset:offset + size])

    @contextmanager
    def exposed(self, writable: bool = False) -> Iterator[memoryview]:
        """
        Temporarily expose the backing storage without copying.

        The view is released on exit. Do not resize the buffer while
        the view is held.
        """
        view = memoryview(self._buffer)
        if not writable:
            view = view.toreadonly()
        try:
            yield view
        finally:
            view.release()

    def fill(self, value: int = 0) -> None:
        """Overwrite every byte with ``value``."""
        if self._buffer:
            ctypes.memset(_address_of(self._buffer), value, len(self._buffer))

    def wipe_and_release(self) -> None:
        """
        Zero the contents, unlock the pages and drop to an empty buffer.

        Idempotent; the buffer remains usable afterwards.
        """
        self._release_current()
        self._buffer = bytearray()

    # ------------------------------------------------------------------
    # Copy and derived operations
    # ------------------------------------------------------------------

    def copy(self) -> "SecureBuffer":
        """Return an independently locked copy."""
        buf = SecureBuffer(size=len(self._buffer), lock_memory=self._lock_memory)
        buf._buffer[:] = self._buffer
        return buf

    def __copy__(self) -> "SecureBuffer":
        return self.copy()

    def __deepcopy__(self, memo: dict) -> "SecureBuffer":
        return self.copy()

    def __add__(self, other: BytesLike) -> "SecureBuffer":
        result = self.copy()
        result.append(other)
        return result

    def __getitem__(self, index: int | slice) -> "int | SecureBuffer":
        if isinstance(index, slice):
            return SecureBuffer.from_bytes(
                memoryview(self._buffer)[index], lock_memory=self._lock_memory
            )
        return self._buffer[index]

    def __eq__(self, other: object) -> bool:
        """Byte-for-byte, constant-time comparison."""
        if isinstance(other, SecureBuffer):
            return hmac.compare_digest(self._buffer, other._buffer)
        if isinstance(other, (bytes, bytearray)):
            return hmac.compare_digest(self._buffer, other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        """Get buffer length."""
        return len(self._buffer)

    def __bool__(self) -> bool:
        return len(self._buffer) > 0

    def __enter__(self) -> "SecureBuffer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Wipe and release, whether or not the block raised."""
        self.wipe_and_release()

    def __del__(self) -> None:
        """Last-chance wipe if the owner forgot to release."""
        try:
            self.wipe_and_release()
        except Exception:
            pass

    def __repr__(self) -> str:
        """Length and lock state only, never contents."""
        return f"SecureBuffer(size={len(self._buffer)}, locked={self._locked})"


@contextmanager
def _view_of(data: BytesLike) -> Iterator[memoryview]:
    """Byte view over any supported input, including a SecureBuffer."""
    if isinstance(data, SecureBuffer):
        with data.exposed() as view:
            yield view
    else:
        view = memoryview(data).cast("B")
        try:
            yield view
        finally:
            view.release()
