"""
Unit tests for the secure memory primitives.

Tests:
- SecureBuffer construction, copies and slicing
- Old backing storage is zeroed on resize/assign/append/release
- Constant-time equality and safe repr
- Non-fatal memory lock failure
- Zeroization helpers
"""

import copy

import pytest

from securekdf.core.memory import secure_memory
from securekdf.core.memory.secure_memory import MemoryLockWarning, SecureBuffer
from securekdf.core.memory.zeroization import ZeroizeContext, secure_zero


def _backing(buf: SecureBuffer) -> bytearray:
    return buf._buffer


class TestConstruction:
    """SecureBuffer creation."""

    def test_zero_initialized(self):
        buf = SecureBuffer(16, lock_memory=False)
        assert len(buf) == 16
        assert buf.to_bytes() == bytes(16)

    def test_empty_buffer(self):
        buf = SecureBuffer()
        assert len(buf) == 0
        assert not buf
        assert not buf.is_locked

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            SecureBuffer(-1)

    def test_from_bytes_copies(self):
        source = bytearray(b"secret")
        buf = SecureBuffer.from_bytes(source, lock_memory=False)
        source[0] = 0
        assert buf.to_bytes() == b"secret"

    def test_from_str_rejected(self):
        with pytest.raises(TypeError):
            SecureBuffer.from_bytes("secret")

    def test_generate_random_uses_source(self):
        class Source:
            def random_bytes(self, n):
                return b"\xab" * n

        buf = SecureBuffer.generate_random(8, Source(), lock_memory=False)
        assert buf.to_bytes() == b"\xab" * 8

    def test_generate_random_default_source(self):
        a = SecureBuffer.generate_random(32, lock_memory=False)
        b = SecureBuffer.generate_random(32, lock_memory=False)
        assert len(a) == 32
        assert a != b


class TestWipeOnRelease:
    """Every path that drops a backing region zeroes it first."""

    def test_wipe_and_release(self):
        buf = SecureBuffer.from_bytes(b"top secret", lock_memory=False)
        old = _backing(buf)
        buf.wipe_and_release()
        assert len(buf) == 0
        assert old == bytearray(len(old))

    def test_wipe_is_idempotent(self):
        buf = SecureBuffer.from_bytes(b"abc", lock_memory=False)
        buf.wipe_and_release()
        buf.wipe_and_release()
        assert len(buf) == 0

    def test_resize_grow_wipes_old_storage(self):
        buf = SecureBuffer.from_bytes(b"abcd", lock_memory=False)
        old = _backing(buf)
        buf.resize(8)
        assert buf.to_bytes() == b"abcd" + bytes(4)
        assert old == bytearray(4)

    def test_resize_shrink_keeps_prefix(self):
        buf = SecureBuffer.from_bytes(b"abcdef", lock_memory=False)
        old = _backing(buf)
        buf.resize(3)
        assert buf.to_bytes() == b"abc"
        assert old == bytearray(6)

    def test_assign_wipes_old_storage(self):
        buf = SecureBuffer.from_bytes(b"first", lock_memory=False)
        old = _backing(buf)
        buf.assign(b"second value")
        assert buf.to_bytes() == b"second value"
        assert old == bytearray(5)

    def test_append_wipes_old_storage(self):
        buf = SecureBuffer.from_bytes(b"abc", lock_memory=False)
        old = _backing(buf)
        buf.append(b"def")
        assert buf.to_bytes() == b"abcdef"
        assert old == bytearray(3)

    def test_append_self(self):
        buf = SecureBuffer.from_bytes(b"ab", lock_memory=False)
        buf.append(buf)
        assert buf.to_bytes() == b"abab"

    def test_context_manager_wipes(self):
        with SecureBuffer.from_bytes(b"scoped", lock_memory=False) as buf:
            old = _backing(buf)
        assert len(buf) == 0
        assert old == bytearray(6)


class TestAccess:
    """Reads, writes and views."""

    def test_write_does_not_grow(self):
        buf = SecureBuffer(4, lock_memory=False)
        written = buf.write(b"abcdef", offset=2)
        assert written == 2
        assert buf.to_bytes() == b"\x00\x00ab"

    def test_write_bad_offset(self):
        buf = SecureBuffer(4, lock_memory=False)
        with pytest.raises(ValueError):
            buf.write(b"a", offset=5)

    def test_read(self):
        buf = SecureBuffer.from_bytes(b"0123456789", lock_memory=False)
        assert buf.read() == b"0123456789"
        assert buf.read(3, offset=2) == b"234"

    def test_exposed_view_is_released(self):
        buf = SecureBuffer.from_bytes(b"view", lock_memory=False)
        with buf.exposed() as view:
            assert bytes(view) == b"view"
            assert view.readonly
        with pytest.raises(ValueError):
            bytes(view)

    def test_exposed_writable(self):
        buf = SecureBuffer(3, lock_memory=False)
        with buf.exposed(writable=True) as view:
            view[:] = b"xyz"
        assert buf.to_bytes() == b"xyz"

    def test_fill(self):
        buf = SecureBuffer(4, lock_memory=False)
        buf.fill(0x5A)
        assert buf.to_bytes() == b"\x5a" * 4


class TestCopiesAndOperators:
    """Copies never share storage."""

    def test_copy_is_independent(self):
        buf = SecureBuffer.from_bytes(b"original", lock_memory=False)
        for duplicate in (buf.copy(), copy.copy(buf), copy.deepcopy(buf)):
            assert duplicate == buf
            assert _backing(duplicate) is not _backing(buf)
            duplicate.write(b"X")
            assert buf.to_bytes() == b"original"

    def test_add_returns_new_buffer(self):
        a = SecureBuffer.from_bytes(b"ab", lock_memory=False)
        b = SecureBuffer.from_bytes(b"cd", lock_memory=False)
        joined = a + b
        assert joined.to_bytes() == b"abcd"
        assert a.to_bytes() == b"ab"

    def test_index_and_slice(self):
        buf = SecureBuffer.from_bytes(b"abcdef", lock_memory=False)
        assert buf[0] == ord("a")
        piece = buf[1:4]
        assert isinstance(piece, SecureBuffer)
        assert piece.to_bytes() == b"bcd"

    def test_equality(self):
        buf = SecureBuffer.from_bytes(b"same", lock_memory=False)
        assert buf == SecureBuffer.from_bytes(b"same", lock_memory=False)
        assert buf == b"same"
        assert buf != b"diff"
        assert buf != "same"

    def test_unhashable(self):
        with pytest.raises(TypeError):
            hash(SecureBuffer(1, lock_memory=False))

    def test_repr_hides_contents(self):
        buf = SecureBuffer.from_bytes(b"hunter2", lock_memory=False)
        assert "hunter2" not in repr(buf)
        assert "size=7" in repr(buf)


class TestMemoryLocking:
    """Locking failure degrades to a warning."""

    def test_lock_failure_warns_and_still_works(self, monkeypatch):
        monkeypatch.setattr(secure_memory, "_mlock", lambda address, size: False)
        with pytest.warns(MemoryLockWarning):
            buf = SecureBuffer.from_bytes(b"swappable", lock_memory=True)
        assert not buf.is_locked
        assert buf.to_bytes() == b"swappable"

    def test_lock_success_is_reported(self, monkeypatch):
        unlocked = []
        monkeypatch.setattr(secure_memory, "_mlock", lambda address, size: True)
        monkeypatch.setattr(secure_memory, "_munlock", lambda address, size: unlocked.append(size) or True)
        buf = SecureBuffer(32, lock_memory=True)
        assert buf.is_locked
        buf.wipe_and_release()
        assert unlocked == [32]
        assert not buf.is_locked

    def test_no_lock_requested(self, monkeypatch):
        calls = []
        monkeypatch.setattr(secure_memory, "_mlock", lambda address, size: calls.append(size) or True)
        SecureBuffer(16, lock_memory=False)
        assert calls == []

    def test_from_bytes_honors_lock_choice_for_secure_buffer_source(self, monkeypatch):
        monkeypatch.setattr(secure_memory, "_mlock", lambda address, size: True)
        monkeypatch.setattr(secure_memory, "_munlock", lambda address, size: True)
        locked = SecureBuffer.from_bytes(b"pepper", lock_memory=True)
        assert locked.is_locked

        plain = SecureBuffer.from_bytes(locked, lock_memory=False)
        assert not plain.is_locked
        assert plain == locked

        relocked = SecureBuffer.from_bytes(plain, lock_memory=True)
        assert relocked.is_locked


class TestZeroization:
    """secure_zero and ZeroizeContext."""

    def test_secure_zero_bytearray(self):
        data = bytearray(b"sensitive")
        secure_zero(data)
        assert data == bytearray(9)

    def test_secure_zero_memoryview(self):
        data = bytearray(b"sensitive")
        secure_zero(memoryview(data)[2:5])
        assert data == bytearray(b"se\x00\x00\x00tive")

    def test_zeroize_context_on_exception(self):
        scratch = bytearray(b"scratch")
        with pytest.raises(RuntimeError):
            with ZeroizeContext(scratch):
                raise RuntimeError("boom")
        assert scratch == bytearray(7)
