"""Shared fixtures for the securekdf test suite."""

import pytest

from securekdf.core.config import SecureConfig
from securekdf.core.crypto.hashing import HashAlgorithm, HashFunction
from securekdf.core.crypto.kdf import KdfParameters
from securekdf.core.memory.secure_memory import SecureBuffer


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class CountingHash:
    """SHA-512 that counts calls and charges each one to a fake clock."""

    def __init__(self, clock=None, cost: float = 0.0, fail_after=None):
        self._inner = HashFunction(HashAlgorithm.SHA512)
        self._clock = clock
        self._cost = cost
        self._fail_after = fail_after
        self.name = self._inner.name
        self.digest_size = self._inner.digest_size
        self.calls = 0

    def digest(self, *chunks) -> bytes:
        self.calls += 1
        if self._fail_after is not None and self.calls > self._fail_after:
            raise RuntimeError("hash failure injected by test")
        if self._clock is not None:
            self._clock.advance(self._cost)
        return self._inner.digest(*chunks)


class FixedRandomSource:
    """Deterministic stand-in for the system CSPRNG."""

    def __init__(self, byte: int = 0x01):
        self._byte = byte
        self.requests = []

    def random_bytes(self, num_bytes: int) -> bytes:
        self.requests.append(num_bytes)
        return bytes([self._byte]) * num_bytes


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def password():
    buf = SecureBuffer.from_bytes(b"correct horse", lock_memory=False)
    yield buf
    buf.wipe_and_release()


@pytest.fixture
def kat_params():
    """SHA-512, 16 zero-byte salt, 256-byte table (4 steps), 32-byte output."""
    return KdfParameters(
        memory_bytes=256,
        salt=SecureBuffer.from_bytes(bytes(16), lock_memory=False),
        hash_name=HashAlgorithm.SHA512,
        output_bytes=32,
    )


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    SecureConfig.reset_instance()
    yield
    SecureConfig.reset_instance()
