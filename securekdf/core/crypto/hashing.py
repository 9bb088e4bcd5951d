"""
Hash Function Capability
========================

Fixed-output, one-way hash functions selected at runtime by name.

The algorithm is a configuration value carried inside the KDF parameters,
not a code branch: the KDF only needs ``name``, ``digest_size`` and
``digest(*chunks)``. Any object providing those three members can stand in
for ``HashFunction`` (e.g. an instrumented test double).

Implements:
    - SHA-2 (256/384/512)
    - SHA-3 (256/512)
    - BLAKE2b-512
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Final, Union

from cryptography.hazmat.primitives import hashes

from securekdf.security.constants import DEFAULT_KDF_HASH
from securekdf.utils.validators import KdfConfigurationError


class HashAlgorithm(str, Enum):
    """Enumerated hash identifiers, persisted by their string value."""

    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"
    SHA3_256 = "sha3-256"
    SHA3_512 = "sha3-512"
    BLAKE2B = "blake2b"

    @classmethod
    def parse(cls, value: Union[str, "HashAlgorithm"]) -> "HashAlgorithm":
        """
        Resolve a hash identifier.

        Raises:
            KdfConfigurationError: If the name is unknown
        """
        if isinstance(value, HashAlgorithm):
            return value
        try:
            return cls(str(value).strip().lower().replace("_", "-"))
        except ValueError:
            known = ", ".join(a.value for a in cls)
            raise KdfConfigurationError(
                f"Unknown hash algorithm {value!r} (expected one of: {known})"
            ) from None


_PRIMITIVES: Final[dict[HashAlgorithm, Callable[[], hashes.HashAlgorithm]]] = {
    HashAlgorithm.SHA256: hashes.SHA256,
    HashAlgorithm.SHA384: hashes.SHA384,
    HashAlgorithm.SHA512: hashes.SHA512,
    HashAlgorithm.SHA3_256: hashes.SHA3_256,
    HashAlgorithm.SHA3_512: hashes.SHA3_512,
    HashAlgorithm.BLAKE2B: lambda: hashes.BLAKE2b(64),
}

DEFAULT_HASH_ALGORITHM: Final[HashAlgorithm] = HashAlgorithm(DEFAULT_KDF_HASH)


@dataclass(frozen=True, slots=True)
class HashFunction:
    """
    One-shot hash capability backed by ``cryptography``.

    Usage:
        sha512 = HashFunction(HashAlgorithm.SHA512)
        digest = sha512.digest(password_view, salt_view)  # H(password || salt)
    """

    algorithm: HashAlgorithm

    @property
    def name(self) -> str:
        """Persisted identifier of the algorithm."""
        return self.algorithm.value

    @property
    def digest_size(self) -> int:
        """Output size in bytes."""
        return _PRIMITIVES[self.algorithm]().digest_size

    def digest(self, *chunks: bytes | bytearray | memoryview) -> bytes:
        """Hash the concatenation of ``chunks``."""
        context = hashes.Hash(_PRIMITIVES[self.algorithm]())
        for chunk in chunks:
            context.update(chunk)
        return context.finalize()

    def __repr__(self) -> str:
        return f"HashFunction({self.name})"


def get_hash_function(algorithm: Union[str, HashAlgorithm]) -> HashFunction:
    """
    Look up a hash capability by identifier.

    Raises:
        KdfConfigurationError: If the name is unknown
    """
    return HashFunction(HashAlgorithm.parse(algorithm))
