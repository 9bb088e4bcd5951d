"""
AES-CFB Encryption
==================

Thin AES wrapper for encrypting data under a KDF-derived key.

Security Properties:
    - AES-128/192/256 in CFB mode (stream mode, no padding)
    - 128-bit IV, random when not supplied
    - Keys and plaintexts handled as SecureBuffers

WARNING:
    - CFB provides confidentiality only, no integrity; authenticate the
      ciphertext at a higher layer
    - Never reuse (key, IV) pairs
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Final, Optional, Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from securekdf.core.memory.secure_memory import SecureBuffer
from securekdf.security.constants import IV_LENGTH_BYTES

AES_BLOCK_SIZE: Final[int] = IV_LENGTH_BYTES  # 128 bits
AES_KEY_SIZES: Final[frozenset[int]] = frozenset({16, 24, 32})


class CipherError(Exception):
    """Raised when encryption or decryption cannot be performed."""
    pass


@dataclass(frozen=True, slots=True)
class AesCfbResult:
    """
    Result of AES-CFB encryption.

    Attributes:
        ciphertext: Encrypted data (same length as the plaintext)
        iv: IV used for this encryption (must be stored with ciphertext)
    """

    ciphertext: SecureBuffer
    iv: bytes

    def __repr__(self) -> str:
        """Safe representation."""
        return f"AesCfbResult(ciphertext_len={len(self.ciphertext)}, iv_len={len(self.iv)})"


class CryptoAES:
    """
    AES-CFB encryption for KDF-derived keys.

    Usage:
        aes = CryptoAES()
        result = aes.encrypt(plaintext, key)
        plaintext = aes.decrypt(result.ciphertext, key, result.iv)
    """

    __slots__ = ()

    @staticmethod
    def generate_iv() -> bytes:
        """Generate a random 16-byte IV."""
        return secrets.token_bytes(AES_BLOCK_SIZE)

    @staticmethod
    def _cipher(key: SecureBuffer, iv: bytes) -> Cipher:
        if len(key) not in AES_KEY_SIZES:
            raise CipherError(f"AES key must be 16, 24 or 32 bytes, got {len(key)}")
        if len(iv) != AES_BLOCK_SIZE:
            raise CipherError(f"IV must be exactly {AES_BLOCK_SIZE} bytes")

        with key.exposed() as key_view:
            return Cipher(algorithms.AES(bytes(key_view)), modes.CFB(iv))

    def encrypt(
        self,
        data: Union[SecureBuffer, bytes],
        key: SecureBuffer,
        iv: Optional[bytes] = None,
    ) -> AesCfbResult:
        """
        Encrypt data with AES-CFB.

        Args:
            data: Plaintext
            key: 16/24/32-byte key (e.g. MemoryHardKdf output)
            iv: 16-byte IV; generated when None

        Returns:
            AesCfbResult with the ciphertext and the IV used

        Raises:
            CipherError: If key or IV sizes are wrong
        """
        if iv is None:
            iv = self.generate_iv()

        encryptor = self._cipher(key, iv).encryptor()
        plaintext = SecureBuffer.from_bytes(data)
        try:
            with plaintext.exposed() as view:
                ciphertext = encryptor.update(view) + encryptor.finalize()
        finally:
            plaintext.wipe_and_release()

        return AesCfbResult(ciphertext=SecureBuffer.from_bytes(ciphertext), iv=bytes(iv))

    def decrypt(
        self,
        data: Union[SecureBuffer, bytes],
        key: SecureBuffer,
        iv: bytes,
    ) -> SecureBuffer:
        """
        Decrypt AES-CFB ciphertext.

        Wrong keys are not detected; CFB has no authentication tag.

        Raises:
            CipherError: If key or IV sizes are wrong
        """
        decryptor = self._cipher(key, iv).decryptor()
        ciphertext = SecureBuffer.from_bytes(data)
        try:
            with ciphertext.exposed() as view:
                plaintext = bytearray(decryptor.update(view) + decryptor.finalize())
        finally:
            ciphertext.wipe_and_release()

        result = SecureBuffer.from_bytes(plaintext)
        result_len = len(plaintext)
        plaintext[:] = bytes(result_len)
        return result
