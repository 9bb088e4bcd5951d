"""
secp256k1 ECDSA
===============

Key handling and signatures over secp256k1 with SHA-256, for signing
data under keys protected by the memory-hard KDF.

Encodings:
    - Private key: 32-byte big-endian scalar
    - Public key: 65-byte uncompressed point (0x04 || X || Y)
    - Signature: 64 bytes, r || s (32 bytes each, big-endian)

Security Properties:
    - Private keys generated and held as SecureBuffers
    - Verification never raises on a bad signature, it returns False
"""

from __future__ import annotations

import logging
from typing import Final, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from securekdf.core.memory.secure_memory import SecureBuffer

PRIVATE_KEY_SIZE: Final[int] = 32
COORDINATE_SIZE: Final[int] = 32
PUBLIC_KEY_SIZE: Final[int] = 65  # 0x04 || X || Y
SIGNATURE_SIZE: Final[int] = 64  # r || s

# Order of the secp256k1 base point
SECP256K1_ORDER: Final[int] = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_CURVE = ec.SECP256K1()

_log = logging.getLogger("securekdf.ecdsa")


class SignatureError(Exception):
    """Raised for malformed keys or signing failures."""
    pass


class CryptoECDSA:
    """
    secp256k1 key management and ECDSA-SHA256 signatures.

    Usage:
        ecdsa = CryptoECDSA()
        private_key = ecdsa.generate_new_private_key()
        public_key = ecdsa.compute_public_key(private_key)
        signature = ecdsa.sign_data(message, private_key)
        assert ecdsa.verify_data(message, signature, public_key)
    """

    __slots__ = ()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def generate_new_private_key(self) -> SecureBuffer:
        """Create a random private key."""
        key = ec.generate_private_key(_CURVE)
        return self.serialize_private_key(key)

    def parse_private_key(self, private_key: Union[SecureBuffer, bytes]) -> ec.EllipticCurvePrivateKey:
        """
        Load a 32-byte private scalar.

        Raises:
            SignatureError: If the scalar is the wrong size or out of range
        """
        if len(private_key) != PRIVATE_KEY_SIZE:
            raise SignatureError(f"Private key must be {PRIVATE_KEY_SIZE} bytes")

        if isinstance(private_key, SecureBuffer):
            with private_key.exposed() as view:
                scalar = int.from_bytes(view, "big")
        else:
            scalar = int.from_bytes(private_key, "big")

        if not 0 < scalar < SECP256K1_ORDER:
            raise SignatureError("Private key scalar is out of range")

        return ec.derive_private_key(scalar, _CURVE)

    def parse_public_key(self, public_key: bytes) -> ec.EllipticCurvePublicKey:
        """
        Load a 65-byte uncompressed public key.

        Raises:
            SignatureError: If the encoding is invalid or not on the curve
        """
        if len(public_key) != PUBLIC_KEY_SIZE or public_key[0] != 0x04:
            raise SignatureError(f"Public key must be {PUBLIC_KEY_SIZE} bytes, uncompressed")
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, bytes(public_key))
        except ValueError as e:
            raise SignatureError(f"Invalid public key: {e}") from e

    def parse_public_key_xy(self, x: bytes, y: bytes) -> ec.EllipticCurvePublicKey:
        """Load a public key from its two 32-byte coordinates."""
        if len(x) != COORDINATE_SIZE or len(y) != COORDINATE_SIZE:
            raise SignatureError(f"Coordinates must be {COORDINATE_SIZE} bytes each")
        return self.parse_public_key(b"\x04" + bytes(x) + bytes(y))

    def serialize_private_key(self, private_key: ec.EllipticCurvePrivateKey) -> SecureBuffer:
        """Encode a private key as its 32-byte scalar."""
        scalar = private_key.private_numbers().private_value
        return SecureBuffer.from_bytes(scalar.to_bytes(PRIVATE_KEY_SIZE, "big"))

    def serialize_public_key(self, public_key: ec.EllipticCurvePublicKey) -> bytes:
        """Encode a public key as 65 uncompressed bytes."""
        return public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)

    def compute_public_key(self, private_key: Union[SecureBuffer, bytes]) -> bytes:
        """Derive the uncompressed public key for a private scalar."""
        return self.serialize_public_key(self.parse_private_key(private_key).public_key())

    def check_pub_priv_key_match(
        self,
        private_key: Union[SecureBuffer, bytes],
        public_key: bytes,
    ) -> bool:
        """Whether ``public_key`` belongs to ``private_key``."""
        try:
            return self.compute_public_key(private_key) == bytes(public_key)
        except SignatureError:
            return False

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def sign_data(self, data: bytes, private_key: Union[SecureBuffer, bytes]) -> bytes:
        """
        Sign ``data`` with ECDSA-SHA256.

        Returns:
            64-byte r || s signature

        Raises:
            SignatureError: If the private key is malformed
        """
        key = self.parse_private_key(private_key)
        der = key.sign(bytes(data), ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def verify_data(self, data: bytes, signature: bytes, public_key: bytes) -> bool:
        """
        Verify a 64-byte r || s signature.

        Returns:
            True if valid, False for any bad signature or key
        """
        if len(signature) != SIGNATURE_SIZE:
            return False

        try:
            key = self.parse_public_key(public_key)
        except SignatureError as e:
            _log.debug("Signature check with unusable public key: %s", e)
            return False

        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:], "big")
        try:
            key.verify(encode_dss_signature(r, s), bytes(data), ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True
