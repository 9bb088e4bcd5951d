"""
Security Constants
==================

Defines security-related constants used throughout the package.
These values are pinned by known-answer tests and persisted parameter
records; do not modify them without a security review.
"""

from typing import Final

# Key Derivation
KEY_DERIVATION_FUNCTION: Final[str] = "ROMix"
DEFAULT_KDF_HASH: Final[str] = "sha512"
DEFAULT_KDF_TARGET_SECONDS: Final[float] = 0.25
DEFAULT_KDF_MAX_MEMORY_BYTES: Final[int] = 32 * 1024 * 1024  # 32 MB
DERIVED_KEY_LENGTH_BYTES: Final[int] = 32  # 256 bits
SALT_LENGTH_BYTES: Final[int] = 32

# Encryption Settings
ENCRYPTION_ALGORITHM: Final[str] = "AES-256-CFB"
IV_LENGTH_BYTES: Final[int] = 16  # One AES block

# Signatures
SIGNATURE_ALGORITHM: Final[str] = "ECDSA-secp256k1-SHA256"

# ROMix known-answer vector: SHA-512, 256-byte table (4 entries),
# 16 zero-byte salt, 32-byte output
KAT_PASSWORD: Final[bytes] = b"correct horse"
KAT_SALT: Final[bytes] = bytes(16)
KAT_MEMORY_BYTES: Final[int] = 256
KAT_OUTPUT_BYTES: Final[int] = 32
KAT_ONE_PASS: Final[str] = "b52e2b6189bd072381f4240cdd851abde7abd6106014b3521ea37d1dcc621358"
KAT_THREE_PASSES: Final[str] = "18fb1e6313dcaaf0d8970226df78cbf4b98614fa22e9bd9467b61bcc9fe3ee1d"

# SHA-512("abc"), FIPS 180-2 appendix C.1
KAT_SHA512_ABC: Final[str] = (
    "ddaf35a193617abacc417349ae20413112e6fa4e89a97ea20a9eeee64b55d39a"
    "2192992a274fc1a836ba3c23a3feebbd454d4423643ce80e2a9ac94fa54ca49f"
)

# Entropy Requirements
MIN_RANDOM_UNIQUE_BYTES: Final[int] = 20  # Out of 32 sampled
