"""
securekdf Cryptographic Core
============================

Provides the memory-hard ROMix KDF and the primitives built around it.

Architecture:
    1. Hash capability: runtime-selected SHA-2/SHA-3/BLAKE2b
    2. ROMix KDF: self-calibrating, memory-hard key derivation
    3. AES-CFB: encryption under a derived key
    4. ECDSA (secp256k1): signatures under a derived key

Security Properties:
    - Lookup tables live in locked memory and are wiped on every exit path
    - Derived keys are returned as SecureBuffers
    - Secure RNG for all salts, IVs and private keys

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from securekdf.core.crypto.hashing import HashAlgorithm, HashFunction, get_hash_function
from securekdf.core.crypto.entropy import SystemRandomSource, DEFAULT_RANDOM_SOURCE
from securekdf.core.crypto.kdf import (
    KdfParameters,
    MemoryHardKdf,
    CalibrationCancelledError,
    romix_one_pass,
    derive_key,
)
from securekdf.core.crypto.aes_cfb import CryptoAES, AesCfbResult, CipherError
from securekdf.core.crypto.ecdsa import CryptoECDSA, SignatureError

__all__ = [
    "HashAlgorithm",
    "HashFunction",
    "get_hash_function",
    "SystemRandomSource",
    "DEFAULT_RANDOM_SOURCE",
    "KdfParameters",
    "MemoryHardKdf",
    "CalibrationCancelledError",
    "romix_one_pass",
    "derive_key",
    "CryptoAES",
    "AesCfbResult",
    "CipherError",
    "CryptoECDSA",
    "SignatureError",
]
