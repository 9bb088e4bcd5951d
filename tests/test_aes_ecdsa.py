"""
Unit tests for the AES-CFB and secp256k1 ECDSA wrappers.

Tests:
- NIST SP 800-38A CFB128 vector
- Encrypt/decrypt under a KDF-derived key
- secp256k1 key encodings, sign/verify, tamper rejection
"""

import pytest

from securekdf.core.crypto.aes_cfb import CipherError, CryptoAES
from securekdf.core.crypto.ecdsa import CryptoECDSA, SignatureError
from securekdf.core.crypto.kdf import MemoryHardKdf
from securekdf.core.memory.secure_memory import SecureBuffer

# secp256k1 generator point, i.e. the public key of private scalar 1
GENERATOR_X = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
GENERATOR_Y = "483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8"


@pytest.fixture
def aes():
    return CryptoAES()


@pytest.fixture
def ecdsa():
    return CryptoECDSA()


class TestCryptoAES:
    """AES-CFB wrapper."""

    def test_nist_cfb128_vector(self, aes):
        key = SecureBuffer.from_bytes(bytes.fromhex("2b7e151628aed2a6abf7158809cf4f3c"), lock_memory=False)
        iv = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
        plaintext = bytes.fromhex("6bc1bee22e409f96e93d7e117393172a")
        result = aes.encrypt(plaintext, key, iv)
        assert result.ciphertext.to_bytes().hex() == "3b3fd92eb72dad20333449f8e83cfb4a"
        assert result.iv == iv

    def test_round_trip_with_derived_key(self, aes, password, kat_params):
        key = MemoryHardKdf(kat_params, lock_memory=False).derive_key(password)
        message = b"wallet backup payload of arbitrary length"
        result = aes.encrypt(message, key)
        assert len(result.ciphertext) == len(message)
        assert aes.decrypt(result.ciphertext, key, result.iv) == message

    def test_random_iv(self, aes):
        key = SecureBuffer.generate_random(32, lock_memory=False)
        first = aes.encrypt(b"same", key)
        second = aes.encrypt(b"same", key)
        assert len(first.iv) == 16
        assert first.iv != second.iv

    def test_wrong_key_size(self, aes):
        with pytest.raises(CipherError):
            aes.encrypt(b"data", SecureBuffer(20, lock_memory=False))

    def test_wrong_iv_size(self, aes):
        key = SecureBuffer(16, lock_memory=False)
        with pytest.raises(CipherError):
            aes.decrypt(b"data", key, bytes(12))

    def test_repr_hides_ciphertext(self, aes):
        result = aes.encrypt(b"data", SecureBuffer(32, lock_memory=False))
        assert repr(result) == "AesCfbResult(ciphertext_len=4, iv_len=16)"


class TestCryptoECDSA:
    """secp256k1 wrapper."""

    def test_generator_public_key(self, ecdsa):
        private_key = (1).to_bytes(32, "big")
        public_key = ecdsa.compute_public_key(private_key)
        assert public_key.hex() == "04" + GENERATOR_X + GENERATOR_Y

    def test_parse_public_key_xy(self, ecdsa):
        key = ecdsa.parse_public_key_xy(bytes.fromhex(GENERATOR_X), bytes.fromhex(GENERATOR_Y))
        assert ecdsa.serialize_public_key(key).hex() == "04" + GENERATOR_X + GENERATOR_Y

    def test_private_key_round_trip(self, ecdsa):
        private_key = ecdsa.generate_new_private_key()
        assert len(private_key) == 32
        parsed = ecdsa.parse_private_key(private_key)
        assert ecdsa.serialize_private_key(parsed) == private_key

    @pytest.mark.parametrize("scalar", [
        bytes(32),
        bytes.fromhex("fffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364141"),
        bytes(31),
    ])
    def test_invalid_private_key(self, ecdsa, scalar):
        with pytest.raises(SignatureError):
            ecdsa.parse_private_key(scalar)

    def test_invalid_public_key(self, ecdsa):
        with pytest.raises(SignatureError):
            ecdsa.parse_public_key(b"\x04" + bytes(64))
        with pytest.raises(SignatureError):
            ecdsa.parse_public_key(b"\x02" + bytes(32))

    def test_sign_and_verify(self, ecdsa):
        private_key = ecdsa.generate_new_private_key()
        public_key = ecdsa.compute_public_key(private_key)
        signature = ecdsa.sign_data(b"message", private_key)
        assert len(signature) == 64
        assert ecdsa.verify_data(b"message", signature, public_key)

    def test_verify_rejects_tampering(self, ecdsa):
        private_key = ecdsa.generate_new_private_key()
        public_key = ecdsa.compute_public_key(private_key)
        signature = ecdsa.sign_data(b"message", private_key)
        other_public = ecdsa.compute_public_key(ecdsa.generate_new_private_key())

        assert not ecdsa.verify_data(b"messagf", signature, public_key)
        assert not ecdsa.verify_data(b"message", signature, other_public)
        assert not ecdsa.verify_data(b"message", signature[:-1], public_key)
        assert not ecdsa.verify_data(b"message", bytes(64), public_key)
        assert not ecdsa.verify_data(b"message", signature, b"\x04" + bytes(64))

    def test_key_match(self, ecdsa):
        private_key = ecdsa.generate_new_private_key()
        public_key = ecdsa.compute_public_key(private_key)
        assert ecdsa.check_pub_priv_key_match(private_key, public_key)
        assert not ecdsa.check_pub_priv_key_match(ecdsa.generate_new_private_key(), public_key)
        assert not ecdsa.check_pub_priv_key_match(bytes(32), public_key)

    def test_derived_key_as_private_key(self, ecdsa, password, kat_params):
        key = MemoryHardKdf(kat_params, lock_memory=False).derive_key(password)
        public_key = ecdsa.compute_public_key(key)
        signature = ecdsa.sign_data(b"payload", key)
        assert ecdsa.verify_data(b"payload", signature, public_key)
