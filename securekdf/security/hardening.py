"""
Startup Self-Tests
==================

Checks run before the first key is derived:

- ROMix known answers at one and three passes
- SHA-512, AES-CFB, secp256k1 ECDSA and CSPRNG sanity
- Host checks for OS randomness and the page-locking limit

``StartupSecurityValidator`` runs everything, logs each verdict and
reports whether derivation may proceed.
"""

from __future__ import annotations

import functools
import logging
import os
import secrets
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional

from securekdf.security import constants


class SecurityCheckResult(Enum):
    """Verdict of a single check."""
    PASS = auto()
    WARN = auto()
    FAIL = auto()


@dataclass
class CheckResult:
    """Named verdict with a human-readable reason."""
    name: str
    result: SecurityCheckResult
    message: str
    details: Optional[str] = None

    @classmethod
    def ok(cls, name: str, message: str = "Known answers match") -> CheckResult:
        return cls(name, SecurityCheckResult.PASS, message)

    @classmethod
    def warn(cls, name: str, message: str) -> CheckResult:
        return cls(name, SecurityCheckResult.WARN, message)

    @classmethod
    def fail(cls, name: str, message: str) -> CheckResult:
        return cls(name, SecurityCheckResult.FAIL, message)


def _reports_as(name: str) -> Callable[[Callable[[], CheckResult]], Callable[[], CheckResult]]:
    """Turn any exception raised by a check into a FAIL verdict."""

    def decorate(check: Callable[[], CheckResult]) -> Callable[[], CheckResult]:
        @functools.wraps(check)
        def run() -> CheckResult:
            try:
                return check()
            except Exception as e:
                return CheckResult.fail(name, f"{type(e).__name__} during check: {e}")
        return run

    return decorate


class CryptoSelfTest:
    """Known-answer tests for the KDF and the primitives beside it."""

    @staticmethod
    @_reports_as("ROMix")
    def test_romix() -> CheckResult:
        from securekdf.core.crypto.kdf import KdfParameters, MemoryHardKdf
        from securekdf.core.memory.secure_memory import SecureBuffer

        base = KdfParameters(
            memory_bytes=constants.KAT_MEMORY_BYTES,
            salt=SecureBuffer.from_bytes(constants.KAT_SALT, lock_memory=False),
            hash_name=constants.DEFAULT_KDF_HASH,
            output_bytes=constants.KAT_OUTPUT_BYTES,
        )
        answers = ((1, constants.KAT_ONE_PASS), (3, constants.KAT_THREE_PASSES))

        with SecureBuffer.from_bytes(constants.KAT_PASSWORD, lock_memory=False) as password:
            for passes, answer in answers:
                kdf = MemoryHardKdf(base.with_iterations(passes), lock_memory=False)
                with kdf.derive_key(password) as key:
                    if key.to_bytes().hex() != answer:
                        return CheckResult.fail("ROMix", f"Known-answer mismatch at {passes} pass(es)")

        return CheckResult.ok("ROMix", f"{constants.KEY_DERIVATION_FUNCTION} known answers match")

    @staticmethod
    @_reports_as("SHA-512")
    def test_sha512() -> CheckResult:
        """FIPS 180-2 "abc" digest."""
        from securekdf.core.crypto.hashing import HashAlgorithm, HashFunction

        if HashFunction(HashAlgorithm.SHA512).digest(b"abc").hex() != constants.KAT_SHA512_ABC:
            return CheckResult.fail("SHA-512", "Known-answer mismatch")
        return CheckResult.ok("SHA-512")

    @staticmethod
    @_reports_as("AES-CFB")
    def test_aes_cfb() -> CheckResult:
        from securekdf.core.crypto.aes_cfb import CryptoAES
        from securekdf.core.memory.secure_memory import SecureBuffer

        aes = CryptoAES()
        message = b"securekdf aes-cfb startup probe"

        with SecureBuffer.generate_random(32, lock_memory=False) as key:
            sealed = aes.encrypt(message, key)
            if sealed.ciphertext == message:
                return CheckResult.fail("AES-CFB", "Cipher left the message unchanged")
            with aes.decrypt(sealed.ciphertext, key, sealed.iv) as opened:
                if opened != message:
                    return CheckResult.fail("AES-CFB", "Round trip altered the message")

        return CheckResult.ok("AES-CFB", f"{constants.ENCRYPTION_ALGORITHM} round trip intact")

    @staticmethod
    @_reports_as("ECDSA")
    def test_ecdsa() -> CheckResult:
        """Sign, verify, then confirm a one-byte change is rejected."""
        from securekdf.core.crypto.ecdsa import CryptoECDSA

        ecdsa = CryptoECDSA()
        message = b"securekdf ecdsa startup probe"

        with ecdsa.generate_new_private_key() as private_key:
            public_key = ecdsa.compute_public_key(private_key)
            signature = ecdsa.sign_data(message, private_key)

        if not ecdsa.verify_data(message, signature, public_key):
            return CheckResult.fail("ECDSA", "Fresh signature did not verify")
        if ecdsa.verify_data(message + b"!", signature, public_key):
            return CheckResult.fail("ECDSA", "Signature verified over altered message")

        return CheckResult.ok("ECDSA", f"{constants.SIGNATURE_ALGORITHM} sign/verify consistent")

    @staticmethod
    @_reports_as("CSPRNG")
    def test_random_generator() -> CheckResult:
        first = secrets.token_bytes(32)
        second = secrets.token_bytes(32)

        if first == second:
            return CheckResult.fail("CSPRNG", "Two draws returned identical bytes")

        distinct = len(set(first))
        if distinct < constants.MIN_RANDOM_UNIQUE_BYTES:
            return CheckResult.warn("CSPRNG", f"Only {distinct} distinct values in 32 bytes")

        return CheckResult.ok("CSPRNG", "Draws look random")

    @classmethod
    def run_all_tests(cls) -> List[CheckResult]:
        return [
            cls.test_romix(),
            cls.test_sha512(),
            cls.test_aes_cfb(),
            cls.test_ecdsa(),
            cls.test_random_generator(),
        ]


class EnvironmentSecurityCheck:
    """Host facilities the KDF depends on."""

    @staticmethod
    def check_secure_random() -> CheckResult:
        try:
            os.urandom(32)
        except NotImplementedError as e:
            return CheckResult.fail("Secure Random", f"os.urandom unavailable: {e}")
        return CheckResult.ok("Secure Random", "os.urandom available")

    @staticmethod
    def check_memory_locking() -> CheckResult:
        """Compare RLIMIT_MEMLOCK with the default table cap."""
        try:
            import resource
        except ImportError:
            # Windows: VirtualLock works within the working-set quota
            return CheckResult.ok("Memory Locking", "VirtualLock available")

        soft, _hard = resource.getrlimit(resource.RLIMIT_MEMLOCK)
        if soft == resource.RLIM_INFINITY or soft >= constants.DEFAULT_KDF_MAX_MEMORY_BYTES:
            return CheckResult.ok("Memory Locking", "RLIMIT_MEMLOCK covers the default table size")

        return CheckResult.warn(
            "Memory Locking",
            f"RLIMIT_MEMLOCK is {soft} bytes; large KDF tables may be swappable",
        )

    @classmethod
    def run_all_checks(cls) -> List[CheckResult]:
        return [cls.check_secure_random(), cls.check_memory_locking()]


_LOG_LEVEL_FOR: dict[SecurityCheckResult, int] = {
    SecurityCheckResult.PASS: logging.INFO,
    SecurityCheckResult.WARN: logging.WARNING,
    SecurityCheckResult.FAIL: logging.ERROR,
}


class StartupSecurityValidator:
    """
    Run every self-test and host check, then decide whether to proceed.

    Any FAIL blocks startup. WARN verdicts never block; in strict mode
    they are additionally summarized at WARNING level.
    """

    def __init__(self, strict_mode: bool = True):
        self._strict = strict_mode
        self._results: List[CheckResult] = []
        self._log = logging.getLogger("securekdf.security")

    def _count(self, verdict: SecurityCheckResult) -> int:
        return sum(1 for r in self._results if r.result is verdict)

    def run_all_checks(self) -> bool:
        """
        Returns:
            False if any check failed
        """
        self._log.info("Running KDF and primitive self-tests")
        self._results = CryptoSelfTest.run_all_tests()
        self._log.info("Running host checks")
        self._results += EnvironmentSecurityCheck.run_all_checks()

        for check in self._results:
            self._log.log(_LOG_LEVEL_FOR[check.result], "[%s] %s: %s",
                          check.result.name, check.name, check.message)

        failed = self._count(SecurityCheckResult.FAIL)
        if failed:
            self._log.critical("Security validation failed: %d check(s) failed", failed)
            return False

        warned = self._count(SecurityCheckResult.WARN)
        if warned and self._strict:
            self._log.warning("Security validation completed with %d warning(s)", warned)

        self._log.info("Security validation passed")
        return True

    def get_results(self) -> List[CheckResult]:
        return list(self._results)

    def get_summary(self) -> str:
        return (
            f"Security Check Summary: {self._count(SecurityCheckResult.PASS)} passed, "
            f"{self._count(SecurityCheckResult.WARN)} warnings, "
            f"{self._count(SecurityCheckResult.FAIL)} failures"
        )
