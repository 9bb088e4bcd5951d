"""
Security module - Constants and startup self-tests.

Security Considerations:
- Use only approved primitives from the cryptography package
- Verify the KDF against known answers before deriving real keys
- Follow fail-closed design principles
"""

from securekdf.security.constants import (
    KEY_DERIVATION_FUNCTION,
    ENCRYPTION_ALGORITHM,
    SIGNATURE_ALGORITHM,
)
from securekdf.security.hardening import (
    CheckResult,
    SecurityCheckResult,
    CryptoSelfTest,
    EnvironmentSecurityCheck,
    StartupSecurityValidator,
)

__all__ = [
    # Constants
    "KEY_DERIVATION_FUNCTION",
    "ENCRYPTION_ALGORITHM",
    "SIGNATURE_ALGORITHM",
    # Hardening
    "CheckResult",
    "SecurityCheckResult",
    "CryptoSelfTest",
    "EnvironmentSecurityCheck",
    "StartupSecurityValidator",
]
