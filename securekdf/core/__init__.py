"""
Core module - Contains configuration, logging, memory and crypto components.
"""

from securekdf.core.config import SecureConfig
from securekdf.core.logging import get_secure_logger, configure_logging, SecureLogFilter

__all__ = ["SecureConfig", "get_secure_logger", "configure_logging", "SecureLogFilter"]
