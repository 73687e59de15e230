"""
Utility Module

Error types, logging setup and formatting helpers shared by the bank.

Logging goes to a Rich console handler plus a plain file handler. Every
message passes through SecureLogger, which redacts private keys and
passwords before they reach either handler.
"""

import os
import re
import logging
from decimal import Decimal
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from web3 import Web3


# Global console for Rich output
console = Console()

# Bones per whole coin (8 decimal places)
BONES_PER_COIN = 100_000_000


class BankerError(Exception):
    """Base exception for all bank failures."""
    pass


class ConfigError(BankerError):
    """Missing or invalid configuration."""
    pass


class WalletLoadError(BankerError):
    """A key file could not be read or parsed. Fatal for the whole run."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load wallet {path}: {reason}")


class AddressResolutionError(BankerError):
    """A loaded wallet did not yield a usable address."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"No address for wallet {path}: {reason}")


class LedgerUnavailable(BankerError):
    """A balance, height or submission call to the ledger failed."""
    pass


class PaymentSubmissionError(BankerError):
    """The ledger rejected a payment."""
    pass


class TargetNotFoundError(BankerError):
    """A command target address is not part of the wallet pool."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address {address} is not in the wallet pool")


class SecureLogger:
    """
    Logger that sanitizes sensitive data from log messages.

    Private keys, passwords and long hex secrets are replaced before the
    record is emitted.
    """

    # Patterns to redact from logs
    SENSITIVE_PATTERNS = [
        (r'0x[a-fA-F0-9]{64}', '[PRIVATE_KEY_REDACTED]'),
        (r'password["\']?\s*[:=]\s*["\']?[^"\'\s,}]+["\']?', 'password=[REDACTED]'),
        (r'encrypted_key["\']?\s*[:=]\s*["\'][^"\']+["\']', 'encrypted_key=[REDACTED]'),
    ]

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _sanitize(self, msg: str) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)

        sanitized = msg
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = "./banker.log") -> logging.Logger:
    """
    Setup logging with both console and file output.

    Configures the ``banker`` logger; module loggers created with
    ``get_logger(__name__)`` propagate to it.
    """
    logger = logging.getLogger("banker")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    # Remove existing handlers
    logger.handlers = []

    # Rich console handler
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(getattr(logging, log_level.upper()))
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    # File handler for persistent logging
    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> SecureLogger:
    """Get a sanitizing logger in the ``banker`` namespace."""
    if not name.startswith("banker"):
        name = f"banker.{name}"
    return SecureLogger(logging.getLogger(name))


def format_bones(bones: int) -> str:
    """Format an amount of bones as whole coins with 8 decimals."""
    coins = Decimal(int(bones)) / Decimal(BONES_PER_COIN)
    return f"{coins:.8f}"


def format_address(address: str, chars: int = 8) -> str:
    """Shorten an address for display."""
    if not address or len(address) <= chars * 2 + 3:
        return address or ""
    return f"{address[:chars]}...{address[-chars:]}"


def format_duration(seconds: float) -> str:
    """Format seconds as a short human readable duration."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def validate_address(address: str) -> bool:
    """Validate a checksummed wallet address."""
    try:
        return Web3.is_address(address) and Web3.is_checksum_address(address)
    except (TypeError, ValueError):
        return False
