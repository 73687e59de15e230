"""
Wallet Module - Key File Storage
================================
Reads, creates and signs with the ``*.key`` wallet files in a working
directory.

Key file layout (JSON):
- ``address``: checksummed wallet address, stored in clear so a pool can be
  built without the password
- ``salt``: base64 PBKDF2 salt
- ``encrypted_key``: Fernet token of the hex private key
- ``iterations``: PBKDF2 iterations used for this file

Security:
- PBKDF2-HMAC-SHA256 key derivation, iteration count set by the key tier
- Fernet (AES-128-CBC) encryption, unique salt per file
- File permissions 0o600 (owner-only)
"""

import os
import json
import base64
import secrets
from datetime import datetime
from pathlib import Path
from typing import List

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from eth_account import Account
from eth_account.messages import encode_defunct

from .models import AddressLookup
from .utils import AddressResolutionError, WalletLoadError, validate_address

KEY_EXTENSION = ".key"
KEY_FILE_VERSION = 1

# Key tier -> PBKDF2 iterations
KEY_TIERS = {
    1: 100_000,
    2: 480_000,   # OWASP recommended minimum
    3: 600_000,
}


def derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    """
    Derive a Fernet key from a password using PBKDF2.

    Returns:
        URL-safe base64-encoded key for Fernet
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode()))


class WalletHandle:
    """
    A loaded key file.

    The private key stays encrypted; it is decrypted only for the duration
    of a signature.
    """

    def __init__(self, path: Path, data: dict):
        self.path = Path(path)
        self._data = data

    def __repr__(self) -> str:
        return f"WalletHandle({self.path.name})"

    def address(self) -> str:
        """Return the wallet address or raise AddressResolutionError."""
        address = self._data.get("address")
        if not address:
            raise AddressResolutionError(self.path, "key file has no address")
        if not validate_address(address):
            raise AddressResolutionError(self.path, f"invalid address {address!r}")
        return address

    def lookup_address(self) -> AddressLookup:
        """Resolve the address without raising."""
        try:
            return AddressLookup(key_file=self.path, address=self.address())
        except AddressResolutionError as e:
            return AddressLookup(key_file=self.path, error=e.reason)

    def _private_key(self, password: str) -> str:
        try:
            salt = base64.b64decode(self._data["salt"])
            iterations = int(self._data.get("iterations", KEY_TIERS[2]))
            f = Fernet(derive_key(password, salt, iterations))
            return f.decrypt(self._data["encrypted_key"].encode()).decode()
        except (InvalidToken, KeyError, ValueError) as e:
            raise WalletLoadError(self.path, f"cannot decrypt key ({type(e).__name__})")

    def sign(self, password: str, message: str) -> str:
        """
        Sign a message with the wallet key.

        Returns:
            Hex signature

        Raises:
            WalletLoadError: wrong password or corrupt key
        """
        private_key = self._private_key(password)
        account = Account.from_key(private_key)
        if account.address.lower() != str(self._data.get("address", "")).lower():
            raise WalletLoadError(self.path, "decrypted key does not match stored address")
        signed = account.sign_message(encode_defunct(text=message))
        return signed.signature.hex()


class KeyFileStore:
    """Enumerates, loads and creates wallet key files."""

    def enumerate_key_files(self, directory) -> List[Path]:
        """List ``*.key`` files in a directory, in name order."""
        directory = Path(directory)
        if not directory.is_dir():
            raise WalletLoadError(directory, "not a directory")
        return sorted(p for p in directory.glob(f"*{KEY_EXTENSION}") if p.is_file())

    def load_wallet(self, path) -> WalletHandle:
        """
        Load a key file.

        Raises:
            WalletLoadError: unreadable file, invalid JSON or missing fields
        """
        path = Path(path)
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise WalletLoadError(path, str(e))
        except json.JSONDecodeError as e:
            raise WalletLoadError(path, f"invalid JSON: {e}")

        if not isinstance(data, dict):
            raise WalletLoadError(path, "key file must contain a JSON object")
        for required in ("salt", "encrypted_key"):
            if required not in data:
                raise WalletLoadError(path, f"missing field {required!r}")

        return WalletHandle(path, data)

    def create_wallet(self, password: str, key_tier: int, output_path) -> WalletHandle:
        """
        Generate a new wallet and write its key file.

        Raises:
            FileExistsError: the output path already exists
            ValueError: unknown key tier
        """
        if key_tier not in KEY_TIERS:
            raise ValueError(f"Unknown key tier {key_tier}, expected one of {sorted(KEY_TIERS)}")

        output_path = Path(output_path)
        iterations = KEY_TIERS[key_tier]

        private_key = "0x" + secrets.token_bytes(32).hex()
        account = Account.from_key(private_key)

        salt = os.urandom(16)
        f = Fernet(derive_key(password, salt, iterations))

        data = {
            "version": KEY_FILE_VERSION,
            "address": account.address,
            "salt": base64.b64encode(salt).decode(),
            "encrypted_key": f.encrypt(private_key.encode()).decode(),
            "iterations": iterations,
            "created": datetime.now().isoformat(),
        }

        # Exclusive create: never overwrite an existing wallet
        with open(output_path, 'x') as out:
            json.dump(data, out)
        os.chmod(output_path, 0o600)

        return WalletHandle(output_path, data)


def wallet_file_name(index: int) -> str:
    """Name of the n-th generated wallet file (1-based)."""
    return f"wallet_{index:04d}{KEY_EXTENSION}"
