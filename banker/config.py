"""
Configuration Management Module

Settings come from three layers, later layers winning:
1. An optional YAML file (default ``./banker_config.yaml``)
2. Environment variables, with a ``.env`` file loaded first
3. Command line overrides

The wallet password is never written back to disk.
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .utils import ConfigError

import logging
logger = logging.getLogger(__name__)


# Environment variable -> (config field, type)
ENV_VARS = {
    "API_URL": ("api_url", str),
    "PASSWORD": ("password", str),
    "BANKER_DIR": ("working_dir", str),
    "BANKER_THREADS": ("threads", int),
    "BANKER_POLL_INTERVAL": ("poll_interval_seconds", float),
    "LOG_LEVEL": ("log_level", str),
}


@dataclass
class Config:
    """Bank configuration settings."""

    # Ledger
    api_url: Optional[str] = None
    request_timeout: float = 30.0

    # Wallets
    password: Optional[str] = None
    working_dir: str = "."
    key_tier: int = 2

    # Distribution
    threads: int = 0                      # 0 = all logical cores
    poll_interval_seconds: float = 30.0
    multipay_limit: int = 50
    sustained_batch_size: int = 10

    # Operation
    dry_run: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = "./banker.log"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (excluding the password)."""
        data = asdict(self)
        data.pop("password", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        # Filter only valid fields
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)

    def validate(self, require_ledger: bool = True):
        """
        Check the settings a command needs.

        Wallet creation never touches the ledger, so it passes
        ``require_ledger=False`` and only needs the password.
        """
        if require_ledger and not self.api_url:
            raise ConfigError("Missing API_URL (set it in the environment or the config file)")
        if not self.password:
            raise ConfigError("Missing PASSWORD (set it in the environment or a .env file)")
        if self.threads < 0:
            raise ConfigError("threads must be >= 0")
        if not 1 <= self.multipay_limit <= 50:
            raise ConfigError("multipay_limit must be between 1 and 50")
        if self.poll_interval_seconds <= 0:
            raise ConfigError("poll_interval_seconds must be positive")


class ConfigManager:
    """Loads and saves the bank configuration."""

    def __init__(self, config_path: Path = Path("./banker_config.yaml"),
                 env_file: Optional[str] = None):
        self.config_path = Path(config_path)
        self.env_file = env_file

    def read_raw_config(self) -> Dict[str, Any]:
        """Read the YAML file, or an empty mapping if there is none."""
        if not self.config_path.exists():
            return {}

        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        return data

    def _read_env(self) -> Dict[str, Any]:
        load_dotenv(self.env_file or find_dotenv(usecwd=True))

        values = {}
        for var, (field, cast) in ENV_VARS.items():
            raw = os.getenv(var)
            if raw is None or raw == "":
                continue
            try:
                values[field] = cast(raw)
            except ValueError:
                raise ConfigError(f"Invalid value for {var}: {raw!r}")
        return values

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """Load configuration from file, environment and overrides."""
        data = self.read_raw_config()
        data.update(self._read_env())
        if overrides:
            data.update({k: v for k, v in overrides.items() if v is not None})

        config = Config.from_dict(data)
        logger.debug(f"Configuration loaded from {self.config_path}")
        return config

    def save_config(self, config: Config):
        """Save configuration to YAML file (without the password)."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

        # Set restrictive permissions (owner read/write only)
        os.chmod(self.config_path, 0o600)

        logger.info(f"Configuration saved to {self.config_path}")

