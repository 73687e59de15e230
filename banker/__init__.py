"""
Banker

Moves funds across a pool of locally held wallets on a payment ledger:
seeding a fresh pool, fanning balances out, sustaining a steady payment
rate per block, and collecting everything back into one wallet.

Usage:
    from banker import Banker, ConfigManager

    config = ConfigManager().load_config({"working_dir": "./wallets"})
    Banker(config).print_all_balances()
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .bank import Banker
from .config import Config, ConfigManager
from .ledger import HttpLedgerGateway, LedgerGateway
from .pool import WalletPool
from .payer import BatchPayer, chunk, even_share
from .barrier import HeightBarrier
from .executor import ConcurrencyExecutor, WorkerPoolConfig
from .utils import (
    BankerError,
    ConfigError,
    WalletLoadError,
    AddressResolutionError,
    LedgerUnavailable,
    PaymentSubmissionError,
    TargetNotFoundError,
)
