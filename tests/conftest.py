"""
Shared fixtures: an in-memory ledger, a fake clock and key file helpers.
"""

import base64
import json
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from cryptography.fernet import Fernet
from eth_account import Account as EthAccount
from web3 import Web3

from banker.barrier import HeightBarrier
from banker.executor import ConcurrencyExecutor, WorkerPoolConfig
from banker.models import Account, Payee, PaymentResult, WalletIdentity
from banker.payer import BatchPayer
from banker.pool import WalletPool
from banker.utils import LedgerUnavailable, PaymentSubmissionError
from banker.wallet import WalletHandle, derive_key, wallet_file_name

PASSWORD = "test_password_123"

# Low iteration count keeps key file fixtures fast
TEST_ITERATIONS = 1_000


def make_address(index: int) -> str:
    """Deterministic checksummed address, no key derivation needed."""
    return Web3.to_checksum_address(f"0x{index + 1:040x}")


class FakeLedger:
    """
    Thread-safe in-memory LedgerGateway.

    Committed payments move balances immediately, or after ``settle_after``
    calls to ``advance`` when that is set. Every height query returns a
    height one greater than the last.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None, settle_after: int = 0):
        self.balances: Dict[str, int] = dict(balances or {})
        self.nonces: Dict[str, int] = {}
        self.height = 100
        self.submissions: List[Tuple[str, Tuple[Tuple[str, int], ...], bool]] = []
        self.failing_payers = set()
        self.unavailable = set()
        self.settle_after = settle_after
        # [advances left, payer, pairs]
        self.pending: List[list] = []
        self._lock = threading.Lock()

    def get_account(self, address: str) -> Optional[Account]:
        if address in self.unavailable:
            raise LedgerUnavailable(f"{address} unavailable")
        with self._lock:
            if address not in self.balances:
                return None
            return Account(address, self.balances[address], self.nonces.get(address, 0))

    def get_height(self) -> int:
        with self._lock:
            self.height += 1
            return self.height

    def submit_payment(self, payer: WalletHandle, credential: str, payees: Sequence[Payee],
                       ack: bool = True, commit: bool = True) -> PaymentResult:
        address = payer.address()
        pairs = tuple((p.address, p.amount) for p in payees)
        total = sum(p.amount for p in payees)

        with self._lock:
            self.submissions.append((address, pairs, commit))
            if address in self.failing_payers:
                raise PaymentSubmissionError(f"{address} rejected")
            if commit:
                if self.balances.get(address, 0) < total:
                    raise PaymentSubmissionError(f"{address} has insufficient funds")
                if self.settle_after:
                    self.pending.append([self.settle_after, address, pairs])
                else:
                    self._apply(address, pairs)
                self.nonces[address] = self.nonces.get(address, 0) + 1

        return PaymentResult(
            payer=address,
            payee_count=len(pairs),
            total=total,
            success=True,
            tx_hash=f"tx-{len(self.submissions)}",
            committed=commit,
        )

    def _apply(self, address: str, pairs: Tuple[Tuple[str, int], ...]):
        self.balances[address] -= sum(amount for _, amount in pairs)
        for payee, amount in pairs:
            self.balances[payee] = self.balances.get(payee, 0) + amount

    def advance(self):
        """Count down every pending payment and apply the ones that are due."""
        with self._lock:
            waiting = []
            for entry in self.pending:
                entry[0] -= 1
                if entry[0] > 0:
                    waiting.append(entry)
                else:
                    self._apply(entry[1], entry[2])
            self.pending = waiting

    def payments_from(self, address: str) -> List[Tuple[Tuple[str, int], ...]]:
        return [pairs for payer, pairs, _ in self.submissions if payer == address]


class FakeClock:
    """Records sleeps instead of sleeping; gives up after ``max_sleeps``."""

    def __init__(self, max_sleeps: int = 1000):
        self.now = 0.0
        self.sleeps: List[float] = []
        self.max_sleeps = max_sleeps
        self.on_sleep: Optional[Callable[[], None]] = None

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if len(self.sleeps) > self.max_sleeps:
            raise RuntimeError("barrier never released")
        self.now += seconds
        if self.on_sleep:
            self.on_sleep()

    def monotonic(self) -> float:
        return self.now


def address_only_key(path: Path, address: str) -> Path:
    """Key file with an address but no usable key (enough for pool discovery)."""
    with open(path, "w") as f:
        json.dump({"version": 1, "address": address, "salt": "", "encrypted_key": ""}, f)
    return path


def signing_key(path: Path, password: str = PASSWORD, private_key: Optional[str] = None) -> Path:
    """Real, decryptable key file written with a low iteration count."""
    private_key = private_key or "0x" + os.urandom(32).hex()
    salt = os.urandom(16)
    token = Fernet(derive_key(password, salt, TEST_ITERATIONS)).encrypt(private_key.encode())
    with open(path, "w") as f:
        json.dump({
            "version": 1,
            "address": EthAccount.from_key(private_key).address,
            "salt": base64.b64encode(salt).decode(),
            "encrypted_key": token.decode(),
            "iterations": TEST_ITERATIONS,
        }, f)
    return path


def make_pool(count: int, directory: Path = Path("/nonexistent")) -> WalletPool:
    """In-memory pool of ``count`` wallets with deterministic addresses."""
    wallets = []
    for i in range(count):
        address = make_address(i)
        path = directory / wallet_file_name(i + 1)
        wallets.append((WalletIdentity(key_file=path, address=address), WalletHandle(path, {"address": address})))
    return WalletPool(wallets)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def build_strategy(fake_clock):
    """Wire a strategy class to a pool and a FakeLedger."""

    def build(strategy_cls, pool: WalletPool, ledger: FakeLedger, commit: bool = True, workers: int = 4):
        payer = BatchPayer(pool, ledger, PASSWORD, commit=commit)
        barrier = HeightBarrier(ledger, poll_interval=30, clock=fake_clock)
        executor = ConcurrencyExecutor(WorkerPoolConfig(max_workers=workers))
        return strategy_cls(pool, ledger, payer, barrier, executor)

    return build
