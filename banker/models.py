"""
Data types shared by the pool, the ledger gateway and the strategies.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class WalletIdentity:
    """A wallet in the pool: its key file and the address it resolves to."""
    key_file: Path
    address: str

    @property
    def name(self) -> str:
        return Path(self.key_file).name


@dataclass(frozen=True)
class AddressLookup:
    """Tagged result of resolving a key file to an address."""
    key_file: Path
    address: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.address is not None and self.error is None


@dataclass(frozen=True)
class Payee:
    """One leg of a multipay: an address and an amount in bones."""
    address: str
    amount: int

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise ValueError(f"Payment amount must be a non-negative integer of bones, got {self.amount!r}")


@dataclass(frozen=True)
class PaymentInstruction:
    """A single multipay transaction: one payer, an ordered list of payees."""
    payer: str
    payees: Tuple[Payee, ...]

    @property
    def total(self) -> int:
        return sum(p.amount for p in self.payees)

    def pairs(self) -> List[Tuple[str, str, int]]:
        """Flatten to (payer, payee, amount) triples."""
        return [(self.payer, p.address, p.amount) for p in self.payees]


# An ordered sequence of instructions produced by one strategy round
DistributionPlan = List[PaymentInstruction]


@dataclass(order=True)
class Balance:
    """Point-in-time balance snapshot of one wallet, ordered by key file."""
    key_file: str
    address: str = field(compare=False)
    balance: Optional[int] = field(default=None, compare=False)
    error: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class Account:
    """Ledger view of an account."""
    address: str
    balance: int
    nonce: int = 0


@dataclass
class PaymentResult:
    """Outcome of submitting one PaymentInstruction."""
    payer: str
    payee_count: int
    total: int
    success: bool
    tx_hash: Optional[str] = None
    detail: Optional[str] = None
    elapsed_ms: Optional[float] = None
    committed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payer": self.payer,
            "payee_count": self.payee_count,
            "total": self.total,
            "success": self.success,
            "tx_hash": self.tx_hash,
            "detail": self.detail,
            "elapsed_ms": round(self.elapsed_ms, 2) if self.elapsed_ms is not None else None,
            "committed": self.committed,
        }
