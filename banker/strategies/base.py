"""
Shared plumbing for distribution strategies.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from ..barrier import HeightBarrier
from ..executor import ConcurrencyExecutor
from ..ledger import LedgerGateway
from ..models import DistributionPlan, PaymentResult
from ..payer import BatchPayer
from ..pool import WalletPool
from ..utils import get_logger

logger = get_logger(__name__)


@dataclass
class DistributionReport:
    """What a strategy run planned and how each submission went."""
    plan: DistributionPlan = field(default_factory=list)
    results: List[PaymentResult] = field(default_factory=list)
    rounds: int = 0
    # recipient address -> seeder address (pyramid seeding only)
    claims: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_sent(self) -> int:
        return sum(r.total for r in self.results if r.success)

    def extend(self, plan: DistributionPlan, results: List[PaymentResult]):
        self.plan.extend(plan)
        self.results.extend(results)


class Distribution:
    """
    Base class wiring a strategy to the pool and the ledger.

    Args:
        pool: Wallets to operate on
        gateway: Ledger gateway for balance and height reads
        payer: Submits payment instructions
        barrier: Confirmation waits between rounds
        executor: Worker pool for per-wallet parallel work
    """

    def __init__(
        self,
        pool: WalletPool,
        gateway: LedgerGateway,
        payer: BatchPayer,
        barrier: HeightBarrier,
        executor: ConcurrencyExecutor,
    ):
        self.pool = pool
        self.gateway = gateway
        self.payer = payer
        self.barrier = barrier
        self.executor = executor

    @property
    def confirms(self) -> bool:
        """Balance-change waits only make sense when payments are broadcast."""
        return self.payer.commit

    def _wait_for_balance_change(self, address: str, prior_balance: int):
        if not self.confirms:
            logger.info(f"[DRY RUN] Not waiting for balance change on {address}")
            return
        self.barrier.wait_for_balance_change(address, prior_balance)
