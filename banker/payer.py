"""
Batch Payer
===========
Turns payee lists into multipay transactions of at most ``MAX_MULTIPAY``
payees and submits them through the ledger gateway.

A failed submission is logged with its latency and returned as a failed
PaymentResult; it never stops the remaining submissions.
"""

import dataclasses
from typing import List, Optional, Sequence, Tuple

from .ledger import LedgerGateway
from .logging_utils import MetricsCollector
from .models import DistributionPlan, Payee, PaymentInstruction, PaymentResult, WalletIdentity
from .pool import WalletPool
from .utils import BankerError, format_address, format_bones, get_logger

logger = get_logger(__name__)

MAX_MULTIPAY = 50


def chunk(payees: Sequence, limit: int = MAX_MULTIPAY) -> List[list]:
    """
    Split a sequence into order-preserving chunks of ``limit`` items.

    Every chunk but the last has exactly ``limit`` items.
    """
    if limit < 1:
        raise ValueError("chunk limit must be at least 1")
    items = list(payees)
    return [items[i:i + limit] for i in range(0, len(items), limit)]


def even_share(balance: int, n: int) -> int:
    """
    Equal share of a balance split n ways, rounded down.

    The remainder (balance - share * n) stays with the payer.
    """
    if n < 1:
        raise ValueError("cannot split a balance zero ways")
    if balance < 0:
        raise ValueError("balance cannot be negative")
    return balance // n


class BatchPayer:
    """
    Submits payment instructions on behalf of pool wallets.

    Args:
        pool: Wallet pool providing the signing handles
        gateway: Ledger gateway
        password: Key file password used to sign
        limit: Maximum payees per transaction
        commit: Broadcast transactions (False = sign only, dry run)
        metrics: Collector for submission latency
    """

    def __init__(
        self,
        pool: WalletPool,
        gateway: LedgerGateway,
        password: str,
        limit: int = MAX_MULTIPAY,
        commit: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        if not 1 <= limit <= MAX_MULTIPAY:
            raise ValueError(f"multipay limit must be between 1 and {MAX_MULTIPAY}")
        self.pool = pool
        self.gateway = gateway
        self.password = password
        self.limit = limit
        self.commit = commit
        self.metrics = metrics or MetricsCollector()

    def plan(self, payer: WalletIdentity, payees: Sequence[Payee]) -> DistributionPlan:
        """Chunk a payee list into instructions for one payer."""
        return [
            PaymentInstruction(payer=payer.address, payees=tuple(part))
            for part in chunk(payees, self.limit)
        ]

    def submit(self, payer: WalletIdentity, instruction: PaymentInstruction) -> PaymentResult:
        """
        Submit one instruction and time it.

        Never raises for ledger-side failures; the returned result carries
        the error detail instead.
        """
        if len(instruction.payees) > self.limit:
            raise ValueError(f"instruction has {len(instruction.payees)} payees, limit is {self.limit}")

        handle = self.pool.handle(payer)
        extra = {"payer": payer.address, "payees": len(instruction.payees)}

        with self.metrics.timed_operation("payment", extra) as metric:
            try:
                result = self.gateway.submit_payment(
                    handle,
                    self.password,
                    instruction.payees,
                    ack=True,
                    commit=self.commit,
                )
            except BankerError as e:
                metric.finalize(success=False, error=str(e))
                result = PaymentResult(
                    payer=payer.address,
                    payee_count=len(instruction.payees),
                    total=instruction.total,
                    success=False,
                    detail=str(e),
                    committed=self.commit,
                )
            else:
                metric.finalize(success=result.success, error=None if result.success else result.detail)

        result = dataclasses.replace(result, elapsed_ms=metric.duration_ms)

        if result.success:
            prefix = "" if result.committed else "[DRY RUN] "
            logger.info(
                f"{prefix}Paid {format_bones(result.total)} from {format_address(payer.address)} "
                f"to {result.payee_count} payee(s) in {result.elapsed_ms:.0f} ms ({result.tx_hash})"
            )
        else:
            logger.error(
                f"Payment from {format_address(payer.address)} failed after "
                f"{result.elapsed_ms:.0f} ms: {result.detail}"
            )
        return result

    def pay(self, payer: WalletIdentity, payees: Sequence[Payee]) -> Tuple[DistributionPlan, List[PaymentResult]]:
        """Chunk and submit sequentially; every chunk is attempted."""
        plan = self.plan(payer, payees)
        return plan, [self.submit(payer, instruction) for instruction in plan]
