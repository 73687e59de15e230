"""
Forward: sustained transaction volume around a fixed ring.

Wallet ``i`` always pays wallet ``(i + 1) % n`` one bone. The ring is cut
into contiguous batches; each batch runs in parallel and the next one waits
for a new block, so the ledger sees a steady number of payments per block.
"""

from typing import Callable, List, Optional, Tuple

from ..models import Payee, WalletIdentity
from ..utils import get_logger
from .base import Distribution, DistributionReport

logger = get_logger(__name__)

SENTINEL_AMOUNT = 1

Link = Tuple[WalletIdentity, WalletIdentity]


class Forward(Distribution):

    def ring(self) -> List[Link]:
        """(payer, payee) pairs in pool order, closing back on the first wallet."""
        wallets = self.pool.identities
        if len(wallets) < 2:
            raise ValueError("forwarding needs at least two wallets")
        return [(wallet, wallets[(i + 1) % len(wallets)]) for i, wallet in enumerate(wallets)]

    def batches(self, batch_size: int) -> List[List[Link]]:
        """
        Contiguous slices of the ring with ``batch_size`` links each (the
        last may be shorter). Ring payers are distinct, so no wallet pays twice
        within a batch.
        """
        links = self.ring()
        if not 1 <= batch_size <= len(links):
            raise ValueError(f"batch size must be between 1 and the pool size ({len(links)})")

        return [links[i:i + batch_size] for i in range(0, len(links), batch_size)]

    def _forward(self, link: Link):
        payer, payee = link
        return self.payer.pay(payer, [Payee(payee.address, SENTINEL_AMOUNT)])

    def run(self, batch_size: int, cycles: Optional[int] = None,
            on_batch: Optional[Callable[[int, int], None]] = None) -> DistributionReport:
        """
        Cycle through the ring forever, or for ``cycles`` full cycles.

        ``on_batch`` is called with (cycle, batch index) before each batch.
        """
        batches = self.batches(batch_size)
        report = DistributionReport()

        # Any height at all releases a wait on -1
        height = self.barrier.wait_for_height_increase(-1)
        logger.info(f"Forwarding around {len(self.pool)} wallets in {len(batches)} batch(es), starting at height {height}")

        while cycles is None or report.rounds < cycles:
            for index, batch in enumerate(batches):
                if on_batch:
                    on_batch(report.rounds + 1, index)

                for task in self.executor.map(self._forward, batch):
                    if task.ok:
                        report.extend(*task.value)
                    else:
                        logger.error(f"Forward from {batch[task.index][0].address} failed: {task.error}")

                height = self.barrier.wait_for_height_increase(height)
                logger.debug(f"Batch {index + 1}/{len(batches)} done, height now {height}")

            report.rounds += 1

        return report
