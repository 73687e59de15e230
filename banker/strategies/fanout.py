"""
Fan-out: perpetual churn across the whole pool.

Every round, each funded wallet splits its balance by the pool size and pays
one share to every other wallet. The next round starts once the watch
wallet (first in the pool) shows a different balance.
"""

from typing import Callable, Optional

from ..ledger import balance_of
from ..models import Payee
from ..payer import even_share
from ..utils import format_address, format_bones, get_logger
from .base import Distribution, DistributionReport

logger = get_logger(__name__)


class FanOut(Distribution):

    def run_round(self) -> DistributionReport:
        """Pay out from every funded wallet once, sequentially."""
        report = DistributionReport(rounds=1)
        wallet_count = len(self.pool)

        for payer in self.pool:
            balance = balance_of(self.gateway, payer.address)
            # The divisor is the whole pool, payer included
            share = even_share(balance, wallet_count)
            if share == 0:
                continue

            logger.info(f"Paying out {format_bones(share)} each from {format_address(payer.address)}")
            payees = [Payee(other.address, share) for other in self.pool.others(payer.address)]
            report.extend(*self.payer.pay(payer, payees))

        return report

    def run(self, rounds: Optional[int] = None,
            on_round: Optional[Callable[[int], None]] = None) -> DistributionReport:
        """
        Fan out forever, or for ``rounds`` rounds when given.

        ``on_round`` is called with the round number before each round.
        """
        if len(self.pool) < 2:
            raise ValueError("fan-out needs at least two wallets")

        watch = self.pool[0]
        total = DistributionReport()

        while rounds is None or total.rounds < rounds:
            if on_round:
                on_round(total.rounds + 1)

            watch_balance = balance_of(self.gateway, watch.address)
            logger.info(f"Fanning out (round {total.rounds + 1})...")

            report = self.run_round()
            total.extend(report.plan, report.results)
            total.rounds += 1

            self._wait_for_balance_change(watch.address, watch_balance)

        return total
