"""
Seed: one wallet pays an equal share to every other wallet, once.
"""

from ..ledger import balance_of
from ..models import Payee
from ..payer import even_share
from ..utils import format_address, format_bones, get_logger
from .base import Distribution, DistributionReport

logger = get_logger(__name__)


class Seed(Distribution):

    def run(self, seed_address: str) -> DistributionReport:
        """
        Split the seed balance by the pool size and pay every other wallet.

        Fire-and-forget: no confirmation wait.

        Raises:
            TargetNotFoundError: seed address is not in the pool
        """
        seed = self.pool.require(seed_address)
        report = DistributionReport(rounds=1)

        balance = balance_of(self.gateway, seed.address)
        share = even_share(balance, len(self.pool))
        if share == 0:
            logger.warning(f"Seed wallet {format_address(seed.address)} has nothing to distribute")
            return report

        logger.info(f"Paying out {format_bones(share)} each from {format_address(seed.address)}")
        payees = [Payee(other.address, share) for other in self.pool.others(seed.address)]
        report.extend(*self.payer.pay(seed, payees))
        return report
