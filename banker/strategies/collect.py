"""
Collect: sweep every other wallet's full balance into one target.
"""

from typing import List, Optional

from ..ledger import balance_of
from ..models import Payee, PaymentInstruction, PaymentResult, WalletIdentity
from ..utils import format_address, format_bones, get_logger
from .base import Distribution, DistributionReport

logger = get_logger(__name__)


class Collect(Distribution):

    def _sweep(self, source: WalletIdentity, target: WalletIdentity) -> Optional[tuple]:
        balance = balance_of(self.gateway, source.address)
        if balance == 0:
            logger.debug(f"Nothing to collect from {format_address(source.address)}")
            return None

        logger.info(f"Collecting {format_bones(balance)} from {format_address(source.address)}")
        # One payee per transaction, no chunking
        instruction = PaymentInstruction(payer=source.address, payees=(Payee(target.address, balance),))
        return instruction, self.payer.submit(source, instruction)

    def run(self, target_address: str) -> DistributionReport:
        """
        Pay the whole balance of every other wallet to ``target_address``.

        Sources are swept in parallel; one failure does not stop the others.

        Raises:
            TargetNotFoundError: target address is not in the pool
        """
        target = self.pool.require(target_address)
        sources = self.pool.others(target.address)
        report = DistributionReport(rounds=1)

        plan: List[PaymentInstruction] = []
        results: List[PaymentResult] = []
        for task in self.executor.map(lambda source: self._sweep(source, target), sources):
            if not task.ok:
                logger.error(f"Collecting from {format_address(sources[task.index].address)} failed: {task.error}")
                continue
            if task.value is None:
                continue
            instruction, result = task.value
            plan.append(instruction)
            results.append(result)

        report.extend(plan, results)
        return report
