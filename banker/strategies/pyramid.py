"""
Pyramid seeding.

Funded wallets ("seeders") each take up to one multipay worth of unfunded
wallets from a shared queue and fund them; everything funded in a round
seeds in the next one. The number of rounds grows with log50 of the pool
size rather than linearly.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List

from ..ledger import balance_of
from ..models import DistributionPlan, Payee, PaymentResult, WalletIdentity
from ..payer import even_share
from ..utils import format_address, format_bones, get_logger
from .base import Distribution, DistributionReport

logger = get_logger(__name__)


@dataclass
class SeedRound:
    """Seeders and the queue of wallets still waiting to be funded."""
    seeders: List[WalletIdentity]
    recipients: Deque[WalletIdentity]
    # recipient address -> address of the seeder that claimed it
    claims: Dict[str, str] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim(self, seeder: WalletIdentity, limit: int) -> List[WalletIdentity]:
        """Atomically take up to ``limit`` recipients off the queue for ``seeder``."""
        with self._lock:
            count = min(limit, len(self.recipients))
            taken = [self.recipients.popleft() for _ in range(count)]
            for wallet in taken:
                self.claims[wallet.address] = seeder.address
            return taken

    def promote(self, wallets: List[WalletIdentity]):
        self.seeders.extend(wallets)


@dataclass
class SeederOutcome:
    seeder: WalletIdentity
    claimed: List[WalletIdentity] = field(default_factory=list)
    paid: List[WalletIdentity] = field(default_factory=list)
    plan: DistributionPlan = field(default_factory=list)
    results: List[PaymentResult] = field(default_factory=list)


class SeedPyramid(Distribution):

    def _seed_from(self, seeder: WalletIdentity, state: SeedRound) -> SeederOutcome:
        outcome = SeederOutcome(seeder=seeder)
        outcome.claimed = state.claim(seeder, self.payer.limit)
        if not outcome.claimed:
            return outcome

        balance = balance_of(self.gateway, seeder.address)
        # One share is kept back so the seeder stays funded
        share = even_share(balance, len(outcome.claimed) + 1)
        if share == 0:
            logger.warning(
                f"Seeder {format_address(seeder.address)} cannot fund "
                f"{len(outcome.claimed)} wallet(s) from {format_bones(balance)}"
            )
            return outcome

        logger.info(
            f"{format_address(seeder.address)} seeding {len(outcome.claimed)} wallet(s) "
            f"with {format_bones(share)} each"
        )
        payees = [Payee(wallet.address, share) for wallet in outcome.claimed]
        outcome.plan, outcome.results = self.payer.pay(seeder, payees)

        paid_addresses = {
            payee.address
            for instruction, result in zip(outcome.plan, outcome.results)
            if result.success
            for payee in instruction.payees
        }
        outcome.paid = [wallet for wallet in outcome.claimed if wallet.address in paid_addresses]

        if outcome.paid:
            self._wait_for_balance_change(seeder.address, balance)
        return outcome

    def run(self, seed_address: str) -> DistributionReport:
        """
        Fund the whole pool starting from a single seed wallet.

        Raises:
            TargetNotFoundError: seed address is not in the pool
        """
        seed = self.pool.require(seed_address)
        state = SeedRound(seeders=[seed], recipients=deque(self.pool.others(seed.address)))
        report = DistributionReport()
        logger.info(
            f"Seeding {len(state.recipients)} wallet(s), "
            f"expecting {claim_rounds_needed(len(state.recipients), self.payer.limit)} round(s)"
        )

        while state.recipients:
            report.rounds += 1
            seeders = list(state.seeders)
            logger.info(
                f"Round {report.rounds}: {len(seeders)} seeder(s), "
                f"{len(state.recipients)} wallet(s) left to fund"
            )

            claimed_before = set(state.claims)
            promoted: List[WalletIdentity] = []
            for task in self.executor.map(lambda s: self._seed_from(s, state), seeders):
                if not task.ok:
                    seeder = seeders[task.index].address
                    stranded = [
                        address for address, owner in state.claims.items()
                        if owner == seeder and address not in claimed_before
                    ]
                    logger.error(
                        f"Seeder {format_address(seeder)} failed: {task.error}; "
                        f"{len(stranded)} claimed wallet(s) left unfunded: {', '.join(stranded) or 'none'}"
                    )
                    continue
                outcome: SeederOutcome = task.value
                report.extend(outcome.plan, outcome.results)
                promoted.extend(outcome.paid)

            report.claims.update(state.claims)
            state.promote(promoted)

        logger.info(f"Pyramid seeding finished in {report.rounds} round(s)")
        return report


def claim_rounds_needed(recipients: int, limit: int = 50) -> int:
    """Rounds needed to fund ``recipients`` wallets when every payment succeeds."""
    rounds, seeders, funded = 0, 1, 0
    while funded < recipients:
        batch = min(seeders * limit, recipients - funded)
        funded += batch
        seeders += batch
        rounds += 1
    return rounds
