"""
The Banker: one object wired from a Config, one method per command.

Components (pool, gateway, payer, barrier, executor) are built lazily so
that commands which never touch the ledger, like ``create``, do not need
an API URL.
"""

from pathlib import Path
from typing import List, Optional, Tuple, Type

from .barrier import Clock, HeightBarrier
from .config import Config
from .display import render_balances
from .executor import ConcurrencyExecutor, WorkerPoolConfig
from .ledger import HttpLedgerGateway, LedgerGateway
from .logging_utils import MetricsCollector
from .models import Balance, WalletIdentity
from .payer import BatchPayer
from .pool import WalletPool
from .strategies import Collect, Distribution, DistributionReport, FanOut, Forward, Seed, SeedPyramid
from .utils import BankerError, console, format_address, format_bones, get_logger
from .wallet import KeyFileStore, wallet_file_name

logger = get_logger(__name__)


class Banker:
    """
    Wallet pool operations driven by a single configuration.

    Args:
        config: Loaded configuration
        gateway: Ledger gateway (HttpLedgerGateway on ``config.api_url`` if omitted)
        store: Key file store
        clock: Time source for the barriers
    """

    def __init__(self, config: Config, gateway: Optional[LedgerGateway] = None,
                 store: Optional[KeyFileStore] = None, clock: Optional[Clock] = None):
        self.config = config
        self.store = store or KeyFileStore()
        self.metrics = MetricsCollector()
        self.executor = ConcurrencyExecutor(WorkerPoolConfig(max_workers=config.threads))
        self._gateway = gateway
        self._clock = clock
        self._pool: Optional[WalletPool] = None

    def __str__(self) -> str:
        mode = "dry run" if self.config.dry_run else "live"
        return (
            f"Banker({self.working_dir}, {self.executor.max_workers} worker(s), "
            f"{self.config.api_url or 'no ledger'}, {mode})"
        )

    @property
    def working_dir(self) -> Path:
        return Path(self.config.working_dir)

    @property
    def gateway(self) -> LedgerGateway:
        if self._gateway is None:
            if not self.config.api_url:
                raise BankerError("No ledger API URL configured")
            self._gateway = HttpLedgerGateway(self.config.api_url, timeout=self.config.request_timeout)
        return self._gateway

    @property
    def pool(self) -> WalletPool:
        """Wallets in the working directory, discovered on first use."""
        if self._pool is None:
            self._pool = WalletPool.discover(self.working_dir, self.store)
            logger.info(f"Loaded {len(self._pool)} wallet(s) from {self.working_dir}")
        return self._pool

    def _build(self, strategy: Type[Distribution]) -> Distribution:
        payer = BatchPayer(
            self.pool,
            self.gateway,
            self.config.password,
            limit=self.config.multipay_limit,
            commit=not self.config.dry_run,
            metrics=self.metrics,
        )
        barrier = HeightBarrier(self.gateway, self.config.poll_interval_seconds, clock=self._clock)
        return strategy(self.pool, self.gateway, payer, barrier, self.executor)

    # ==================== Wallets ====================

    def create_wallets(self, count: int) -> List[Path]:
        """
        Create ``count`` numbered key files; existing files are skipped.

        Returns:
            Paths of the files actually created
        """
        if count < 1:
            raise ValueError("count must be at least 1")
        if not self.config.password:
            raise BankerError("A password is required to create wallets")

        self.working_dir.mkdir(parents=True, exist_ok=True)
        created = []
        for index in range(1, count + 1):
            path = self.working_dir / wallet_file_name(index)
            try:
                handle = self.store.create_wallet(self.config.password, self.config.key_tier, path)
            except FileExistsError:
                console.print(f"[yellow]{path.name} already exists[/yellow]")
                continue
            console.print(f"[green]✓[/green] {path.name} {handle.address()}")
            created.append(path)

        logger.info(f"Created {len(created)} wallet(s) in {self.working_dir}")
        return created

    def balances(self) -> List[Balance]:
        """Balance of every wallet, sorted by key file."""
        return self.executor.collect_balances(self.pool, self.gateway)

    def print_all_balances(self) -> int:
        return render_balances(self.balances(), console)

    def max_balance(self) -> Optional[Tuple[WalletIdentity, int]]:
        best = self.pool.max_balance(self.gateway)
        if best is None:
            console.print("[yellow]No wallets found[/yellow]")
        else:
            identity, balance = best
            console.print(f"{identity.name} {identity.address} {format_bones(balance)}")
        return best

    # ==================== Strategies ====================

    def fan_out(self, rounds: Optional[int] = None) -> DistributionReport:
        strategy: FanOut = self._build(FanOut)

        def on_round(n: int):
            console.print(f"[bold cyan]Fan-out round {n}[/bold cyan]")
            self.print_all_balances()

        return strategy.run(rounds=rounds, on_round=on_round)

    def seed(self, address: str) -> DistributionReport:
        strategy: Seed = self._build(Seed)
        console.print(f"[bold cyan]Seeding from {format_address(address)}[/bold cyan]")
        return strategy.run(address)

    def seed_independent(self, address: str) -> DistributionReport:
        strategy: SeedPyramid = self._build(SeedPyramid)
        console.print(f"[bold cyan]Pyramid seeding from {format_address(address)}[/bold cyan]")
        return strategy.run(address)

    def sustained(self, batch_size: Optional[int] = None, cycles: Optional[int] = None) -> DistributionReport:
        if batch_size is None:
            batch_size = self.config.sustained_batch_size
        strategy: Forward = self._build(Forward)
        return strategy.run(batch_size, cycles=cycles)

    def collect(self, address: str) -> DistributionReport:
        strategy: Collect = self._build(Collect)
        console.print(f"[bold cyan]Collecting into {format_address(address)}[/bold cyan]")
        return strategy.run(address)
