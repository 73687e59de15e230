"""
Concurrency Executor
====================
Runs independent per-wallet operations on a bounded thread pool.

- ``max_workers = 0`` uses every logical core
- A failing task is captured in its TaskResult; siblings keep running
- Results come back in submission order regardless of completion order
"""

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

from .ledger import LedgerGateway, snapshot
from .models import Balance
from .pool import WalletPool
from .utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class WorkerPoolConfig:
    """Size of the worker pool handed to each strategy."""
    max_workers: int = 0

    def __post_init__(self):
        if self.max_workers < 0:
            raise ValueError("max_workers must be >= 0")

    def resolved_workers(self) -> int:
        if self.max_workers == 0:
            return os.cpu_count() or 1
        return self.max_workers


@dataclass
class TaskResult(Generic[T]):
    """Outcome of one task: its value, or the exception it raised."""
    index: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyExecutor:
    """Bounded worker pool for independent closures."""

    def __init__(self, config: Optional[WorkerPoolConfig] = None):
        self.config = config or WorkerPoolConfig()

    @property
    def max_workers(self) -> int:
        return self.config.resolved_workers()

    def run_parallel(self, tasks: Sequence[Callable[[], T]]) -> List[TaskResult[T]]:
        """
        Run every task and block until all have finished.

        Returns:
            One TaskResult per task, in the order the tasks were given
        """
        if not tasks:
            return []

        results: List[Optional[TaskResult[T]]] = [None] * len(tasks)
        workers = min(self.max_workers, len(tasks))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="banker") as pool:
            futures = {pool.submit(task): i for i, task in enumerate(tasks)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = TaskResult(index=index, value=future.result())
                except Exception as e:
                    logger.error(f"Task {index} failed: {e}")
                    results[index] = TaskResult(index=index, error=e)

        return results

    def map(self, fn: Callable[[Any], T], items: Sequence[Any]) -> List[TaskResult[T]]:
        """run_parallel over ``fn(item)`` for each item."""
        return self.run_parallel([lambda item=item: fn(item) for item in items])

    def collect_balances(self, pool: WalletPool, gateway: LedgerGateway) -> List[Balance]:
        """Snapshot every wallet balance in parallel, sorted by key file."""
        results = self.map(lambda identity: snapshot(gateway, identity), pool.identities)
        balances = []
        for identity, result in zip(pool.identities, results):
            if result.ok:
                balances.append(result.value)
            else:
                balances.append(Balance(key_file=identity.name, address=identity.address, error=str(result.error)))
        return sorted(balances)
