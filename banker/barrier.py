"""
Height Barrier
==============
Blocking polls that hold a strategy until the ledger has moved on:
- ``wait_for_height_increase``: until a strictly greater height is seen
- ``wait_for_balance_change``: until an account balance differs from a
  prior snapshot

Each poll is a loop over the pure step function ``tick``; the loop sleeps
through an injectable clock so tests can run it without real delays.
There is no overall timeout.
"""

import time
from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol, Tuple

from .ledger import LedgerGateway, balance_of
from .utils import LedgerUnavailable, format_duration, get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 30.0

# Conditions a poll waits for
HEIGHT_INCREASE = "height_increase"
BALANCE_CHANGE = "balance_change"


class Clock(Protocol):
    def sleep(self, seconds: float) -> None: ...

    def monotonic(self) -> float: ...


class SystemClock:
    """Real time."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def monotonic(self) -> float:
        return time.monotonic()


@dataclass(frozen=True)
class PollState:
    """Progress of one blocking poll."""
    condition: str
    baseline: int
    attempts: int = 0
    last_observed: Optional[int] = None


def tick(state: PollState, observed: Optional[int]) -> Tuple[PollState, Optional[int]]:
    """
    Advance a poll by one observation.

    ``observed`` is None when the ledger could not be queried.

    Returns:
        (next state, value to release with or None to keep waiting)
    """
    state = replace(state, attempts=state.attempts + 1, last_observed=observed)
    if observed is None:
        return state, None

    if state.condition == HEIGHT_INCREASE:
        done = observed > state.baseline
    elif state.condition == BALANCE_CHANGE:
        done = observed != state.baseline
    else:
        raise ValueError(f"Unknown poll condition: {state.condition}")

    return state, observed if done else None


class HeightBarrier:
    """
    Gates strategy progress on ledger height or balance changes.

    Args:
        gateway: Ledger gateway to poll
        poll_interval: Seconds to sleep between attempts
        clock: Time source, SystemClock by default
    """

    def __init__(self, gateway: LedgerGateway, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 clock: Optional[Clock] = None):
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.clock = clock or SystemClock()

    def _poll(self, state: PollState, read: Callable[[], Optional[int]], label: str) -> int:
        started = self.clock.monotonic()
        while True:
            state, released = tick(state, read())
            if released is not None:
                logger.debug(
                    f"{label}: {state.baseline} -> {released} after {state.attempts} attempt(s), "
                    f"{format_duration(self.clock.monotonic() - started)}"
                )
                return released
            logger.info(f"Sleeping {self.poll_interval:g}s waiting for {label}...")
            self.clock.sleep(self.poll_interval)

    def current_height(self) -> Optional[int]:
        try:
            return self.gateway.get_height()
        except LedgerUnavailable as e:
            logger.warning(f"Height unavailable: {e}")
            return None

    def wait_for_height_increase(self, last_height: int) -> int:
        """Block until the ledger height is strictly greater than ``last_height``."""
        state = PollState(condition=HEIGHT_INCREASE, baseline=last_height)
        return self._poll(state, self.current_height, "height increase")

    def wait_for_balance_change(self, address: str, prior_balance: int) -> int:
        """Block until the balance of ``address`` differs from ``prior_balance``."""
        state = PollState(condition=BALANCE_CHANGE, baseline=prior_balance)
        return self._poll(
            state,
            lambda: balance_of(self.gateway, address),
            f"balance change on {address}",
        )
