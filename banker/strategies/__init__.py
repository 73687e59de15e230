"""
Distribution strategies.

Each strategy composes the wallet pool, the batch payer, the height
barrier and the worker pool into one way of moving funds:

- FanOut: every wallet pays every other wallet, round after round
- Seed: one wallet funds the rest in a single pass
- SeedPyramid: funded wallets fund the rest in widening rounds
- Forward: a ring of one-bone payments, one batch per block
- Collect: every wallet sweeps its balance into one target
"""

from .base import Distribution, DistributionReport
from .collect import Collect
from .fanout import FanOut
from .forward import Forward
from .pyramid import SeedPyramid
from .seed import Seed

__all__ = [
    "Distribution",
    "DistributionReport",
    "Collect",
    "FanOut",
    "Forward",
    "Seed",
    "SeedPyramid",
]
