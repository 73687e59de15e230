"""
Wallet Pool
===========
The set of wallets a run operates on, discovered once from a directory of
key files.

- A key file that cannot be loaded aborts pool construction
- A wallet whose address cannot be resolved is dropped with a warning
- Identities keep discovery order; strategies rely on it (watch wallet,
  ring order)
"""

from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .ledger import LedgerGateway, balance_of
from .models import AddressLookup, WalletIdentity
from .utils import TargetNotFoundError, get_logger
from .wallet import KeyFileStore, WalletHandle

logger = get_logger(__name__)


class WalletPool:
    """Ordered, immutable collection of wallet identities and their handles."""

    def __init__(self, wallets: Sequence[Tuple[WalletIdentity, WalletHandle]]):
        self._identities: List[WalletIdentity] = [identity for identity, _ in wallets]
        self._handles: Dict[WalletIdentity, WalletHandle] = {identity: handle for identity, handle in wallets}
        self._by_address: Dict[str, WalletIdentity] = {}
        for identity in self._identities:
            if identity.address in self._by_address:
                logger.warning(
                    f"Duplicate address {identity.address} in {identity.name}, "
                    f"already provided by {self._by_address[identity.address].name}"
                )
                continue
            self._by_address[identity.address] = identity

    @classmethod
    def discover(cls, directory, store: Optional[KeyFileStore] = None) -> "WalletPool":
        """
        Load every key file in a directory.

        Raises:
            WalletLoadError: any key file is unreadable or corrupt
        """
        store = store or KeyFileStore()
        wallets = []
        for path in store.enumerate_key_files(directory):
            handle = store.load_wallet(path)
            lookup: AddressLookup = handle.lookup_address()
            if not lookup.ok:
                logger.warning(f"Skipping {Path(path).name}: {lookup.error}")
                continue
            wallets.append((WalletIdentity(key_file=Path(path), address=lookup.address), handle))

        logger.debug(f"Discovered {len(wallets)} wallets in {directory}")
        return cls(wallets)

    def __len__(self) -> int:
        return len(self._identities)

    def __iter__(self) -> Iterator[WalletIdentity]:
        return iter(self._identities)

    def __getitem__(self, index: int) -> WalletIdentity:
        return self._identities[index]

    @property
    def identities(self) -> List[WalletIdentity]:
        return list(self._identities)

    @property
    def addresses(self) -> List[str]:
        return [identity.address for identity in self._identities]

    def resolve(self, address: str) -> Optional[WalletIdentity]:
        """Find the identity for an address, or None."""
        return self._by_address.get(address)

    def require(self, address: str) -> WalletIdentity:
        """Like resolve, but a missing address is a caller error."""
        identity = self.resolve(address)
        if identity is None:
            raise TargetNotFoundError(address)
        return identity

    def handle(self, identity: WalletIdentity) -> WalletHandle:
        return self._handles[identity]

    def others(self, address: str) -> List[WalletIdentity]:
        """Every identity except the one with the given address, in pool order."""
        return [identity for identity in self._identities if identity.address != address]

    def max_balance(self, gateway: LedgerGateway) -> Optional[Tuple[WalletIdentity, int]]:
        """
        Wallet with the highest current balance.

        Ties go to the wallet discovered first.

        Returns:
            Tuple of (WalletIdentity, balance) or None for an empty pool
        """
        best: Optional[Tuple[WalletIdentity, int]] = None
        for identity in self._identities:
            balance = balance_of(gateway, identity.address)
            if best is None or balance > best[1]:
                best = (identity, balance)
        return best
