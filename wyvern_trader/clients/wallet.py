# Wallet Provider
"""
Signer resolution keyed by account address

Holds unlocked local accounts for the caller's session. Nothing here is
module-global: each Trader gets the provider it was constructed with.
"""
from typing import Dict, Iterable, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from wyvern_trader.config import Settings
from wyvern_trader.exceptions import SignerNotFoundError
from wyvern_trader.utils.logger import get_logger

logger = get_logger(__name__)


class WalletProvider:
    """Unlocked accounts, looked up by lowercase address"""

    def __init__(self, private_keys: Optional[Iterable[str]] = None):
        self._wallets: Dict[str, LocalAccount] = {}
        self.unlock_all(private_keys or [])

    @classmethod
    def from_settings(cls, settings: Settings) -> "WalletProvider":
        return cls(settings.private_keys)

    def list_accounts(self) -> List[str]:
        return list(self._wallets.keys())

    def unlock(self, private_key: str) -> str:
        """Unlock an account from its private key, returning its address"""
        account = Account.from_key(private_key)
        address = account.address.lower()
        if address in self._wallets:
            logger.warning(f"{address} is unlocked already!")
            return address
        self._wallets[address] = account
        logger.info(f"Unlocked account {address}")
        return address

    def unlock_all(self, private_keys: Iterable[str]) -> None:
        for private_key in private_keys:
            self.unlock(private_key)

    def has(self, address: str) -> bool:
        return address.lower() in self._wallets

    def resolve(self, address: str) -> LocalAccount:
        """Signer for an address"""
        if not self.has(address):
            raise SignerNotFoundError(address)
        return self._wallets[address.lower()]
