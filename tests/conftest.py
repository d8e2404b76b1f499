"""
Shared fixtures: deterministic accounts, a fixed clock and an in-memory
contract gateway
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from eth_account import Account

from wyvern_trader.clients.wallet import WalletProvider
from wyvern_trader.config import Network, get_network_config
from wyvern_trader.models.orders import Asset, Order, SchemaName
from wyvern_trader.services.match_validator import MatchValidator
from wyvern_trader.services.order_builder import OrderBuilder
from wyvern_trader.services.settlement import SettlementEngine
from wyvern_trader.services.signer import OrderSigner

NOW = 1_700_000_000

MAKER_KEY = "0x" + "11" * 32
TAKER_KEY = "0x" + "22" * 32
MAKER = Account.from_key(MAKER_KEY).address.lower()
TAKER = Account.from_key(TAKER_KEY).address.lower()

NFT_ADDRESS = "0x4bf010f1b9beda5450a8dd702ed602a104ff65ee"
NFT_TOKEN_ID = "5465"
SEMI_FUNGIBLE_ADDRESS = "0x88b48f654c30e99bc2e4a1559b4dcf1ad93fa656"
PAYMENT_TOKEN = "0xc778417e063141139fce010982780140aa0cd5ab"
PROXY = "0x" + "ab" * 20


class FakeGateway:
    """In-memory stand-in for ContractGateway"""

    def __init__(self, network):
        self.network = network
        self.proxies: Dict[str, str] = {}
        self.proxy_visible_after = 0
        self.nonces: Dict[str, int] = defaultdict(int)
        self.approved_for_all: Set[Tuple[str, str, str]] = set()
        self.allowances: Dict[Tuple[str, str, str], int] = defaultdict(int)
        self.erc20_balances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.native_balances: Dict[str, int] = defaultdict(int)

        self.order_parameters_valid = True
        self.orders_valid = True
        self.orders_can_match_results: List[Any] = []
        self.calldata_can_match = True
        self.gas_estimate = 200_000
        self.estimate_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.receipt_status = 1

        self.calls: List[Tuple[str, tuple]] = []
        self._tx_count = 0

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))

    def _tx(self) -> str:
        self._tx_count += 1
        return "0x" + format(self._tx_count, "064x")

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    @property
    def exchange_address(self) -> str:
        return self.network.exchange

    @property
    def multicall_address(self) -> str:
        return self.network.require("multicall")

    @property
    def token_transfer_proxy_address(self) -> str:
        return self.network.require("token_transfer_proxy")

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        self._record("wait_for_receipt", tx_hash)
        return {"transactionHash": tx_hash, "status": self.receipt_status}

    async def get_proxy(self, account: str) -> Optional[str]:
        self._record("get_proxy", account)
        proxy = self.proxies.get(account.lower())
        if proxy and self.proxy_visible_after > 0:
            self.proxy_visible_after -= 1
            return None
        return proxy

    async def register_proxy(self, account: str) -> str:
        self._record("register_proxy", account)
        self.proxies[account.lower()] = PROXY
        return self._tx()

    async def get_nonce(self, account: str) -> int:
        self._record("get_nonce", account)
        return self.nonces[account.lower()]

    async def increment_nonce(self, account: str) -> str:
        self._record("increment_nonce", account)
        self.nonces[account.lower()] += 1
        return self._tx()

    async def validate_order_parameters(self, order) -> bool:
        self._record("validate_order_parameters", order)
        return self.order_parameters_valid

    async def validate_order(self, order) -> bool:
        self._record("validate_order", order)
        return self.orders_valid

    async def orders_can_match(self, buy, sell, account) -> bool:
        self._record("orders_can_match", buy, sell, account)
        if self.orders_can_match_results:
            result = self.orders_can_match_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return True

    async def order_calldata_can_match(self, buy, sell) -> bool:
        self._record("order_calldata_can_match", buy, sell)
        return self.calldata_can_match

    async def estimate_atomic_match(self, buy, sell, metadata, account, value=0) -> int:
        self._record("estimate_atomic_match", buy, sell, metadata, account, value)
        if self.estimate_error:
            raise self.estimate_error
        return self.gas_estimate

    async def atomic_match(self, buy, sell, metadata, account, value=0, gas=None) -> str:
        self._record("atomic_match", buy, sell, metadata, account, value, gas)
        if self.submit_error:
            raise self.submit_error
        return self._tx()

    def encode_atomic_match(self, buy, sell, metadata=None) -> bytes:
        return b"atomicMatch:" + buy.salt.to_bytes(32, "big")

    async def estimate_aggregate(self, calls, account, value=0) -> int:
        self._record("estimate_aggregate", calls, account, value)
        if self.estimate_error:
            raise self.estimate_error
        return self.gas_estimate

    async def aggregate(self, calls, account, value=0, gas=None) -> str:
        self._record("aggregate", calls, account, value, gas)
        if self.submit_error:
            raise self.submit_error
        return self._tx()

    async def native_balance(self, account: str) -> int:
        self._record("native_balance", account)
        return self.native_balances[account.lower()]

    async def erc20_balance(self, token: str, owner: str) -> int:
        self._record("erc20_balance", token, owner)
        return self.erc20_balances[(token.lower(), owner.lower())]

    async def erc20_allowance(self, token: str, owner: str, spender: str) -> int:
        self._record("erc20_allowance", token, owner, spender)
        return self.allowances[(token.lower(), owner.lower(), spender.lower())]

    async def erc20_approve(self, token: str, account: str, spender: str, amount: int) -> str:
        self._record("erc20_approve", token, account, spender, amount)
        self.allowances[(token.lower(), account.lower(), spender.lower())] = amount
        return self._tx()

    async def is_approved_for_all(self, token, schema_name, owner, operator) -> bool:
        self._record("is_approved_for_all", token, schema_name, owner, operator)
        return (token.lower(), owner.lower(), operator.lower()) in self.approved_for_all

    async def set_approval_for_all(self, token, schema_name, account, operator) -> str:
        self._record("set_approval_for_all", token, schema_name, account, operator)
        self.approved_for_all.add((token.lower(), account.lower(), operator.lower()))
        return self._tx()


def fixed_clock() -> float:
    return float(NOW)


def as_signed(order, **updates) -> Order:
    """Order with placeholder signature fields, as if fetched from the orderbook"""
    fields = order.model_dump(exclude={"metadata"})
    fields.update(
        metadata=order.metadata,
        hash="0x" + format(order.salt, "064x"),
        v=27,
        r="0x" + "01" * 32,
        s="0x" + "02" * 32,
    )
    fields.update(updates)
    return Order(**fields)


@pytest.fixture
def network():
    return get_network_config(Network.RINKEBY)


@pytest.fixture
def gateway(network):
    return FakeGateway(network)


@pytest.fixture
def wallet():
    return WalletProvider([MAKER_KEY, TAKER_KEY])


@pytest.fixture
def builder(network):
    return OrderBuilder(network, clock=fixed_clock)


@pytest.fixture
def signer(gateway, wallet, network):
    return OrderSigner(gateway, wallet, network.chain_id)


@pytest.fixture
def engine(gateway, builder):
    return SettlementEngine(
        gateway,
        builder,
        MatchValidator(gateway, clock=fixed_clock),
        match_validation_retries=3,
        match_validation_delay=0,
        proxy_poll_retries=3,
        proxy_poll_delay=0,
        clock=fixed_clock,
    )


@pytest.fixture
def nft():
    return Asset(token_id=NFT_TOKEN_ID, token_address=NFT_ADDRESS, schema_name=SchemaName.ERC721)


@pytest.fixture
def semi_fungible():
    return Asset(token_id="7", token_address=SEMI_FUNGIBLE_ADDRESS, schema_name=SchemaName.ERC1155)
