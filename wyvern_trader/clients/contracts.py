# Contract Gateway
"""
Web3 bindings for the exchange, proxy registry, multicall and token
contracts

Every method is a thin async wrapper around one contract call so the
settlement engine can be exercised against an in-memory stand-in.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_utils import to_checksum_address
from web3 import AsyncWeb3

from wyvern_trader.abis import (
    ERC20_ABI,
    ERC721_ABI,
    ERC1155_ABI,
    EXCHANGE_ABI,
    MULTICALL_ABI,
    PROXY_REGISTRY_ABI,
)
from wyvern_trader.clients.wallet import WalletProvider
from wyvern_trader.config import NetworkConfig
from wyvern_trader.constants import NULL_ADDRESS, NULL_BLOCK_HASH
from wyvern_trader.models.orders import Order, SchemaName, UnhashedOrder
from wyvern_trader.schemas import get_function
from wyvern_trader.utils.encoding import encode_call
from wyvern_trader.utils.logger import get_logger

logger = get_logger(__name__)

MulticallEntry = Tuple[str, int, bytes]


def _to_bytes(hex_str: Optional[str]) -> bytes:
    if not hex_str:
        return b""
    return bytes.fromhex(hex_str[2:] if hex_str.startswith("0x") else hex_str)


def _address(address: str) -> str:
    return to_checksum_address(address)


def order_args(order: UnhashedOrder) -> List[Any]:
    """Arguments shared by validateOrderParameters_ and validateOrder_"""
    return [
        [
            _address(order.exchange),
            _address(order.maker),
            _address(order.taker),
            _address(order.fee_recipient),
            _address(order.target),
            _address(order.static_target),
            _address(order.payment_token),
        ],
        [
            order.maker_relayer_fee,
            order.taker_relayer_fee,
            order.maker_protocol_fee,
            order.taker_protocol_fee,
            order.base_price,
            order.extra,
            order.listing_time,
            order.expiration_time,
            order.salt,
        ],
        int(order.fee_method),
        int(order.side),
        int(order.sale_kind),
        int(order.how_to_call),
        _to_bytes(order.calldata),
        _to_bytes(order.replacement_pattern),
        _to_bytes(order.static_extradata),
    ]


def match_args(buy: UnhashedOrder, sell: UnhashedOrder) -> List[Any]:
    """First nine arguments of ordersCanMatch_ / atomicMatch_"""
    buy_args = order_args(buy)
    sell_args = order_args(sell)
    return [
        buy_args[0] + sell_args[0],
        buy_args[1] + sell_args[1],
        buy_args[2:6] + sell_args[2:6],
        buy_args[6],
        sell_args[6],
        buy_args[7],
        sell_args[7],
        buy_args[8],
        sell_args[8],
    ]


def atomic_match_args(buy: Order, sell: Order, metadata: str = NULL_BLOCK_HASH) -> List[Any]:
    """All eleven atomicMatch_ arguments, unsigned sides padded with zeros"""
    return match_args(buy, sell) + [
        [buy.v or 0, sell.v or 0],
        [
            _to_bytes(buy.r or NULL_BLOCK_HASH),
            _to_bytes(buy.s or NULL_BLOCK_HASH),
            _to_bytes(sell.r or NULL_BLOCK_HASH),
            _to_bytes(sell.s or NULL_BLOCK_HASH),
            _to_bytes(metadata or NULL_BLOCK_HASH),
        ],
    ]


class ContractGateway:
    """Async client for the on-chain contracts of one network"""

    def __init__(
        self,
        network: NetworkConfig,
        wallet: WalletProvider,
        w3: Optional[AsyncWeb3] = None,
        rpc_url: Optional[str] = None,
    ):
        if w3 is None:
            if not rpc_url:
                raise ValueError("Either w3 or rpc_url is required")
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.w3 = w3
        self.network = network
        self.wallet = wallet

        self.exchange = self.w3.eth.contract(address=_address(network.exchange), abi=EXCHANGE_ABI)
        self.proxy_registry = self.w3.eth.contract(
            address=_address(network.proxy_registry), abi=PROXY_REGISTRY_ABI
        )

    @property
    def exchange_address(self) -> str:
        return self.network.exchange

    @property
    def multicall_address(self) -> str:
        return self.network.require("multicall")

    @property
    def token_transfer_proxy_address(self) -> str:
        return self.network.require("token_transfer_proxy")

    def _token(self, address: str, schema_name: SchemaName):
        abi = {
            SchemaName.ERC20: ERC20_ABI,
            SchemaName.ERC721: ERC721_ABI,
            SchemaName.ERC1155: ERC1155_ABI,
        }[SchemaName(schema_name)]
        return self.w3.eth.contract(address=_address(address), abi=abi)

    # Transactions

    async def send_transaction(self, fn_call, account: str, value: int = 0, gas: Optional[int] = None) -> str:
        """Build, sign with the account's signer and broadcast; returns the tx hash"""
        signer = self.wallet.resolve(account)
        sender = _address(account)
        params: Dict[str, Any] = {
            "chainId": self.network.chain_id,
            "from": sender,
            "nonce": await self.w3.eth.get_transaction_count(sender),
            "value": value,
        }
        if gas is not None:
            params["gas"] = gas
        tx = await fn_call.build_transaction(params)
        signed_tx = signer.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return AsyncWeb3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash)
        return dict(receipt)

    # Proxy registry

    async def get_proxy(self, account: str) -> Optional[str]:
        proxy = await self.proxy_registry.functions.proxies(_address(account)).call()
        if not proxy or proxy.lower() == NULL_ADDRESS:
            return None
        return proxy.lower()

    async def register_proxy(self, account: str) -> str:
        return await self.send_transaction(self.proxy_registry.functions.registerProxy(), account)

    # Exchange

    async def get_nonce(self, account: str) -> int:
        return await self.exchange.functions.nonces(_address(account)).call()

    async def increment_nonce(self, account: str) -> str:
        return await self.send_transaction(self.exchange.functions.incrementNonce(), account)

    async def validate_order_parameters(self, order: UnhashedOrder) -> bool:
        return await self.exchange.functions.validateOrderParameters_(*order_args(order)).call()

    async def validate_order(self, order: Order) -> bool:
        return await self.exchange.functions.validateOrder_(
            *order_args(order),
            order.v or 0,
            _to_bytes(order.r or NULL_BLOCK_HASH),
            _to_bytes(order.s or NULL_BLOCK_HASH),
        ).call()

    async def orders_can_match(self, buy: Order, sell: Order, account: str) -> bool:
        return await self.exchange.functions.ordersCanMatch_(*match_args(buy, sell)).call(
            {"from": _address(account)}
        )

    async def order_calldata_can_match(self, buy: Order, sell: Order) -> bool:
        return await self.exchange.functions.orderCalldataCanMatch(
            _to_bytes(buy.calldata),
            _to_bytes(buy.replacement_pattern),
            _to_bytes(sell.calldata),
            _to_bytes(sell.replacement_pattern),
        ).call()

    async def estimate_atomic_match(self, buy: Order, sell: Order, metadata: str, account: str, value: int = 0) -> int:
        return await self.exchange.functions.atomicMatch_(
            *atomic_match_args(buy, sell, metadata)
        ).estimate_gas({"from": _address(account), "value": value})

    async def atomic_match(
        self, buy: Order, sell: Order, metadata: str, account: str, value: int = 0, gas: Optional[int] = None
    ) -> str:
        fn_call = self.exchange.functions.atomicMatch_(*atomic_match_args(buy, sell, metadata))
        return await self.send_transaction(fn_call, account, value=value, gas=gas)

    def encode_atomic_match(self, buy: Order, sell: Order, metadata: str = NULL_BLOCK_HASH) -> bytes:
        """atomicMatch_ calldata for use inside a multicall batch"""
        return encode_call(get_function(EXCHANGE_ABI, "atomicMatch_"), atomic_match_args(buy, sell, metadata))

    # Multicall

    def _aggregate_call(self, calls: Sequence[MulticallEntry]):
        multicall = self.w3.eth.contract(address=_address(self.multicall_address), abi=MULTICALL_ABI)
        return multicall.functions.aggregate([(_address(t), v, data) for t, v, data in calls])

    async def estimate_aggregate(self, calls: Sequence[MulticallEntry], account: str, value: int = 0) -> int:
        return await self._aggregate_call(calls).estimate_gas({"from": _address(account), "value": value})

    async def aggregate(
        self, calls: Sequence[MulticallEntry], account: str, value: int = 0, gas: Optional[int] = None
    ) -> str:
        return await self.send_transaction(self._aggregate_call(calls), account, value=value, gas=gas)

    # Tokens

    async def native_balance(self, account: str) -> int:
        return await self.w3.eth.get_balance(_address(account))

    async def erc20_balance(self, token: str, owner: str) -> int:
        return await self._token(token, SchemaName.ERC20).functions.balanceOf(_address(owner)).call()

    async def erc20_allowance(self, token: str, owner: str, spender: str) -> int:
        contract = self._token(token, SchemaName.ERC20)
        return await contract.functions.allowance(_address(owner), _address(spender)).call()

    async def erc20_approve(self, token: str, account: str, spender: str, amount: int) -> str:
        contract = self._token(token, SchemaName.ERC20)
        return await self.send_transaction(contract.functions.approve(_address(spender), amount), account)

    async def is_approved_for_all(self, token: str, schema_name: SchemaName, owner: str, operator: str) -> bool:
        contract = self._token(token, schema_name)
        return await contract.functions.isApprovedForAll(_address(owner), _address(operator)).call()

    async def set_approval_for_all(self, token: str, schema_name: SchemaName, account: str, operator: str) -> str:
        contract = self._token(token, schema_name)
        return await self.send_transaction(
            contract.functions.setApprovalForAll(_address(operator), True), account
        )
