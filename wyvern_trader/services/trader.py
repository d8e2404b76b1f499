# Trader
"""
High-level trading workflows: create, post and fulfill orders
"""
import time
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from wyvern_trader.clients.contracts import ContractGateway
from wyvern_trader.clients.orderbook import OrderbookClient
from wyvern_trader.clients.wallet import WalletProvider
from wyvern_trader.config import NetworkConfig, Settings, get_settings
from wyvern_trader.constants import NULL_ADDRESS
from wyvern_trader.models.orders import Asset, Bundle, Order, UnhashedOrder, order_to_json
from wyvern_trader.services.match_validator import MatchValidator
from wyvern_trader.services.order_builder import OrderBuilder
from wyvern_trader.services.settlement import SettlementEngine
from wyvern_trader.services.signer import OrderSigner
from wyvern_trader.utils.logger import get_logger

logger = get_logger(__name__)


class Trader:
    """Entry point tying the builder, signer, settlement and orderbook together"""

    def __init__(
        self,
        network: NetworkConfig,
        gateway,
        wallet: WalletProvider,
        orderbook: Optional[OrderbookClient] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = settings or Settings()
        self.network = network
        self.gateway = gateway
        self.wallet = wallet
        self.orderbook = orderbook or OrderbookClient.from_settings(settings)

        self.builder = OrderBuilder(network, clock)
        self.signer = OrderSigner(gateway, wallet, network.chain_id)
        self.settlement = SettlementEngine(
            gateway,
            self.builder,
            MatchValidator(gateway, clock),
            gas_increase_factor=settings.GAS_INCREASE_FACTOR,
            match_validation_retries=settings.MATCH_VALIDATION_RETRIES,
            match_validation_delay=settings.MATCH_VALIDATION_DELAY,
            proxy_poll_retries=settings.PROXY_POLL_RETRIES,
            proxy_poll_delay=settings.PROXY_POLL_DELAY,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Trader":
        network = settings.network_config
        wallet = WalletProvider.from_settings(settings)
        gateway = ContractGateway(network, wallet, rpc_url=settings.RPC_URL)
        return cls(network, gateway, wallet, settings=settings)

    async def _sign_and_maybe_post(self, order: UnhashedOrder, post: bool) -> Order:
        signed = await self.signer.sign_order(order)
        if post:
            return await self.post_order(signed)
        return signed

    async def create_sell_order(
        self,
        asset: Asset,
        account: str,
        start_amount: Any,
        end_amount: Any = None,
        quantity: int = 1,
        listing_time: Optional[int] = None,
        expiration_time: Optional[int] = None,
        payment_token_address: str = NULL_ADDRESS,
        extra_bounty_basis_points: int = 0,
        buyer_address: str = NULL_ADDRESS,
        post: bool = False,
    ) -> Order:
        """Build, approve and sign a listing"""
        order = self.builder.make_sell_order(
            asset=asset,
            account_address=account,
            start_amount=start_amount,
            end_amount=end_amount,
            quantity=quantity,
            listing_time=listing_time,
            expiration_time=expiration_time,
            payment_token_address=payment_token_address,
            extra_bounty_basis_points=extra_bounty_basis_points,
            buyer_address=buyer_address,
        )
        await self.settlement.sell_order_validation_and_approvals(order, account)
        return await self._sign_and_maybe_post(order, post)

    async def create_bundle_sell_order(
        self,
        bundle: Bundle,
        account: str,
        start_amount: Any,
        end_amount: Any = None,
        listing_time: Optional[int] = None,
        expiration_time: Optional[int] = None,
        payment_token_address: str = NULL_ADDRESS,
        extra_bounty_basis_points: int = 0,
        buyer_address: str = NULL_ADDRESS,
        post: bool = False,
    ) -> Order:
        order = self.builder.make_bundle_sell_order(
            bundle=bundle,
            account_address=account,
            start_amount=start_amount,
            end_amount=end_amount,
            listing_time=listing_time,
            expiration_time=expiration_time,
            payment_token_address=payment_token_address,
            extra_bounty_basis_points=extra_bounty_basis_points,
            buyer_address=buyer_address,
        )
        await self.settlement.sell_order_validation_and_approvals(order, account)
        return await self._sign_and_maybe_post(order, post)

    async def create_buy_order(
        self,
        asset: Asset,
        account: str,
        start_amount: Any,
        quantity: int = 1,
        listing_time: Optional[int] = None,
        expiration_time: Optional[int] = None,
        payment_token_address: Optional[str] = None,
        post: bool = False,
    ) -> Order:
        """Build, approve and sign an offer"""
        order = self.builder.make_buy_order(
            asset=asset,
            account_address=account,
            start_amount=start_amount,
            quantity=quantity,
            listing_time=listing_time,
            expiration_time=expiration_time,
            payment_token_address=payment_token_address,
        )
        await self.settlement.buy_order_validation_and_approvals(order, account)
        return await self._sign_and_maybe_post(order, post)

    async def fulfill_order(
        self,
        order: Order,
        account: str,
        recipient: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> str:
        logger.info(f"Fulfilling order {order.hash} for {account}")
        return await self.settlement.fulfill_order(order, account, recipient, referrer)

    async def fulfill_orders(self, orders: Sequence[Order], account: str, recipient: Optional[str] = None) -> str:
        logger.info(f"Fulfilling {len(orders)} orders in one batch for {account}")
        return await self.settlement.fulfill_orders(orders, account, recipient)

    async def cancel_all_orders(self, account: str) -> str:
        """Invalidate every order the account signed under its current nonce"""
        tx_hash = await self.gateway.increment_nonce(account)
        logger.info(f"Nonce incremented for {account}: {tx_hash}")
        return tx_hash

    async def get_nonce(self, account: str) -> int:
        return await self.gateway.get_nonce(account)

    # Orderbook

    async def post_order(self, order: Order) -> Order:
        return await self.orderbook.post_order(order_to_json(order))

    async def get_orders(self, query: Optional[Dict[str, Any]] = None, page: int = 1) -> Tuple[List[Order], int]:
        return await self.orderbook.get_orders(query, page)

    async def get_order(self, query: Optional[Dict[str, Any]] = None) -> Order:
        return await self.orderbook.get_order(query)


@lru_cache()
def get_trader() -> Trader:
    """Get cached trader configured from the environment"""
    return Trader.from_settings(get_settings())
