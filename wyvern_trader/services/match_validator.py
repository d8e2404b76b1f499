# Match Validator
"""
Pre-flight checks that two orders will pass the exchange's match predicate

The structural rules of ordersCanMatch are replayed locally so a failure
can be reported by name. Calldata compatibility is left to the contract's
orderCalldataCanMatch, which applies the replacement patterns on-chain.
"""
import time
from typing import Callable, Optional

from wyvern_trader.constants import NULL_ADDRESS
from wyvern_trader.exceptions import (
    CalldataMismatchError,
    ClockSkewError,
    ExpiredOrderError,
    FeeMethodMismatchError,
    FeeRecipientError,
    MatchError,
    PaymentTokenMismatchError,
    SideMismatchError,
    TakerMismatchError,
    TargetMismatchError,
)
from wyvern_trader.models.orders import Order, Side, UnhashedOrder
from wyvern_trader.utils.logger import get_logger

logger = get_logger(__name__)


def can_settle_order(listing_time: int, expiration_time: int, now: Optional[int] = None) -> bool:
    """Whether an order's window is live at now"""
    now = int(time.time()) if now is None else now
    return listing_time < now and (expiration_time == 0 or now < expiration_time)


def check_orders_can_match(buy: UnhashedOrder, sell: UnhashedOrder, now: Optional[int] = None) -> None:
    """Raise the first structural rule the pair violates"""
    if not (buy.side == Side.BUY and sell.side == Side.SELL):
        raise SideMismatchError()

    if buy.fee_method != sell.fee_method:
        raise FeeMethodMismatchError()

    if buy.payment_token != sell.payment_token:
        raise PaymentTokenMismatchError()

    if sell.taker != NULL_ADDRESS and sell.taker != buy.maker:
        raise TakerMismatchError("Sell taker must be null or the buy maker")
    if buy.taker != NULL_ADDRESS and buy.taker != sell.maker:
        raise TakerMismatchError("Buy taker must be null or the sell maker")

    buy_has_recipient = buy.fee_recipient != NULL_ADDRESS
    sell_has_recipient = sell.fee_recipient != NULL_ADDRESS
    if buy_has_recipient == sell_has_recipient:
        raise FeeRecipientError()

    if buy.target != sell.target:
        raise TargetMismatchError("Must match target")
    if buy.how_to_call != sell.how_to_call:
        raise TargetMismatchError("Must match howToCall")

    if not can_settle_order(buy.listing_time, buy.expiration_time, now):
        raise ExpiredOrderError("buy")
    if not can_settle_order(sell.listing_time, sell.expiration_time, now):
        raise ExpiredOrderError("sell")


class MatchValidator:
    """Runs the local and on-chain match checks for a buy/sell pair"""

    def __init__(self, gateway, clock: Callable[[], float] = time.time):
        self.gateway = gateway
        self.clock = clock

    async def require_orders_can_match(self, buy: Order, sell: Order, account: str) -> None:
        can_match = await self.gateway.orders_can_match(buy, sell, account)
        if can_match:
            return
        logger.warning(f"ordersCanMatch_ rejected buy {buy.hash} / sell {sell.hash}")
        check_orders_can_match(buy, sell, int(self.clock()))
        # Local rules all pass: the node clock disagrees with ours
        raise ClockSkewError()

    async def require_order_calldata_can_match(self, buy: Order, sell: Order) -> None:
        if not await self.gateway.order_calldata_can_match(buy, sell):
            raise CalldataMismatchError()

    async def require_valid_order(self, order: Order) -> None:
        if not await self.gateway.validate_order(order):
            side = "buy" if order.side == Side.BUY else "sell"
            raise MatchError(f"Invalid {side} order. It may have recently been removed or cancelled.")

    async def validate_match(
        self,
        buy: Order,
        sell: Order,
        account: str,
        should_validate_buy: bool = False,
        should_validate_sell: bool = False,
    ) -> bool:
        """Full pre-flight for an atomic match; the counterparty's own order is checked on-chain first"""
        if should_validate_buy:
            await self.require_valid_order(buy)
        if should_validate_sell:
            await self.require_valid_order(sell)
        await self.require_orders_can_match(buy, sell, account)
        await self.require_order_calldata_can_match(buy, sell)
        return True
