# Price Calculation
"""
Sale price parameters, Dutch auction decay and taker payment amounts
"""
import math
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from fractions import Fraction
from typing import Any, Optional

from wyvern_trader.constants import (
    DEFAULT_GAS_INCREASE_FACTOR,
    DEFAULT_TOKEN_DECIMALS,
    DUTCH_AUCTION_BACKTRACK_SECONDS,
    INVERSE_BASIS_POINT,
    NULL_ADDRESS,
)
from wyvern_trader.exceptions import PriceError
from wyvern_trader.models.orders import SaleKind, Side, UnhashedOrder


@dataclass(frozen=True)
class PriceParameters:
    """Base price, decay amount and payment token for a new order"""
    base_price: int
    extra: int
    payment_token: str


def _to_decimal(amount: Any) -> Optional[Decimal]:
    if amount is None or isinstance(amount, bool):
        return None
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def to_base_unit_amount(amount: Any, decimals: int = DEFAULT_TOKEN_DECIMALS) -> int:
    """Scale a token amount to its smallest unit, rejecting sub-unit precision"""
    value = _to_decimal(amount)
    if value is None:
        raise PriceError(f"Invalid unit amount: {amount}")
    with localcontext() as ctx:
        ctx.prec = 100
        base_unit_amount = value.scaleb(decimals)
    if base_unit_amount != base_unit_amount.to_integral_value():
        raise PriceError(f"Invalid unit amount: {amount} - Too many decimal places")
    return int(base_unit_amount)


def get_price_parameters(
    side: Side,
    payment_token: Optional[str],
    expiration_time: int,
    start_amount: Any,
    end_amount: Any = None,
    decimals: int = DEFAULT_TOKEN_DECIMALS,
) -> PriceParameters:
    """
    Validate and scale the price of a new order.

    extra is the start/end difference in the same base unit as base_price.
    """
    start = _to_decimal(start_amount)
    if start is None or start < 0:
        raise PriceError("Starting price must be a number >= 0")

    if not payment_token:
        raise PriceError(f"No ERC-20 token found for '{payment_token}'")
    payment_token = payment_token.lower()
    is_native = payment_token == NULL_ADDRESS

    if is_native and Side(side) == Side.BUY:
        raise PriceError("Offers must use wrapped ETH or an ERC-20 token.")

    if end_amount is not None:
        end = _to_decimal(end_amount)
        if end is None:
            raise PriceError("Ending price must be a number")
        price_diff = start - end
    else:
        price_diff = Decimal(0)

    if price_diff < 0:
        raise PriceError("End price must be less than or equal to the start price.")
    if price_diff > 0 and expiration_time == 0:
        raise PriceError("Expiration time must be set if order will change in price.")

    return PriceParameters(
        base_price=to_base_unit_amount(start, decimals),
        extra=to_base_unit_amount(price_diff, decimals),
        payment_token=payment_token,
    )


def get_current_price(order: UnhashedOrder, now: Optional[int] = None) -> Fraction:
    """
    Exact price of an order at a point in time.

    Dutch auctions are evaluated 30 seconds before now and the elapsed time
    is clamped to the listing window.
    """
    if order.sale_kind == SaleKind.FIXED_PRICE:
        return Fraction(order.base_price)

    now = int(time.time()) if now is None else now
    evaluated_at = now - DUTCH_AUCTION_BACKTRACK_SECONDS
    duration = order.expiration_time - order.listing_time
    if duration <= 0:
        return Fraction(order.base_price)
    elapsed = min(max(evaluated_at - order.listing_time, 0), duration)
    diff = Fraction(order.extra * elapsed, duration)

    if order.side == Side.SELL:
        # Sell-side: starts at base_price, ends at base_price - extra
        return Fraction(order.base_price) - diff
    # Buy-side: starts at base_price, ends at base_price + extra
    return Fraction(order.base_price) + diff


def required_payment_for_sell_order(sell: UnhashedOrder, now: Optional[int] = None) -> int:
    """Amount a taker must pay to fill sell right now, taker relayer fee included"""
    exact_price = get_current_price(sell, now)
    fee = exact_price * Fraction(sell.taker_relayer_fee, INVERSE_BASIS_POINT)
    return math.ceil(exact_price + fee)


def correct_gas_amount(estimation: int, factor: float = DEFAULT_GAS_INCREASE_FACTOR) -> int:
    """Gas limit slightly above the node's estimate"""
    return math.ceil(Decimal(int(estimation)) * Decimal(str(factor)))
