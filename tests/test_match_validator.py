"""
Match validation tests: local rule replay and on-chain checks
"""
import pytest

from conftest import MAKER, NOW, PAYMENT_TOKEN, TAKER, as_signed, fixed_clock
from wyvern_trader.constants import NULL_ADDRESS, PROTOCOL_FEE_RECIPIENT
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
from wyvern_trader.models.orders import FeeMethod, HowToCall
from wyvern_trader.services.match_validator import (
    MatchValidator,
    can_settle_order,
    check_orders_can_match,
)
from wyvern_trader.services.order_builder import assign_orders_to_sides

DAY = 24 * 60 * 60


@pytest.fixture
def pair(builder, nft):
    """(buy, sell) for a taker filling a fixed price listing"""
    sell = as_signed(builder.make_sell_order(nft, MAKER, 0.1, expiration_time=NOW + DAY))
    matching = builder.make_matching_order(sell, TAKER, TAKER)
    return assign_orders_to_sides(sell, matching)


class TestCanSettleOrder:
    def test_window(self):
        assert can_settle_order(100, 200, now=150)
        assert not can_settle_order(100, 200, now=100)
        assert not can_settle_order(100, 200, now=200)

    def test_zero_expiration_never_ends(self):
        assert can_settle_order(100, 0, now=10**12)


class TestLocalRules:
    def test_valid_pair(self, pair):
        buy, sell = pair
        check_orders_can_match(buy, sell, NOW)

    def test_sides(self, pair):
        buy, sell = pair
        with pytest.raises(SideMismatchError):
            check_orders_can_match(sell, buy, NOW)

    def test_fee_method(self, pair):
        buy, sell = pair
        buy = buy.model_copy(update={"fee_method": FeeMethod.PROTOCOL_FEE})
        with pytest.raises(FeeMethodMismatchError):
            check_orders_can_match(buy, sell, NOW)

    def test_payment_token(self, pair):
        buy, sell = pair
        buy = buy.model_copy(update={"payment_token": PAYMENT_TOKEN})
        with pytest.raises(PaymentTokenMismatchError):
            check_orders_can_match(buy, sell, NOW)

    def test_private_listing_for_someone_else(self, pair):
        buy, sell = pair
        sell = sell.model_copy(update={"taker": "0x" + "cd" * 20})
        with pytest.raises(TakerMismatchError, match="Sell taker"):
            check_orders_can_match(buy, sell, NOW)

    def test_buy_taker_must_be_seller(self, pair):
        buy, sell = pair
        buy = buy.model_copy(update={"taker": "0x" + "cd" * 20})
        with pytest.raises(TakerMismatchError, match="Buy taker"):
            check_orders_can_match(buy, sell, NOW)

    @pytest.mark.parametrize("recipient", [PROTOCOL_FEE_RECIPIENT, None])
    def test_exactly_one_fee_recipient(self, pair, recipient):
        buy, sell = pair
        if recipient:
            buy = buy.model_copy(update={"fee_recipient": recipient})
        else:
            sell = sell.model_copy(update={"fee_recipient": NULL_ADDRESS})
        with pytest.raises(FeeRecipientError):
            check_orders_can_match(buy, sell, NOW)

    def test_target(self, pair):
        buy, sell = pair
        buy = buy.model_copy(update={"target": MAKER})
        with pytest.raises(TargetMismatchError, match="target"):
            check_orders_can_match(buy, sell, NOW)

    def test_how_to_call(self, pair):
        buy, sell = pair
        buy = buy.model_copy(update={"how_to_call": HowToCall.CALL})
        with pytest.raises(TargetMismatchError, match="howToCall"):
            check_orders_can_match(buy, sell, NOW)

    def test_not_yet_live(self, pair):
        buy, sell = pair
        with pytest.raises(ExpiredOrderError) as exc_info:
            check_orders_can_match(buy, sell, NOW - 200)
        assert exc_info.value.side == "buy"

    def test_expired_listing(self, pair):
        buy, sell = pair
        with pytest.raises(ExpiredOrderError) as exc_info:
            check_orders_can_match(buy, sell, NOW + DAY + 1)
        assert exc_info.value.side == "sell"


class TestMatchValidator:
    @pytest.mark.asyncio
    async def test_passes(self, gateway, pair):
        buy, sell = pair
        validator = MatchValidator(gateway, clock=fixed_clock)
        assert await validator.validate_match(buy, sell, TAKER, should_validate_sell=True)
        assert gateway.count("validate_order") == 1
        assert gateway.count("order_calldata_can_match") == 1

    @pytest.mark.asyncio
    async def test_names_the_failing_rule(self, gateway, pair):
        buy, sell = pair
        buy = buy.model_copy(update={"payment_token": PAYMENT_TOKEN})
        gateway.orders_can_match_results = [False]
        validator = MatchValidator(gateway, clock=fixed_clock)
        with pytest.raises(PaymentTokenMismatchError):
            await validator.validate_match(buy, sell, TAKER)
        assert gateway.count("order_calldata_can_match") == 0

    @pytest.mark.asyncio
    async def test_clock_skew_when_local_rules_pass(self, gateway, pair):
        buy, sell = pair
        gateway.orders_can_match_results = [False]
        validator = MatchValidator(gateway, clock=fixed_clock)
        with pytest.raises(ClockSkewError, match="system clock"):
            await validator.validate_match(buy, sell, TAKER)

    @pytest.mark.asyncio
    async def test_calldata_mismatch(self, gateway, pair):
        buy, sell = pair
        gateway.calldata_can_match = False
        validator = MatchValidator(gateway, clock=fixed_clock)
        with pytest.raises(CalldataMismatchError):
            await validator.validate_match(buy, sell, TAKER)

    @pytest.mark.asyncio
    async def test_cancelled_counterparty_order(self, gateway, pair):
        buy, sell = pair
        gateway.orders_valid = False
        validator = MatchValidator(gateway, clock=fixed_clock)
        with pytest.raises(MatchError, match="Invalid sell order"):
            await validator.validate_match(buy, sell, TAKER, should_validate_sell=True)
        assert gateway.count("orders_can_match") == 0
