"""
Order builder tests: fees, time windows, sell/buy/bundle and matching orders
"""
from datetime import datetime, timezone

import pytest

from conftest import MAKER, NFT_ADDRESS, NOW, PAYMENT_TOKEN, TAKER
from wyvern_trader.config import Network, get_network_config
from wyvern_trader.constants import (
    DEFAULT_SELLER_FEE_BASIS_POINTS,
    NULL_ADDRESS,
    PROTOCOL_FEE_RECIPIENT,
)
from wyvern_trader.exceptions import (
    FeeError,
    OrderParameterError,
    PriceError,
    TimeWindowError,
    UnsupportedSchemaError,
)
from wyvern_trader.models.orders import (
    Asset,
    Bundle,
    BundleMetadata,
    FeeMethod,
    HowToCall,
    Order,
    SaleKind,
    SchemaName,
    Side,
)
from wyvern_trader.services.order_builder import (
    OrderBuilder,
    assign_orders_to_sides,
    generate_pseudo_random_salt,
    get_max_order_expiration_timestamp,
    validate_and_format_wallet_address,
)

DAY = 24 * 60 * 60


class TestWalletAddress:
    def test_lowercases(self):
        assert validate_and_format_wallet_address(MAKER.upper().replace("0X", "0x")) == MAKER

    @pytest.mark.parametrize("address", ["", None, "0x1234", NULL_ADDRESS])
    def test_rejects(self, address):
        with pytest.raises(OrderParameterError):
            validate_and_format_wallet_address(address)


class TestFees:
    def test_sell_defaults(self, builder):
        fees = builder.compute_fees(Side.SELL)
        assert fees.total_seller_fee_basis_points == DEFAULT_SELLER_FEE_BASIS_POINTS
        assert fees.total_buyer_fee_basis_points == 0
        assert fees.seller_bounty_basis_points == 0

    def test_bounty_within_limit(self, builder):
        assert builder.compute_fees(Side.SELL, 150).seller_bounty_basis_points == 150

    def test_bounty_over_limit(self, builder):
        with pytest.raises(FeeError, match="2.5%"):
            builder.compute_fees(Side.SELL, 151)

    def test_buy_side_ignores_bounty(self, builder):
        assert builder.compute_fees(Side.BUY, 1000).seller_bounty_basis_points == 0


class TestTimeParameters:
    def test_defaults(self, builder):
        listing, expiration = builder.get_time_parameters(NOW + DAY)
        assert listing == NOW - 100
        assert expiration == NOW + DAY

    def test_listing_in_past(self, builder):
        with pytest.raises(TimeWindowError, match="past"):
            builder.get_time_parameters(NOW + DAY, listing_time=NOW - 1)

    def test_listing_after_expiration(self, builder):
        with pytest.raises(TimeWindowError, match="before the expiration"):
            builder.get_time_parameters(NOW + DAY, listing_time=NOW + DAY)

    def test_zero_expiration(self, builder):
        with pytest.raises(TimeWindowError, match="cannot be 0"):
            builder.get_time_parameters(0)

    def test_fractional_expiration(self, builder):
        with pytest.raises(TimeWindowError, match="whole number"):
            builder.get_time_parameters(NOW + DAY + 0.5)

    def test_beyond_six_months(self, builder):
        with pytest.raises(TimeWindowError, match="six months"):
            builder.get_time_parameters(get_max_order_expiration_timestamp(NOW) + 1)

    def test_window_too_short(self, builder):
        with pytest.raises(TimeWindowError, match="15 minutes"):
            builder.get_time_parameters(NOW + 60)

    def test_matching_order_skips_window_rules(self, builder):
        assert builder.get_time_parameters(0, is_matching_order=True) == (NOW - 100, 0)

    def test_max_expiration_is_six_calendar_months(self):
        start = datetime(2023, 8, 31, 12, tzinfo=timezone.utc).timestamp()
        expected = datetime(2024, 2, 29, 12, tzinfo=timezone.utc).timestamp()
        assert get_max_order_expiration_timestamp(start) == expected


class TestSellOrder:
    def test_fixed_price_listing(self, builder, nft, network):
        order = builder.make_sell_order(nft, MAKER, 0.1, expiration_time=NOW + DAY)

        assert order.side == Side.SELL
        assert order.sale_kind == SaleKind.FIXED_PRICE
        assert order.base_price == 100000000000000000
        assert order.extra == 0
        assert order.expiration_time - order.listing_time == DAY + 100
        assert order.maker == MAKER
        assert order.taker == NULL_ADDRESS
        assert order.exchange == network.exchange
        assert order.fee_recipient == PROTOCOL_FEE_RECIPIENT
        assert order.fee_method == FeeMethod.SPLIT_FEE
        assert order.maker_relayer_fee == DEFAULT_SELLER_FEE_BASIS_POINTS
        assert order.target == network.merkle_validator
        assert order.how_to_call == HowToCall.DELEGATE_CALL
        assert len(order.calldata) == len(order.replacement_pattern)
        assert order.metadata.asset == nft

    def test_direct_call_without_validator(self, nft):
        builder = OrderBuilder(get_network_config(Network.MAIN).model_copy(update={"merkle_validator": None}),
                               clock=lambda: NOW)
        order = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        assert order.target == NFT_ADDRESS
        assert order.how_to_call == HowToCall.CALL

    def test_dutch_auction(self, builder, nft):
        order = builder.make_sell_order(nft, MAKER, 1, end_amount=0.5, expiration_time=NOW + DAY)
        assert order.sale_kind == SaleKind.DUTCH_AUCTION
        assert order.extra == 5 * 10**17

    def test_equal_end_amount_is_fixed_price(self, builder, nft):
        order = builder.make_sell_order(nft, MAKER, 1, end_amount="1.0", expiration_time=NOW + DAY)
        assert order.sale_kind == SaleKind.FIXED_PRICE

    @pytest.mark.parametrize("start, end", [(1, "abc"), ("abc", 1)])
    def test_non_numeric_amounts(self, builder, nft, start, end):
        with pytest.raises(PriceError):
            builder.make_sell_order(nft, MAKER, start, end_amount=end, expiration_time=NOW + DAY)

    def test_unsupported_schema(self, builder):
        asset = Asset(token_id="1", token_address=NFT_ADDRESS, schema_name=SchemaName.ENS_SHORT_NAME_AUCTION)
        with pytest.raises(UnsupportedSchemaError, match="not yet supported"):
            builder.make_sell_order(asset, MAKER, 1, expiration_time=NOW + DAY)

    def test_salts_differ(self, builder, nft):
        first = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        second = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        assert first.salt != second.salt
        assert 0 <= generate_pseudo_random_salt() < 2**256


class TestBuyOrder:
    def test_offer_defaults_to_wrapped_token(self, builder, nft, network):
        order = builder.make_buy_order(nft, TAKER, 0.5, expiration_time=NOW + DAY)
        assert order.side == Side.BUY
        assert order.payment_token == network.wrapped_native_token
        assert order.maker_relayer_fee == 0
        assert order.taker_relayer_fee == DEFAULT_SELLER_FEE_BASIS_POINTS

    def test_offer_rejects_native_coin(self, builder, nft):
        with pytest.raises(PriceError):
            builder.make_buy_order(nft, TAKER, 0.5, payment_token_address=NULL_ADDRESS, expiration_time=NOW + DAY)


class TestBundleOrder:
    def test_bundle_goes_through_atomicizer(self, builder, nft, network):
        other = Asset(token_id="9", token_address=PAYMENT_TOKEN)
        bundle = Bundle(assets=[nft, other], schemas=[SchemaName.ERC721, SchemaName.ERC721], name="pair")
        order = builder.make_bundle_sell_order(bundle, MAKER, 2, expiration_time=NOW + DAY)
        assert order.target == network.atomicizer
        assert order.how_to_call == HowToCall.DELEGATE_CALL
        assert isinstance(order.metadata, BundleMetadata)
        assert len(order.calldata) == len(order.replacement_pattern)

    def test_bundle_rejects_non_numeric_end_amount(self, builder, nft):
        bundle = Bundle(assets=[nft], schemas=[SchemaName.ERC721])
        with pytest.raises(PriceError, match="Ending price"):
            builder.make_bundle_sell_order(bundle, MAKER, 2, end_amount="abc", expiration_time=NOW + DAY)


class TestMatchingOrder:
    def test_counter_order_for_listing(self, builder, nft):
        sell = builder.make_sell_order(nft, MAKER, 0.1, expiration_time=NOW + DAY)
        buy = builder.make_matching_order(sell, TAKER, TAKER)

        assert buy.side == Side.BUY
        assert buy.sale_kind == SaleKind.FIXED_PRICE
        assert buy.extra == 0
        assert buy.maker == TAKER
        assert buy.taker == MAKER
        assert buy.base_price == sell.base_price
        assert buy.expiration_time == 0
        assert buy.listing_time == NOW - 100
        assert buy.target == sell.target
        assert buy.how_to_call == sell.how_to_call
        # listing carries the fee recipient, so the counter-order must not
        assert buy.fee_recipient == NULL_ADDRESS

    def test_counter_order_for_offer_carries_fee_recipient(self, builder, nft):
        offer = builder.make_buy_order(nft, TAKER, 0.5, expiration_time=NOW + DAY)
        offer = offer.model_copy(update={"fee_recipient": NULL_ADDRESS})
        sell = builder.make_matching_order(offer, MAKER, MAKER)
        assert sell.side == Side.SELL
        assert sell.fee_recipient == PROTOCOL_FEE_RECIPIENT

    def test_counter_order_for_bundle(self, builder, nft, network):
        bundle = Bundle(assets=[nft], schemas=[SchemaName.ERC721])
        sell = builder.make_bundle_sell_order(bundle, MAKER, 1, expiration_time=NOW + DAY)
        buy = builder.make_matching_order(sell, TAKER, TAKER)
        assert buy.target == network.atomicizer
        assert len(buy.calldata) == len(sell.calldata)

    def test_assign_sides_reuses_signature(self, builder, nft):
        sell = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        signed = Order(**sell.model_dump(exclude={"metadata"}), metadata=sell.metadata,
                       v=27, r="0x" + "01" * 32, s="0x" + "02" * 32)
        matching = builder.make_matching_order(signed, TAKER, TAKER)

        buy, sell_side = assign_orders_to_sides(signed, matching)
        assert sell_side is signed
        assert buy.side == Side.BUY
        assert (buy.v, buy.r, buy.s) == (27, signed.r, signed.s)
