"""
Order model and orderbook wire format tests
"""
import pytest
from pydantic import ValidationError

from conftest import MAKER, NFT_ADDRESS, NOW, as_signed
from wyvern_trader.constants import NULL_ADDRESS
from wyvern_trader.exceptions import OrderParameterError
from wyvern_trader.models.orders import (
    Asset,
    AssetMetadata,
    Bundle,
    BundleMetadata,
    SaleKind,
    SchemaName,
    Side,
    metadata_from_json,
    order_from_json,
    order_to_json,
)

DAY = 24 * 60 * 60


class TestModels:
    def test_asset_normalizes_fields(self):
        asset = Asset(token_id=5465, token_address=NFT_ADDRESS.upper().replace("0X", "0x"))
        assert asset.token_id == "5465"
        assert asset.token_address == NFT_ADDRESS

    def test_asset_rejects_negative_token_id(self):
        with pytest.raises(ValidationError):
            Asset(token_id=-1, token_address=NFT_ADDRESS)

    def test_bundle_needs_one_schema_per_asset(self, nft):
        with pytest.raises(ValidationError):
            Bundle(assets=[nft, nft], schemas=[SchemaName.ERC721])

    def test_pattern_length_must_match_calldata(self, builder, nft):
        order = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        fields = order.model_dump(exclude={"metadata"})
        fields.update(metadata=order.metadata, replacement_pattern="0x00")
        with pytest.raises(ValidationError, match="replacement_pattern"):
            type(order)(**fields)

    def test_dutch_auction_needs_expiration(self, builder, nft):
        order = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        fields = order.model_dump(exclude={"metadata"})
        fields.update(metadata=order.metadata, sale_kind=SaleKind.DUTCH_AUCTION, expiration_time=0)
        with pytest.raises(ValidationError, match="Dutch"):
            type(order)(**fields)

    def test_signature_property(self, builder, nft):
        order = builder.make_sell_order(nft, MAKER, 1, expiration_time=NOW + DAY)
        signed = as_signed(order)
        assert signed.signature.v == 27
        assert as_signed(order, v=None).signature is None


class TestWireFormat:
    def test_round_trip(self, builder, nft):
        order = as_signed(builder.make_sell_order(nft, MAKER, 0.1, expiration_time=NOW + DAY), nonce=3)
        data = order_to_json(order)

        assert data["basePrice"] == "100000000000000000"
        assert data["side"] == 1
        assert data["metadata"]["asset"] == {"id": "5465", "address": NFT_ADDRESS}
        assert data["metadata"]["schema"] == "ERC721"

        parsed = order_from_json(data)
        assert parsed == order

    def test_bundle_round_trip(self, builder, nft, semi_fungible):
        bundle = Bundle(assets=[nft, semi_fungible], schemas=[SchemaName.ERC721, SchemaName.ERC1155], name="pair")
        order = as_signed(builder.make_bundle_sell_order(bundle, MAKER, 1, expiration_time=NOW + DAY))
        parsed = order_from_json(order_to_json(order))
        assert isinstance(parsed.metadata, BundleMetadata)
        assert parsed.metadata.bundle.assets[1].schema_name == SchemaName.ERC1155
        assert parsed == order

    def test_bundle_with_missing_schema_is_rejected(self, builder, nft, semi_fungible):
        bundle = Bundle(assets=[nft, semi_fungible], schemas=[SchemaName.ERC721, SchemaName.ERC1155])
        data = order_to_json(as_signed(builder.make_bundle_sell_order(bundle, MAKER, 1, expiration_time=NOW + DAY)))
        data["metadata"]["bundle"]["schemas"] = ["ERC721"]
        with pytest.raises(OrderParameterError, match="2 assets but 1 schemas"):
            order_from_json(data)

    def test_orderbook_snake_case_shape(self, builder, nft):
        order = builder.make_sell_order(nft, MAKER, 0.1, expiration_time=NOW + DAY)
        data = {
            "order_hash": "0x" + "aa" * 32,
            "exchange": order.exchange,
            "maker": {"address": MAKER, "user": None},
            "taker": {"address": NULL_ADDRESS},
            "maker_relayer_fee": "250",
            "taker_relayer_fee": "0",
            "fee_method": 1,
            "fee_recipient": {"address": order.fee_recipient},
            "side": 1,
            "sale_kind": 0,
            "target": order.target,
            "how_to_call": 1,
            "calldata": order.calldata,
            "replacement_pattern": order.replacement_pattern,
            "payment_token": NULL_ADDRESS,
            "base_price": "100000000000000000",
            "listing_time": order.listing_time,
            "expiration_time": order.expiration_time,
            "salt": str(order.salt),
            "metadata": {"asset": {"id": "5465", "address": NFT_ADDRESS}, "schema": "ERC721"},
            "v": "28",
            "r": "0x" + "01" * 32,
            "s": "0x" + "02" * 32,
            "created_date": "2023-11-14T22:13:20",
            "cancelled": False,
            "finalized": True,
            "marked_invalid": False,
        }
        parsed = order_from_json(data)

        assert parsed.hash == "0x" + "aa" * 32
        assert parsed.maker == MAKER
        assert parsed.side == Side.SELL
        assert parsed.base_price == 10**17
        assert parsed.v == 28
        assert parsed.created_time == NOW
        assert parsed.cancelled_or_finalized is True
        assert parsed.marked_invalid is False
        assert parsed.metadata.asset.token_id == "5465"


class TestMetadata:
    def test_exactly_one_of_asset_or_bundle(self, nft):
        with pytest.raises(OrderParameterError):
            metadata_from_json({})
        with pytest.raises(OrderParameterError):
            metadata_from_json({
                "asset": {"id": "1", "address": NFT_ADDRESS},
                "bundle": {"assets": [], "schemas": []},
            })

    def test_referrer_is_carried(self):
        metadata = metadata_from_json({
            "asset": {"id": "1", "address": NFT_ADDRESS},
            "schema": "ERC1155",
            "referrerAddress": MAKER,
        })
        assert isinstance(metadata, AssetMetadata)
        assert metadata.schema_name == SchemaName.ERC1155
        assert metadata.asset.schema_name == SchemaName.ERC1155
        assert metadata.referrer_address == MAKER
