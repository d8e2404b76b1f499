# Order Models
"""
Pydantic models for assets, order metadata and exchange orders, plus the
orderbook JSON wire format
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum, IntEnum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from eth_utils import is_address
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from wyvern_trader.constants import NULL_ADDRESS, NULL_BYTES
from wyvern_trader.exceptions import OrderParameterError

UINT256_MAX = 2**256 - 1


class Side(IntEnum):
    """Order side enumeration"""
    BUY = 0
    SELL = 1


class SaleKind(IntEnum):
    """Sale kind enumeration"""
    FIXED_PRICE = 0
    DUTCH_AUCTION = 1


class FeeMethod(IntEnum):
    """Fee method enumeration"""
    PROTOCOL_FEE = 0
    SPLIT_FEE = 1


class HowToCall(IntEnum):
    """How the proxy invokes the order target"""
    CALL = 0
    DELEGATE_CALL = 1


class SchemaName(str, Enum):
    """Asset schema enumeration"""
    ERC20 = "ERC20"
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"
    ENS_SHORT_NAME_AUCTION = "ENSShortNameAuction"


def _format_address(v: Any) -> str:
    if not isinstance(v, str) or not is_address(v):
        raise ValueError(f"Invalid address: {v!r}")
    return v.lower()


def _format_hex(v: Any) -> str:
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    if not isinstance(v, str) or not v.startswith("0x"):
        raise ValueError(f"Expected 0x-prefixed hex string, got {v!r}")
    body = v[2:]
    if len(body) % 2:
        raise ValueError(f"Odd-length hex string: {v!r}")
    bytes.fromhex(body)
    return v.lower()


def _to_uint(v: Any) -> int:
    if isinstance(v, bool):
        raise ValueError("Booleans are not integers")
    if isinstance(v, int):
        n = v
    else:
        try:
            d = Decimal(str(v))
        except InvalidOperation:
            raise ValueError(f"Not an integer: {v!r}")
        if d != d.to_integral_value():
            raise ValueError(f"Not a whole number: {v!r}")
        n = int(d)
    if n < 0 or n > UINT256_MAX:
        raise ValueError(f"Out of uint256 range: {v!r}")
    return n


class Asset(BaseModel):
    """A specific tradable unit"""

    model_config = ConfigDict(frozen=True)

    token_id: str
    token_address: str
    schema_name: SchemaName = SchemaName.ERC721
    name: Optional[str] = None

    @field_validator("token_id", mode="before")
    @classmethod
    def format_token_id(cls, v):
        return str(_to_uint(v))

    @field_validator("token_address", mode="before")
    @classmethod
    def format_token_address(cls, v):
        return _format_address(v)


class Bundle(BaseModel):
    """Ordered list of assets traded together"""

    model_config = ConfigDict(frozen=True)

    assets: List[Asset]
    schemas: List[SchemaName]
    name: Optional[str] = None
    description: Optional[str] = None
    external_link: Optional[str] = None

    @model_validator(mode="after")
    def check_schemas(self):
        if not self.assets:
            raise ValueError("Bundle must contain at least one asset")
        if len(self.assets) != len(self.schemas):
            raise ValueError(
                f"Bundle has {len(self.assets)} assets but {len(self.schemas)} schemas"
            )
        return self


class AssetMetadata(BaseModel):
    """Metadata for a single-asset order"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["asset"] = "asset"
    asset: Asset
    schema_name: SchemaName = Field(alias="schema")
    referrer_address: Optional[str] = None


class BundleMetadata(BaseModel):
    """Metadata for a bundle order"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bundle"] = "bundle"
    bundle: Bundle
    referrer_address: Optional[str] = None


ExchangeMetadata = Annotated[Union[AssetMetadata, BundleMetadata], Field(discriminator="kind")]


class ECSignature(BaseModel):
    """Split secp256k1 signature"""
    v: int
    r: str
    s: str


ADDRESS_FIELDS = (
    "exchange", "maker", "taker", "fee_recipient", "target", "static_target", "payment_token",
)
HEX_FIELDS = ("calldata", "replacement_pattern", "static_extradata")
UINT_FIELDS = (
    "quantity", "maker_relayer_fee", "taker_relayer_fee", "maker_protocol_fee",
    "taker_protocol_fee", "maker_referrer_fee", "base_price", "extra",
    "listing_time", "expiration_time", "salt",
)


class UnhashedOrder(BaseModel):
    """Exchange order before hashing and signing"""

    exchange: str
    maker: str
    taker: str = NULL_ADDRESS
    quantity: int = 1

    maker_relayer_fee: int
    taker_relayer_fee: int
    maker_protocol_fee: int = 0
    taker_protocol_fee: int = 0
    maker_referrer_fee: int = 0
    fee_recipient: str
    fee_method: FeeMethod

    side: Side
    sale_kind: SaleKind
    target: str
    how_to_call: HowToCall
    calldata: str
    replacement_pattern: str
    static_target: str = NULL_ADDRESS
    static_extradata: str = NULL_BYTES

    payment_token: str
    base_price: int
    extra: int = 0
    listing_time: int
    expiration_time: int
    salt: int

    metadata: ExchangeMetadata

    @field_validator(*ADDRESS_FIELDS, mode="before")
    @classmethod
    def format_address(cls, v):
        return _format_address(v)

    @field_validator(*HEX_FIELDS, mode="before")
    @classmethod
    def format_hex(cls, v):
        return _format_hex(v)

    @field_validator(*UINT_FIELDS, mode="before")
    @classmethod
    def format_uint(cls, v):
        return _to_uint(v)

    @model_validator(mode="after")
    def check_invariants(self):
        if len(self.replacement_pattern) != len(self.calldata):
            raise ValueError("replacement_pattern must be the same length as calldata")
        if self.sale_kind == SaleKind.DUTCH_AUCTION and self.expiration_time == 0:
            raise ValueError("Dutch auctions require an expiration time")
        if self.expiration_time != 0 and self.listing_time >= self.expiration_time:
            raise ValueError("listing_time must be before expiration_time")
        return self


class Order(UnhashedOrder):
    """Signed (or signable) exchange order"""

    hash: Optional[str] = None
    v: Optional[int] = None
    r: Optional[str] = None
    s: Optional[str] = None
    nonce: Optional[int] = None

    created_time: Optional[int] = None
    cancelled_or_finalized: bool = False
    marked_invalid: bool = False

    @property
    def signature(self) -> Optional[ECSignature]:
        if self.v is None or self.r is None or self.s is None:
            return None
        return ECSignature(v=self.v, r=self.r, s=self.s)


# Wire format

def metadata_to_json(metadata) -> Dict[str, Any]:
    """Serialize order metadata to the orderbook shape"""
    if isinstance(metadata, AssetMetadata):
        data: Dict[str, Any] = {
            "asset": {
                "id": metadata.asset.token_id,
                "address": metadata.asset.token_address,
            },
            "schema": metadata.schema_name.value,
        }
        if metadata.asset.name:
            data["asset"]["name"] = metadata.asset.name
    else:
        bundle = metadata.bundle
        data = {
            "bundle": {
                "assets": [{"id": a.token_id, "address": a.token_address} for a in bundle.assets],
                "schemas": [s.value for s in bundle.schemas],
                "name": bundle.name,
                "description": bundle.description,
                "external_link": bundle.external_link,
            }
        }
    if metadata.referrer_address:
        data["referrerAddress"] = metadata.referrer_address
    return data


def _asset_from_json(data: Dict[str, Any], schema: SchemaName) -> Asset:
    token_id = data.get("id", data.get("tokenId", data.get("token_id")))
    address = data.get("address", data.get("tokenAddress"))
    if address is None and isinstance(data.get("asset_contract"), dict):
        address = data["asset_contract"].get("address")
    return Asset(token_id=token_id, token_address=address, schema_name=schema, name=data.get("name"))


def metadata_from_json(data: Dict[str, Any]):
    """Parse order metadata, enforcing exactly one of asset/bundle"""
    has_asset = data.get("asset") is not None
    has_bundle = data.get("bundle") is not None
    if has_asset == has_bundle:
        raise OrderParameterError("Order metadata must contain exactly one of asset or bundle")
    referrer = data.get("referrerAddress")
    if has_asset:
        schema = SchemaName(data.get("schema", SchemaName.ERC721.value))
        return AssetMetadata(
            asset=_asset_from_json(data["asset"], schema),
            schema_name=schema,
            referrer_address=referrer,
        )
    raw = data["bundle"]
    raw_assets = raw.get("assets", [])
    schemas = [SchemaName(s) for s in raw.get("schemas", [])]
    if len(raw_assets) != len(schemas):
        raise OrderParameterError(
            f"Bundle has {len(raw_assets)} assets but {len(schemas)} schemas"
        )
    return BundleMetadata(
        bundle=Bundle(
            assets=[_asset_from_json(a, s) for a, s in zip(raw_assets, schemas)],
            schemas=schemas,
            name=raw.get("name"),
            description=raw.get("description"),
            external_link=raw.get("external_link"),
        ),
        referrer_address=referrer,
    )


def order_to_json(order: UnhashedOrder) -> Dict[str, Any]:
    """Serialize an order; integers become decimal strings, addresses lowercase"""
    data: Dict[str, Any] = {
        "exchange": order.exchange.lower(),
        "maker": order.maker.lower(),
        "taker": order.taker.lower(),
        "makerRelayerFee": str(order.maker_relayer_fee),
        "takerRelayerFee": str(order.taker_relayer_fee),
        "makerProtocolFee": str(order.maker_protocol_fee),
        "takerProtocolFee": str(order.taker_protocol_fee),
        "makerReferrerFee": str(order.maker_referrer_fee),
        "feeMethod": int(order.fee_method),
        "feeRecipient": order.fee_recipient.lower(),
        "side": int(order.side),
        "saleKind": int(order.sale_kind),
        "target": order.target.lower(),
        "howToCall": int(order.how_to_call),
        "calldata": order.calldata,
        "replacementPattern": order.replacement_pattern,
        "staticTarget": order.static_target.lower(),
        "staticExtradata": order.static_extradata,
        "paymentToken": order.payment_token.lower(),
        "quantity": str(order.quantity),
        "basePrice": str(order.base_price),
        "extra": str(order.extra),
        "listingTime": str(order.listing_time),
        "expirationTime": str(order.expiration_time),
        "salt": str(order.salt),
        "metadata": metadata_to_json(order.metadata),
    }
    if isinstance(order, Order):
        if order.hash is not None:
            data["hash"] = order.hash
        if order.created_time is not None:
            data["createdTime"] = str(order.created_time)
        if order.v is not None:
            data["v"] = order.v
            data["r"] = order.r
            data["s"] = order.s
        if order.nonce is not None:
            data["nonce"] = order.nonce
    return data


def _pick(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    value = data.get(camel)
    if value is None:
        value = data.get(snake, default)
    if isinstance(value, dict) and "address" in value:
        return value["address"]
    return value


def _parse_created_time(data: Dict[str, Any]) -> Optional[int]:
    created = data.get("createdTime")
    if created is not None:
        return _to_uint(created)
    created_date = data.get("created_date")
    if not created_date:
        return None
    parsed = datetime.fromisoformat(created_date.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def order_from_json(data: Dict[str, Any]) -> Order:
    """Parse an order from either the camelCase or the orderbook snake_case shape"""
    v = _pick(data, "v", "v")
    order_data = {
        "hash": data.get("hash") or data.get("order_hash"),
        "exchange": _pick(data, "exchange", "exchange"),
        "maker": _pick(data, "maker", "maker"),
        "taker": _pick(data, "taker", "taker", NULL_ADDRESS),
        "quantity": _pick(data, "quantity", "quantity", 1),
        "maker_relayer_fee": _pick(data, "makerRelayerFee", "maker_relayer_fee"),
        "taker_relayer_fee": _pick(data, "takerRelayerFee", "taker_relayer_fee"),
        "maker_protocol_fee": _pick(data, "makerProtocolFee", "maker_protocol_fee", 0),
        "taker_protocol_fee": _pick(data, "takerProtocolFee", "taker_protocol_fee", 0),
        "maker_referrer_fee": _pick(data, "makerReferrerFee", "maker_referrer_fee", 0),
        "fee_method": _pick(data, "feeMethod", "fee_method"),
        "fee_recipient": _pick(data, "feeRecipient", "fee_recipient"),
        "side": _pick(data, "side", "side"),
        "sale_kind": _pick(data, "saleKind", "sale_kind"),
        "target": _pick(data, "target", "target"),
        "how_to_call": _pick(data, "howToCall", "how_to_call"),
        "calldata": _pick(data, "calldata", "calldata"),
        "replacement_pattern": _pick(data, "replacementPattern", "replacement_pattern"),
        "static_target": _pick(data, "staticTarget", "static_target", NULL_ADDRESS),
        "static_extradata": _pick(data, "staticExtradata", "static_extradata", NULL_BYTES),
        "payment_token": _pick(data, "paymentToken", "payment_token"),
        "base_price": _pick(data, "basePrice", "base_price"),
        "extra": _pick(data, "extra", "extra", 0),
        "listing_time": _pick(data, "listingTime", "listing_time"),
        "expiration_time": _pick(data, "expirationTime", "expiration_time"),
        "salt": _pick(data, "salt", "salt"),
        "metadata": metadata_from_json(data.get("metadata") or {}),
        "v": int(v) if v is not None else None,
        "r": data.get("r"),
        "s": data.get("s"),
        "nonce": data.get("nonce"),
        "created_time": _parse_created_time(data),
        "cancelled_or_finalized": bool(
            data.get("cancelledOrFinalized") or data.get("cancelled") or data.get("finalized")
        ),
        "marked_invalid": bool(data.get("markedInvalid") or data.get("marked_invalid")),
    }
    return Order(**order_data)
