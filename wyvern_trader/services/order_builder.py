# Order Builder
"""
Builds unsigned exchange orders from high-level trade parameters
"""
import calendar
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

from eth_utils import is_address

from wyvern_trader.config import NetworkConfig
from wyvern_trader.constants import (
    DEFAULT_BUYER_FEE_BASIS_POINTS,
    DEFAULT_MAX_BOUNTY,
    DEFAULT_SELLER_FEE_BASIS_POINTS,
    LISTING_TIME_OFFSET_SECONDS,
    MAX_EXPIRATION_MONTHS,
    MIN_EXPIRATION_MINUTES,
    NULL_ADDRESS,
    NULL_BYTES,
    PROTOCOL_FEE_RECIPIENT,
    PROTOCOL_SELLER_BOUNTY_BASIS_POINTS,
)
from wyvern_trader.exceptions import FeeError, OrderParameterError, TimeWindowError
from wyvern_trader.models.orders import (
    Asset,
    AssetMetadata,
    Bundle,
    BundleMetadata,
    FeeMethod,
    HowToCall,
    Order,
    SaleKind,
    SchemaName,
    Side,
    UnhashedOrder,
)
from wyvern_trader.schemas import Schema, get_schema
from wyvern_trader.utils.encoding import (
    TransferEncoding,
    encode_atomicized_buy,
    encode_atomicized_sell,
    encode_buy,
    encode_sell,
)
from wyvern_trader.utils.logger import get_logger
from wyvern_trader.utils.pricing import get_price_parameters

logger = get_logger(__name__)


@dataclass(frozen=True)
class ComputedFees:
    """Fee totals for one side of a trade, in basis points"""
    protocol_buyer_fee_basis_points: int
    protocol_seller_fee_basis_points: int
    dev_buyer_fee_basis_points: int
    dev_seller_fee_basis_points: int
    total_buyer_fee_basis_points: int
    total_seller_fee_basis_points: int
    seller_bounty_basis_points: int


@dataclass(frozen=True)
class FeeParameters:
    """Relayer fee split carried on an order"""
    maker_relayer_fee: int
    taker_relayer_fee: int
    maker_protocol_fee: int
    taker_protocol_fee: int
    maker_referrer_fee: int
    fee_recipient: str
    fee_method: FeeMethod


def validate_and_format_wallet_address(address: Optional[str]) -> str:
    if not address:
        raise OrderParameterError("No wallet address found")
    if not is_address(address):
        raise OrderParameterError("Invalid wallet address")
    if address.lower() == NULL_ADDRESS:
        raise OrderParameterError("Wallet cannot be the null address")
    return address.lower()


def generate_pseudo_random_salt() -> int:
    return secrets.randbits(256)


def get_max_order_expiration_timestamp(now: Optional[float] = None) -> int:
    """Timestamp six calendar months from now, clamping the day to the month's length"""
    current = datetime.fromtimestamp(time.time() if now is None else now, tz=timezone.utc)
    month_index = current.month - 1 + MAX_EXPIRATION_MONTHS
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    day = min(current.day, calendar.monthrange(year, month)[1])
    return round(current.replace(year=year, month=month, day=day).timestamp())


class OrderBuilder:
    """Assembles sell, buy, bundle and matching orders for one network"""

    def __init__(self, network: NetworkConfig, clock: Callable[[], float] = time.time):
        self.network = network
        self.clock = clock

    def now(self) -> int:
        return round(self.clock())

    # Fees

    def compute_fees(self, side: Side, extra_bounty_basis_points: int = 0) -> ComputedFees:
        protocol_buyer_fee_basis_points = DEFAULT_BUYER_FEE_BASIS_POINTS
        protocol_seller_fee_basis_points = DEFAULT_SELLER_FEE_BASIS_POINTS
        dev_buyer_fee_basis_points = 0
        dev_seller_fee_basis_points = 0
        max_total_bounty_bps = DEFAULT_MAX_BOUNTY

        seller_bounty_basis_points = extra_bounty_basis_points if Side(side) == Side.SELL else 0
        bounty_too_large = seller_bounty_basis_points + PROTOCOL_SELLER_BOUNTY_BASIS_POINTS > max_total_bounty_bps
        if seller_bounty_basis_points > 0 and bounty_too_large:
            raise FeeError(
                f"Total bounty exceeds the maximum for this asset type ({max_total_bounty_bps / 100}%)."
            )

        return ComputedFees(
            protocol_buyer_fee_basis_points=protocol_buyer_fee_basis_points,
            protocol_seller_fee_basis_points=protocol_seller_fee_basis_points,
            dev_buyer_fee_basis_points=dev_buyer_fee_basis_points,
            dev_seller_fee_basis_points=dev_seller_fee_basis_points,
            total_buyer_fee_basis_points=protocol_buyer_fee_basis_points + dev_buyer_fee_basis_points,
            total_seller_fee_basis_points=protocol_seller_fee_basis_points + dev_seller_fee_basis_points,
            seller_bounty_basis_points=seller_bounty_basis_points,
        )

    @staticmethod
    def get_sell_fee_parameters(
        total_buyer_fee_basis_points: int,
        total_seller_fee_basis_points: int,
        seller_bounty_basis_points: int = 0,
    ) -> FeeParameters:
        return FeeParameters(
            maker_relayer_fee=total_seller_fee_basis_points,
            taker_relayer_fee=total_buyer_fee_basis_points,
            maker_protocol_fee=0,
            taker_protocol_fee=0,
            maker_referrer_fee=seller_bounty_basis_points,
            fee_recipient=PROTOCOL_FEE_RECIPIENT,
            fee_method=FeeMethod.SPLIT_FEE,
        )

    @staticmethod
    def get_buy_fee_parameters(
        total_buyer_fee_basis_points: int,
        total_seller_fee_basis_points: int,
    ) -> FeeParameters:
        return FeeParameters(
            maker_relayer_fee=total_buyer_fee_basis_points,
            taker_relayer_fee=total_seller_fee_basis_points,
            maker_protocol_fee=0,
            taker_protocol_fee=0,
            maker_referrer_fee=0,
            fee_recipient=PROTOCOL_FEE_RECIPIENT,
            fee_method=FeeMethod.SPLIT_FEE,
        )

    # Schemas and encoding

    def get_schema(self, schema_name: Optional[SchemaName] = None) -> Schema:
        return get_schema(self.network.network, schema_name)

    def _validator_for(self, schema: Schema) -> Optional[str]:
        if schema.criteria_function and self.network.merkle_validator:
            return self.network.merkle_validator
        return None

    def _how_to_call(self, target: str) -> HowToCall:
        if target in (self.network.merkle_validator, self.network.atomicizer):
            return HowToCall.DELEGATE_CALL
        return HowToCall.CALL

    # Time

    def get_max_order_expiration_timestamp(self) -> int:
        return get_max_order_expiration_timestamp(self.clock())

    def get_time_parameters(
        self,
        expiration_time: Optional[Any] = None,
        listing_time: Optional[int] = None,
        is_matching_order: bool = False,
    ) -> Tuple[int, int]:
        """
        Validated (listing_time, expiration_time) for a new order.

        Matching orders skip the zero-expiration and minimum-window rules
        since they carry no expiry of their own.
        """
        now = self.now()
        max_expiration = self.get_max_order_expiration_timestamp()
        if expiration_time is None:
            expiration_time = max_expiration

        if listing_time and listing_time < now:
            raise TimeWindowError("Listing time cannot be in the past.")
        if listing_time and listing_time >= expiration_time:
            raise TimeWindowError("Listing time must be before the expiration time.")

        listing_time = listing_time or now - LISTING_TIME_OFFSET_SECONDS

        if not is_matching_order and expiration_time == 0:
            raise TimeWindowError("Expiration time cannot be 0")
        if int(expiration_time) != expiration_time:
            raise TimeWindowError("Expiration timestamp must be a whole number of seconds")
        expiration_time = int(expiration_time)
        if expiration_time > max_expiration:
            raise TimeWindowError("Expiration time must not exceed six months from now")

        min_expiration = listing_time + MIN_EXPIRATION_MINUTES * 60
        if not is_matching_order and expiration_time < min_expiration:
            raise TimeWindowError(
                f"Expiration time must be at least {MIN_EXPIRATION_MINUTES} minutes from the listing date"
            )
        return int(listing_time), expiration_time

    # Orders

    def make_sell_order(
        self,
        asset: Asset,
        account_address: str,
        start_amount: Any,
        end_amount: Any = None,
        quantity: int = 1,
        listing_time: Optional[int] = None,
        expiration_time: Optional[int] = None,
        payment_token_address: str = NULL_ADDRESS,
        extra_bounty_basis_points: int = 0,
        buyer_address: str = NULL_ADDRESS,
    ) -> UnhashedOrder:
        """Fixed price or Dutch auction listing of a single asset"""
        account_address = validate_and_format_wallet_address(account_address)
        fees = self.compute_fees(Side.SELL, extra_bounty_basis_points)
        schema = self.get_schema(asset.schema_name)

        encoded = encode_sell(schema, asset, account_address, self._validator_for(schema), quantity)
        if expiration_time is None:
            expiration_time = self.get_max_order_expiration_timestamp()
        price = get_price_parameters(
            Side.SELL, payment_token_address, expiration_time, start_amount, end_amount
        )
        sale_kind = SaleKind.DUTCH_AUCTION if price.extra > 0 else SaleKind.FIXED_PRICE
        listing, expiration = self.get_time_parameters(expiration_time, listing_time)
        fee_params = self.get_sell_fee_parameters(
            fees.total_buyer_fee_basis_points,
            fees.total_seller_fee_basis_points,
            fees.seller_bounty_basis_points,
        )

        logger.info(f"Built {sale_kind.name} sell order for {asset.token_address}/{asset.token_id}")
        return self._assemble(
            side=Side.SELL,
            maker=account_address,
            taker=buyer_address or NULL_ADDRESS,
            quantity=quantity,
            fee_params=fee_params,
            sale_kind=sale_kind,
            encoded=encoded,
            payment_token=price.payment_token,
            base_price=price.base_price,
            extra=price.extra,
            listing_time=listing,
            expiration_time=expiration,
            metadata=AssetMetadata(asset=asset, schema_name=schema.name),
        )

    def make_buy_order(
        self,
        asset: Asset,
        account_address: str,
        start_amount: Any,
        quantity: int = 1,
        listing_time: Optional[int] = None,
        expiration_time: Optional[int] = None,
        payment_token_address: Optional[str] = None,
        seller_address: str = NULL_ADDRESS,
    ) -> UnhashedOrder:
        """Fixed price offer on a single asset, paid in an ERC-20 token"""
        account_address = validate_and_format_wallet_address(account_address)
        fees = self.compute_fees(Side.BUY)
        schema = self.get_schema(asset.schema_name)

        encoded = encode_buy(schema, asset, account_address, self._validator_for(schema), quantity)
        if payment_token_address is None:
            payment_token_address = self.network.require("wrapped_native_token")
        if expiration_time is None:
            expiration_time = self.get_max_order_expiration_timestamp()
        price = get_price_parameters(Side.BUY, payment_token_address, expiration_time, start_amount)
        listing, expiration = self.get_time_parameters(expiration_time, listing_time)
        fee_params = self.get_buy_fee_parameters(
            fees.total_buyer_fee_basis_points, fees.total_seller_fee_basis_points
        )

        logger.info(f"Built buy order for {asset.token_address}/{asset.token_id}")
        return self._assemble(
            side=Side.BUY,
            maker=account_address,
            taker=seller_address or NULL_ADDRESS,
            quantity=quantity,
            fee_params=fee_params,
            sale_kind=SaleKind.FIXED_PRICE,
            encoded=encoded,
            payment_token=price.payment_token,
            base_price=price.base_price,
            extra=price.extra,
            listing_time=listing,
            expiration_time=expiration,
            metadata=AssetMetadata(asset=asset, schema_name=schema.name),
        )

    def make_bundle_sell_order(
        self,
        bundle: Bundle,
        account_address: str,
        start_amount: Any,
        end_amount: Any = None,
        listing_time: Optional[int] = None,
        expiration_time: Optional[int] = None,
        payment_token_address: str = NULL_ADDRESS,
        extra_bounty_basis_points: int = 0,
        buyer_address: str = NULL_ADDRESS,
    ) -> UnhashedOrder:
        """Listing of several assets settled through one atomicized call"""
        account_address = validate_and_format_wallet_address(account_address)
        fees = self.compute_fees(Side.SELL, extra_bounty_basis_points)
        schemas = [self.get_schema(name) for name in bundle.schemas]

        encoded = encode_atomicized_sell(schemas, bundle.assets, account_address, self.network.atomicizer)
        if expiration_time is None:
            expiration_time = self.get_max_order_expiration_timestamp()
        price = get_price_parameters(
            Side.SELL, payment_token_address, expiration_time, start_amount, end_amount
        )
        sale_kind = SaleKind.DUTCH_AUCTION if price.extra > 0 else SaleKind.FIXED_PRICE
        listing, expiration = self.get_time_parameters(expiration_time, listing_time)
        fee_params = self.get_sell_fee_parameters(
            fees.total_buyer_fee_basis_points,
            fees.total_seller_fee_basis_points,
            fees.seller_bounty_basis_points,
        )

        logger.info(f"Built {sale_kind.name} bundle sell order with {len(bundle.assets)} assets")
        return self._assemble(
            side=Side.SELL,
            maker=account_address,
            taker=buyer_address or NULL_ADDRESS,
            quantity=1,
            fee_params=fee_params,
            sale_kind=sale_kind,
            encoded=encoded,
            payment_token=price.payment_token,
            base_price=price.base_price,
            extra=price.extra,
            listing_time=listing,
            expiration_time=expiration,
            metadata=BundleMetadata(bundle=bundle),
        )

    def make_matching_order(
        self,
        order: UnhashedOrder,
        account_address: str,
        recipient_address: str,
    ) -> UnhashedOrder:
        """
        Counter-order that takes the given order.

        The transfer is re-encoded from the taker's side with the recipient
        in place of the maker, so each side's replacement pattern fills in
        the other's placeholder.
        """
        account_address = validate_and_format_wallet_address(account_address)
        recipient_address = validate_and_format_wallet_address(recipient_address)

        # Exactly one side of the match may carry the fee recipient
        fee_recipient = PROTOCOL_FEE_RECIPIENT if order.fee_recipient == NULL_ADDRESS else NULL_ADDRESS
        matching_side = Side.SELL if order.side == Side.BUY else Side.BUY

        metadata = order.metadata
        if isinstance(metadata, AssetMetadata):
            schema = self.get_schema(metadata.schema_name)
            validator = order.target if order.target == self.network.merkle_validator else None
            encode = encode_sell if matching_side == Side.SELL else encode_buy
            encoded = encode(schema, metadata.asset, recipient_address, validator, order.quantity)
        elif isinstance(metadata, BundleMetadata):
            schemas = [self.get_schema(name) for name in metadata.bundle.schemas]
            encode = encode_atomicized_sell if matching_side == Side.SELL else encode_atomicized_buy
            encoded = encode(schemas, metadata.bundle.assets, recipient_address, self.network.atomicizer)
        else:
            raise OrderParameterError("Invalid order metadata")

        listing, expiration = self.get_time_parameters(expiration_time=0, is_matching_order=True)

        return UnhashedOrder(
            exchange=order.exchange,
            maker=account_address,
            taker=order.maker,
            quantity=order.quantity,
            maker_relayer_fee=order.maker_relayer_fee,
            taker_relayer_fee=order.taker_relayer_fee,
            maker_protocol_fee=order.maker_protocol_fee,
            taker_protocol_fee=order.taker_protocol_fee,
            maker_referrer_fee=order.maker_referrer_fee,
            fee_method=order.fee_method,
            fee_recipient=fee_recipient,
            side=matching_side,
            sale_kind=SaleKind.FIXED_PRICE,
            target=encoded.target,
            how_to_call=order.how_to_call,
            calldata=encoded.calldata,
            replacement_pattern=encoded.replacement_pattern,
            static_target=NULL_ADDRESS,
            static_extradata=NULL_BYTES,
            payment_token=order.payment_token,
            base_price=order.base_price,
            extra=0,
            listing_time=listing,
            expiration_time=expiration,
            salt=generate_pseudo_random_salt(),
            metadata=order.metadata,
        )

    def _assemble(
        self,
        side: Side,
        maker: str,
        taker: str,
        quantity: int,
        fee_params: FeeParameters,
        sale_kind: SaleKind,
        encoded: TransferEncoding,
        payment_token: str,
        base_price: int,
        extra: int,
        listing_time: int,
        expiration_time: int,
        metadata,
    ) -> UnhashedOrder:
        return UnhashedOrder(
            exchange=self.network.exchange,
            maker=maker,
            taker=taker,
            quantity=quantity,
            maker_relayer_fee=fee_params.maker_relayer_fee,
            taker_relayer_fee=fee_params.taker_relayer_fee,
            maker_protocol_fee=fee_params.maker_protocol_fee,
            taker_protocol_fee=fee_params.taker_protocol_fee,
            maker_referrer_fee=fee_params.maker_referrer_fee,
            fee_method=fee_params.fee_method,
            fee_recipient=fee_params.fee_recipient,
            side=side,
            sale_kind=sale_kind,
            target=encoded.target,
            how_to_call=self._how_to_call(encoded.target),
            calldata=encoded.calldata,
            replacement_pattern=encoded.replacement_pattern,
            static_target=NULL_ADDRESS,
            static_extradata=NULL_BYTES,
            payment_token=payment_token,
            base_price=base_price,
            extra=extra,
            listing_time=listing_time,
            expiration_time=expiration_time,
            salt=generate_pseudo_random_salt(),
            metadata=metadata,
        )


def assign_orders_to_sides(order: Order, matching_order: UnhashedOrder) -> Tuple[Order, Order]:
    """
    (buy, sell) pair for a signed order and its counter-order.

    The counter-order borrows the signed order's signature fields; the
    exchange skips signature checks for the side sent by its own maker.
    """
    fields = matching_order.model_dump(exclude={"metadata"})
    fields.update(metadata=matching_order.metadata, v=order.v, r=order.r, s=order.s)
    counter = Order(**fields)
    if order.side == Side.SELL:
        return counter, order
    return order, counter
