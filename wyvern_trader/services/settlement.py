# Settlement Engine
"""
Approval, validation and submission pipeline for atomic matches

Each settlement attempt moves BUILT -> APPROVED -> VALIDATED -> SUBMITTED
and ends CONFIRMED or FAILED. Match validation and proxy polling are the
only steps that retry; everything else fails fast.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Tuple

from eth_utils import is_address
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_not_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from wyvern_trader.constants import (
    DEFAULT_GAS_INCREASE_FACTOR,
    MATCH_VALIDATION_DELAY,
    MATCH_VALIDATION_RETRIES,
    MAX_ERROR_LENGTH,
    MAX_UINT_256,
    NULL_ADDRESS,
    NULL_BLOCK_HASH,
    PROXY_POLL_DELAY,
    PROXY_POLL_RETRIES,
)
from wyvern_trader.exceptions import (
    FeeMethodMismatchError,
    FeeRecipientError,
    GasEstimationFailedError,
    InsufficientBalanceError,
    MatchValidationFailedError,
    OrderParameterError,
    OrderParameterInvalidError,
    PaymentTokenMismatchError,
    ProxyRegistrationError,
    SideMismatchError,
    SigningError,
    SubmissionFailedError,
    TakerMismatchError,
    TargetMismatchError,
    TraderError,
    UnsupportedSchemaError,
    truncate_error_message,
)
from wyvern_trader.models.orders import (
    Asset,
    AssetMetadata,
    Order,
    SchemaName,
    Side,
    UnhashedOrder,
)
from wyvern_trader.services.match_validator import MatchValidator
from wyvern_trader.services.order_builder import OrderBuilder, assign_orders_to_sides
from wyvern_trader.utils.logger import get_logger
from wyvern_trader.utils.pricing import correct_gas_amount, required_payment_for_sell_order

logger = get_logger(__name__)

USER_DECLINED_MARKERS = ("user denied", "user rejected", "rejected by user", "declined")

# Mismatches between the two orders themselves; never retried
STRUCTURAL_MATCH_ERRORS = (
    SideMismatchError,
    FeeMethodMismatchError,
    PaymentTokenMismatchError,
    TakerMismatchError,
    FeeRecipientError,
    TargetMismatchError,
)


class SettlementState(str, Enum):
    """Settlement attempt lifecycle"""
    BUILT = "built"
    APPROVED = "approved"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class SettlementAttempt:
    """Progress record for one atomic match or batch"""
    account: str
    order_hashes: List[Optional[str]] = field(default_factory=list)
    state: SettlementState = SettlementState.BUILT
    history: List[SettlementState] = field(default_factory=lambda: [SettlementState.BUILT])
    value: int = 0
    gas_limit: Optional[int] = None
    transaction_hash: Optional[str] = None
    error: Optional[BaseException] = None

    def transition(self, state: SettlementState) -> None:
        logger.info(f"Settlement for {self.account} {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.transition(SettlementState.FAILED)


def assets_of(order: UnhashedOrder) -> List[Asset]:
    """Assets an order transfers, typed by the order's schema(s)"""
    metadata = order.metadata
    if isinstance(metadata, AssetMetadata):
        return [metadata.asset.model_copy(update={"schema_name": metadata.schema_name})]
    bundle = metadata.bundle
    return [a.model_copy(update={"schema_name": s}) for a, s in zip(bundle.assets, bundle.schemas)]


def is_user_declined(error: BaseException) -> bool:
    if isinstance(error, SigningError):
        return True
    if getattr(error, "code", None) == 4001:
        return True
    message = str(error).lower()
    return any(marker in message for marker in USER_DECLINED_MARKERS)


def referrer_metadata(referrer: Optional[str]) -> str:
    """bytes32 match metadata carrying a referrer address, left padded"""
    if referrer and is_address(referrer):
        return "0x" + "00" * 12 + referrer.lower()[2:]
    return NULL_BLOCK_HASH


class SettlementEngine:
    """Drives approvals, match validation and atomic match submission"""

    def __init__(
        self,
        gateway,
        builder: OrderBuilder,
        validator: Optional[MatchValidator] = None,
        gas_increase_factor: float = DEFAULT_GAS_INCREASE_FACTOR,
        match_validation_retries: int = MATCH_VALIDATION_RETRIES,
        match_validation_delay: float = MATCH_VALIDATION_DELAY,
        proxy_poll_retries: int = PROXY_POLL_RETRIES,
        proxy_poll_delay: float = PROXY_POLL_DELAY,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.builder = builder
        self.clock = clock
        self.validator = validator or MatchValidator(gateway, clock)
        self.gas_increase_factor = gas_increase_factor
        self.match_validation_retries = match_validation_retries
        self.match_validation_delay = match_validation_delay
        self.proxy_poll_retries = proxy_poll_retries
        self.proxy_poll_delay = proxy_poll_delay

    # Proxy

    async def get_proxy(self, account: str, retries: int = 0) -> Optional[str]:
        """Account's registered proxy, polling up to retries more times while absent"""
        proxy = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(retries + 1),
                wait=wait_fixed(self.proxy_poll_delay),
                retry=retry_if_result(lambda result: result is None),
            ):
                with attempt:
                    proxy = await self.gateway.get_proxy(account)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(proxy)
        except RetryError:
            return None
        return proxy

    async def initialize_proxy(self, account: str) -> str:
        logger.info(f"Initializing proxy for account: {account}")
        tx_hash = await self.gateway.register_proxy(account)
        await self.gateway.wait_for_receipt(tx_hash)
        proxy = await self.get_proxy(account, self.proxy_poll_retries)
        if not proxy:
            raise ProxyRegistrationError(
                "Failed to initialize your account :( Please restart your wallet/browser and try again!"
            )
        logger.info(f"Proxy {proxy} registered for {account}")
        return proxy

    # Approvals

    async def approve_all(
        self,
        assets: Sequence[Asset],
        account: str,
        proxy_address: Optional[str] = None,
        quantity: int = 1,
    ) -> List[str]:
        """
        Grant the account's proxy transfer rights over every asset.

        Contracts already approved in this call are skipped. Returns the
        hashes of the approval transactions that were sent.
        """
        proxy_address = proxy_address or await self.get_proxy(account)
        if not proxy_address:
            proxy_address = await self.initialize_proxy(account)

        approved_contracts: Set[str] = set()
        tx_hashes: List[str] = []
        for asset in assets:
            if asset.schema_name == SchemaName.ERC20:
                tx_hash = await self.approve_fungible_token(
                    account, asset.token_address, minimum_amount=quantity, proxy_address=proxy_address
                )
            elif asset.schema_name in (SchemaName.ERC721, SchemaName.ERC1155):
                tx_hash = await self._approve_all_tokens(asset, account, proxy_address, approved_contracts)
            else:
                raise UnsupportedSchemaError(
                    f"Trading for this asset ({asset.schema_name.value}) is not yet supported."
                )
            if tx_hash:
                tx_hashes.append(tx_hash)
        return tx_hashes

    async def _approve_all_tokens(
        self, asset: Asset, account: str, proxy_address: str, approved_contracts: Set[str]
    ) -> Optional[str]:
        token = asset.token_address
        if token in approved_contracts:
            return None
        approved_contracts.add(token)

        if await self.gateway.is_approved_for_all(token, asset.schema_name, account, proxy_address):
            logger.info(f"Already approved proxy {proxy_address} for {token}")
            return None

        logger.info(f"Approving proxy {proxy_address} for all tokens of {token}")
        tx_hash = await self.gateway.set_approval_for_all(token, asset.schema_name, account, proxy_address)
        await self.gateway.wait_for_receipt(tx_hash)
        return tx_hash

    async def approve_fungible_token(
        self,
        account: str,
        token: str,
        minimum_amount: int = MAX_UINT_256,
        proxy_address: Optional[str] = None,
    ) -> Optional[str]:
        """Approve the maximum allowance when the current one is below minimum_amount"""
        proxy_address = proxy_address or self.gateway.token_transfer_proxy_address
        allowance = await self.gateway.erc20_allowance(token, account, proxy_address)
        if allowance >= minimum_amount:
            logger.info(f"Already approved enough {token} for {proxy_address}")
            return None

        logger.info(f"Approving {token} for {proxy_address} (allowance {allowance} < {minimum_amount})")
        tx_hash = await self.gateway.erc20_approve(token, account, proxy_address, MAX_UINT_256)
        await self.gateway.wait_for_receipt(tx_hash)
        return tx_hash

    # Order validation

    async def validate_order_parameters(self, order: UnhashedOrder) -> None:
        if not await self.gateway.validate_order_parameters(order):
            raise OrderParameterInvalidError(
                "Failed to validate order parameters. Make sure you're on the right network!"
            )

    async def validate_order(self, order: Order) -> bool:
        return await self.gateway.validate_order(order)

    async def sell_order_validation_and_approvals(self, order: UnhashedOrder, account: str) -> None:
        await self.approve_all(assets_of(order), account, quantity=order.quantity)
        await self.validate_order_parameters(order)

    async def buy_order_validation_and_approvals(
        self,
        order: UnhashedOrder,
        account: str,
        counter_order: Optional[UnhashedOrder] = None,
    ) -> None:
        """Balance and allowance checks for the payer, then on-chain parameter validation"""
        required = order.base_price
        if counter_order is not None:
            required = self.get_required_amount_for_taking_sell_order(counter_order)

        if order.payment_token == NULL_ADDRESS:
            balance = await self.gateway.native_balance(account)
        else:
            balance = await self.gateway.erc20_balance(order.payment_token, account)
        if balance < required:
            raise InsufficientBalanceError(
                f"Insufficient balance. You need {required} of {order.payment_token}, have {balance}."
            )

        if order.payment_token != NULL_ADDRESS:
            await self.approve_fungible_token(account, order.payment_token, minimum_amount=required)
        await self.validate_order_parameters(order)

    # Matching

    def get_required_amount_for_taking_sell_order(self, sell: UnhashedOrder) -> int:
        return required_payment_for_sell_order(sell, int(self.clock()))

    async def _validate_match_with_retries(
        self, buy: Order, sell: Order, account: str, should_validate_buy: bool, should_validate_sell: bool
    ) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.match_validation_retries + 1),
                wait=wait_fixed(self.match_validation_delay),
                retry=retry_if_not_exception_type(STRUCTURAL_MATCH_ERRORS),
            ):
                with attempt:
                    await self.validator.validate_match(
                        buy, sell, account, should_validate_buy, should_validate_sell
                    )
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error(f"Match validation failed after {e.last_attempt.attempt_number} attempts: {cause}")
            raise MatchValidationFailedError(
                f"Error matching this listing: {cause}. Please contact the maker or try again later!",
                cause,
            ) from cause

    async def _estimate_and_submit(
        self,
        attempt: SettlementAttempt,
        estimate: Callable[[], Awaitable[int]],
        submit: Callable[[int], Awaitable[str]],
    ) -> str:
        try:
            gas_estimate = await estimate()
        except Exception as e:
            logger.error(f"Gas estimation failed for {attempt.account}: {e}")
            raise GasEstimationFailedError(
                "Oops, the network rejected this transaction :( This problem is typically due "
                "to an item being locked or untransferrable. The exact error was "
                f'"{truncate_error_message(e, MAX_ERROR_LENGTH)}"',
                e,
            ) from e

        attempt.gas_limit = correct_gas_amount(gas_estimate, self.gas_increase_factor)
        logger.info(f"Fulfilling order with gas set to {attempt.gas_limit}")
        try:
            tx_hash = await submit(attempt.gas_limit)
        except Exception as e:
            logger.error(f"Transaction submission failed for {attempt.account}: {e}")
            declined = is_user_declined(e)
            reason = truncate_error_message(e, MAX_ERROR_LENGTH) if str(e) else "user denied"
            raise SubmissionFailedError(f'Failed to authorize transaction: "{reason}"', e, user_declined=declined) from e

        attempt.transaction_hash = tx_hash
        attempt.transition(SettlementState.SUBMITTED)
        logger.info(f"Transaction submitted: {tx_hash}")
        return tx_hash

    async def _confirm(self, attempt: SettlementAttempt) -> None:
        receipt = await self.gateway.wait_for_receipt(attempt.transaction_hash)
        if receipt.get("status", 1) == 0:
            raise SubmissionFailedError(f"Transaction {attempt.transaction_hash} reverted")
        attempt.transition(SettlementState.CONFIRMED)

    async def settle(
        self,
        buy: Order,
        sell: Order,
        account: str,
        metadata: str = NULL_BLOCK_HASH,
        wait_for_confirmation: bool = False,
    ) -> SettlementAttempt:
        """Run the full pipeline for one buy/sell pair and return its record"""
        account = account.lower()
        attempt = SettlementAttempt(account=account, order_hashes=[buy.hash, sell.hash])
        try:
            should_validate_buy = False
            should_validate_sell = False
            if buy.maker == account:
                await self.buy_order_validation_and_approvals(buy, account, counter_order=sell)
                should_validate_sell = True
                if buy.payment_token == NULL_ADDRESS:
                    attempt.value = self.get_required_amount_for_taking_sell_order(sell)
            elif sell.maker == account:
                await self.sell_order_validation_and_approvals(sell, account)
                should_validate_buy = True
            attempt.transition(SettlementState.APPROVED)

            await self._validate_match_with_retries(
                buy, sell, account, should_validate_buy, should_validate_sell
            )
            attempt.transition(SettlementState.VALIDATED)

            await self._estimate_and_submit(
                attempt,
                lambda: self.gateway.estimate_atomic_match(buy, sell, metadata, account, attempt.value),
                lambda gas: self.gateway.atomic_match(buy, sell, metadata, account, attempt.value, gas),
            )
            if wait_for_confirmation:
                await self._confirm(attempt)
        except TraderError as e:
            attempt.fail(e)
            raise
        return attempt

    async def atomic_match(
        self, buy: Order, sell: Order, account: str, metadata: str = NULL_BLOCK_HASH
    ) -> str:
        attempt = await self.settle(buy, sell, account, metadata)
        return attempt.transaction_hash

    async def fulfill_order(
        self,
        order: Order,
        account: str,
        recipient: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> str:
        """Take an order; returns the match transaction hash"""
        matching_order = self.builder.make_matching_order(order, account, recipient or account)
        buy, sell = assign_orders_to_sides(order, matching_order)
        metadata = referrer_metadata(referrer or order.metadata.referrer_address)
        return await self.atomic_match(buy, sell, account, metadata)

    async def fulfill_orders(
        self,
        orders: Sequence[Order],
        account: str,
        recipient: Optional[str] = None,
    ) -> str:
        """
        Take several sell orders in one multicall transaction.

        The multicall contract is the taker of every counter-order since it
        is the caller of each atomicMatch_. Either every match succeeds or
        the whole transaction reverts.
        """
        if not orders:
            raise OrderParameterError("No orders to fulfill")
        account = account.lower()
        recipient = recipient or account
        multicall = self.gateway.multicall_address

        pairs: List[Tuple[Order, Order]] = []
        for order in orders:
            if order.side != Side.SELL:
                raise OrderParameterError("Only sell orders can be fulfilled in a batch")
            if order.payment_token != NULL_ADDRESS:
                raise OrderParameterError("Batched orders must be priced in the native coin")
            matching_order = self.builder.make_matching_order(order, multicall, recipient)
            pairs.append(assign_orders_to_sides(order, matching_order))

        attempt = SettlementAttempt(account=account, order_hashes=[o.hash for o in orders])
        try:
            values = [self.get_required_amount_for_taking_sell_order(sell) for _, sell in pairs]
            attempt.value = sum(values)

            balance, *valid = await asyncio.gather(
                self.gateway.native_balance(account),
                *(self.validate_order(sell) for _, sell in pairs),
            )
            if balance < attempt.value:
                raise InsufficientBalanceError(
                    f"Insufficient balance. You need {attempt.value} of the native coin, have {balance}."
                )
            invalid = [sell.hash for (_, sell), ok in zip(pairs, valid) if not ok]
            if invalid:
                raise OrderParameterInvalidError(f"Orders are no longer valid: {', '.join(map(str, invalid))}")
            attempt.transition(SettlementState.APPROVED)
            attempt.transition(SettlementState.VALIDATED)

            calls = [
                (self.gateway.exchange_address, value, self.gateway.encode_atomic_match(buy, sell))
                for (buy, sell), value in zip(pairs, values)
            ]
            logger.info(f"Fulfilling {len(calls)} orders in one batch for {attempt.value}")
            return await self._estimate_and_submit(
                attempt,
                lambda: self.gateway.estimate_aggregate(calls, account, attempt.value),
                lambda gas: self.gateway.aggregate(calls, account, attempt.value, gas),
            )
        except TraderError as e:
            attempt.fail(e)
            raise


