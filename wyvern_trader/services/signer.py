# Order Signer
"""
EIP-712 order authorization
"""
from dataclasses import dataclass
from typing import Any, Dict

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak, to_checksum_address

from wyvern_trader.clients.wallet import WalletProvider
from wyvern_trader.constants import (
    EIP_712_DOMAIN_TYPE,
    EIP_712_ORDER_TYPES,
    EIP_712_WYVERN_DOMAIN_NAME,
    EIP_712_WYVERN_DOMAIN_VERSION,
)
from wyvern_trader.exceptions import SigningError
from wyvern_trader.models.orders import Order, UnhashedOrder
from wyvern_trader.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SignatureResult:
    v: int
    r: str
    s: str
    nonce: int


def _hex_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:])


def _word_hex(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def build_typed_data(order: UnhashedOrder, nonce: int, chain_id: int) -> Dict[str, Any]:
    """Full EIP-712 message for an order under the exchange's domain"""
    message = {
        "exchange": to_checksum_address(order.exchange),
        "maker": to_checksum_address(order.maker),
        "taker": to_checksum_address(order.taker),
        "makerRelayerFee": order.maker_relayer_fee,
        "takerRelayerFee": order.taker_relayer_fee,
        "makerProtocolFee": order.maker_protocol_fee,
        "takerProtocolFee": order.taker_protocol_fee,
        "feeRecipient": to_checksum_address(order.fee_recipient),
        "feeMethod": int(order.fee_method),
        "side": int(order.side),
        "saleKind": int(order.sale_kind),
        "target": to_checksum_address(order.target),
        "howToCall": int(order.how_to_call),
        "calldata": _hex_bytes(order.calldata),
        "replacementPattern": _hex_bytes(order.replacement_pattern),
        "staticTarget": to_checksum_address(order.static_target),
        "staticExtradata": _hex_bytes(order.static_extradata),
        "paymentToken": to_checksum_address(order.payment_token),
        "basePrice": order.base_price,
        "extra": order.extra,
        "listingTime": order.listing_time,
        "expirationTime": order.expiration_time,
        "salt": order.salt,
        "nonce": nonce,
    }
    return {
        "types": {"EIP712Domain": EIP_712_DOMAIN_TYPE, **EIP_712_ORDER_TYPES},
        "primaryType": "Order",
        "domain": {
            "name": EIP_712_WYVERN_DOMAIN_NAME,
            "version": EIP_712_WYVERN_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(order.exchange),
        },
        "message": message,
    }


def _digest(signable: SignableMessage) -> bytes:
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def hash_order(order: UnhashedOrder, nonce: int, chain_id: int) -> str:
    """EIP-712 digest the exchange recovers the maker from"""
    signable = encode_typed_data(full_message=build_typed_data(order, nonce, chain_id))
    return "0x" + _digest(signable).hex()


class OrderSigner:
    """Signs orders with the maker's unlocked account"""

    def __init__(self, gateway, wallet: WalletProvider, chain_id: int):
        self.gateway = gateway
        self.wallet = wallet
        self.chain_id = chain_id

    async def authorize_order(self, order: UnhashedOrder) -> SignatureResult:
        """Sign an order against the maker's current exchange nonce"""
        nonce = await self.gateway.get_nonce(order.maker)
        signer = self.wallet.resolve(order.maker)
        signable = encode_typed_data(full_message=build_typed_data(order, nonce, self.chain_id))
        try:
            signed = signer.sign_message(signable)
        except Exception as e:
            logger.error(f"Signing failed for {order.maker}: {e}")
            raise SigningError("You declined to authorize your order", e) from e
        return SignatureResult(v=signed.v, r=_word_hex(signed.r), s=_word_hex(signed.s), nonce=nonce)

    async def sign_order(self, order: UnhashedOrder) -> Order:
        """Signed copy of an order, with hash, signature and nonce filled in"""
        signature = await self.authorize_order(order)
        fields = order.model_dump(exclude={"metadata"})
        fields.update(
            metadata=order.metadata,
            hash=hash_order(order, signature.nonce, self.chain_id),
            v=signature.v,
            r=signature.r,
            s=signature.s,
            nonce=signature.nonce,
        )
        logger.info(f"Order signed by {order.maker} with nonce {signature.nonce}")
        return Order(**fields)
