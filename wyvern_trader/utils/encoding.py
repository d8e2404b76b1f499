# Asset Transfer Encoding
"""
Calldata and replacement patterns for asset transfers

A replacement pattern is a byte mask the same length as the calldata it
describes. Bytes set to 0xff may be overwritten by the counter-order's
calldata during matching; every other byte must be identical on both
sides. The 4-byte method selector is never replaceable.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import encode
from eth_abi.grammar import TupleType, parse
from eth_utils import function_signature_to_4byte_selector

from wyvern_trader.abis import ATOMICIZER_ABI, MERKLE_VALIDATOR_ABI
from wyvern_trader.constants import NULL_ADDRESS
from wyvern_trader.exceptions import EncodingError
from wyvern_trader.models.orders import Asset, Side
from wyvern_trader.schemas import Schema, get_function

WORD_SIZE = 32
SELECTOR_SIZE = 4
NULL_ROOT = b"\x00" * 32


@dataclass(frozen=True)
class TransferEncoding:
    """Target contract plus calldata and mask for one side of a transfer"""
    target: str
    calldata: bytes
    replacement_pattern: bytes

    @property
    def calldata_hex(self) -> str:
        return "0x" + self.calldata.hex()

    @property
    def replacement_pattern_hex(self) -> str:
        return "0x" + self.replacement_pattern.hex()


def canonical_type(param: Dict[str, Any]) -> str:
    """ABI type string of a parameter, expanding tuples"""
    type_str = param["type"]
    if type_str.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param["components"])
        return f"({inner}){type_str[len('tuple'):]}"
    return type_str


def function_signature(function_abi: Dict[str, Any]) -> str:
    types = ",".join(canonical_type(p) for p in function_abi["inputs"])
    return f"{function_abi['name']}({types})"


def encode_call(function_abi: Dict[str, Any], values: Sequence[Any]) -> bytes:
    """Method selector followed by the ABI-encoded arguments"""
    types = [canonical_type(p) for p in function_abi["inputs"]]
    selector = function_signature_to_4byte_selector(function_signature(function_abi))
    try:
        return selector + encode(types, list(values))
    except Exception as e:
        raise EncodingError(f"Unable to encode {function_abi['name']}: {e}", e) from e


def _default_for(abi_type) -> Any:
    if isinstance(abi_type, TupleType):
        raise EncodingError(f"Default value not yet implemented for type: {abi_type.to_type_str()}")
    if abi_type.is_array:
        dimension = abi_type.arrlist[-1]
        if not dimension:
            return []
        return [_default_for(abi_type.item_type)] * dimension[0]
    base = abi_type.base
    if base == "address":
        return NULL_ADDRESS
    if base == "bytes":
        return b"\x00" * int(abi_type.sub) if abi_type.sub else b""
    if base == "string":
        return ""
    if base == "bool":
        return False
    if base in ("uint", "int"):
        return 0
    raise EncodingError(f"Default value not yet implemented for type: {abi_type.to_type_str()}")


def generate_default_value(type_str: str) -> Any:
    """Zero value for an ABI type"""
    try:
        abi_type = parse(type_str)
    except Exception as e:
        raise EncodingError(f"Unparseable ABI type: {type_str}", e) from e
    return _default_for(abi_type)


def encode_replacement_pattern(
    function_abi: Dict[str, Any],
    replace_kind: Sequence[bool],
    values: Optional[Sequence[Any]] = None,
) -> bytes:
    """
    Build the replacement mask for a call to function_abi.

    Static arguments own their head words (one per 32 bytes of encoding)
    and are filled with 0xff when replaceable. Dynamic arguments own a
    zero offset word in the head and a zero block in the tail sized from
    their encoded value (the type's empty default when values is None).
    """
    inputs = function_abi["inputs"]
    if len(inputs) != len(replace_kind):
        raise EncodingError(
            f"replaceKind length is not matched with inputs! ({len(replace_kind)}!={len(inputs)})"
        )
    types = [canonical_type(p) for p in inputs]
    if values is None:
        values = [generate_default_value(t) for t in types]
    if len(values) != len(types):
        raise EncodingError(f"Expected {len(types)} values, got {len(values)}")

    head: List[bytes] = []
    tail: List[bytes] = []
    for type_str, replace, value in zip(types, replace_kind, values):
        abi_type = parse(type_str)
        if abi_type.is_dynamic:
            if replace:
                raise EncodingError("Replacement is not supported for dynamic parameters.")
            head.append(bytes(WORD_SIZE))
            tail.append(bytes(len(encode([type_str], [value])) - WORD_SIZE))
            continue
        width = len(encode([type_str], [generate_default_value(type_str)]))
        head.append((b"\xff" if replace else b"\x00") * width)

    return bytes(SELECTOR_SIZE) + b"".join(head) + b"".join(tail)


def _transfer_arguments(
    function_abi: Dict[str, Any],
    side: Side,
    asset: Asset,
    address: str,
    quantity: int,
) -> List[Any]:
    # Sell: from = maker, to = placeholder. Buy: from = placeholder, to = maker.
    sender = address if side == Side.SELL else NULL_ADDRESS
    recipient = NULL_ADDRESS if side == Side.SELL else address
    by_name = {
        "from": sender,
        "to": recipient,
        "token": asset.token_address,
        "tokenId": int(asset.token_id),
        "id": int(asset.token_id),
        "amount": quantity,
        "data": b"",
        "root": NULL_ROOT,
        "proof": [],
    }
    arguments = []
    for param in function_abi["inputs"]:
        if param["name"] not in by_name:
            raise EncodingError(
                f"Don't know how to fill argument {param['name']} of {function_abi['name']}"
            )
        arguments.append(by_name[param["name"]])
    return arguments


def encode_transfer(
    side: Side,
    schema: Schema,
    asset: Asset,
    address: str,
    validator_address: Optional[str] = None,
    quantity: int = 1,
) -> TransferEncoding:
    """
    Encode one side of an asset transfer.

    With a validator address the transfer goes through the merkle
    validator's criteria function (delegate call); otherwise it calls the
    schema's transfer function on the asset contract directly. The
    counterparty's slot is left as the null address and marked
    replaceable: "to" for a sell, "from" for a buy.
    """
    side = Side(side)
    if validator_address:
        if not schema.criteria_function:
            raise EncodingError(f"Schema {schema.name.value} has no criteria transfer function")
        function_abi = get_function(MERKLE_VALIDATOR_ABI, schema.criteria_function)
        target = validator_address.lower()
    else:
        function_abi = schema.get_function(schema.transfer_function)
        target = asset.token_address.lower()

    arguments = _transfer_arguments(function_abi, side, asset, address, quantity)
    replaceable = "to" if side == Side.SELL else "from"
    replace_kind = [p["name"] == replaceable for p in function_abi["inputs"]]

    return TransferEncoding(
        target=target,
        calldata=encode_call(function_abi, arguments),
        replacement_pattern=encode_replacement_pattern(function_abi, replace_kind, arguments),
    )


def encode_sell(
    schema: Schema,
    asset: Asset,
    address: str,
    validator_address: Optional[str] = None,
    quantity: int = 1,
) -> TransferEncoding:
    return encode_transfer(Side.SELL, schema, asset, address, validator_address, quantity)


def encode_buy(
    schema: Schema,
    asset: Asset,
    address: str,
    validator_address: Optional[str] = None,
    quantity: int = 1,
) -> TransferEncoding:
    return encode_transfer(Side.BUY, schema, asset, address, validator_address, quantity)


def _ceil_to_word(length: int) -> int:
    return -(-length // WORD_SIZE) * WORD_SIZE


def encode_atomicized_transfer(
    side: Side,
    schemas: Sequence[Schema],
    assets: Sequence[Asset],
    address: str,
    atomicizer_address: str,
) -> TransferEncoding:
    """
    Encode a bundle as a single atomicize() call.

    Each asset is encoded as a direct transfer; the calls are concatenated
    into the atomicizer's trailing bytes argument. The mask is zero over
    everything before that byte string and carries each sub-call's own
    mask inside it.
    """
    if len(schemas) != len(assets):
        raise EncodingError(f"Got {len(assets)} assets but {len(schemas)} schemas")
    if not assets:
        raise EncodingError("Cannot atomicize an empty bundle")

    transfers = [encode_transfer(side, schema, asset, address) for schema, asset in zip(schemas, assets)]
    concatenated = b"".join(t.calldata for t in transfers)

    calldata = encode_call(
        get_function(ATOMICIZER_ABI, "atomicize"),
        [
            [t.target for t in transfers],
            [0] * len(transfers),
            [len(t.calldata) for t in transfers],
            concatenated,
        ],
    )

    padded = _ceil_to_word(len(concatenated))
    prefix = len(calldata) - padded
    mask = (
        bytes(prefix)
        + b"".join(t.replacement_pattern for t in transfers)
        + bytes(padded - len(concatenated))
    )
    return TransferEncoding(
        target=atomicizer_address.lower(),
        calldata=calldata,
        replacement_pattern=mask,
    )


def encode_atomicized_sell(schemas, assets, address, atomicizer_address) -> TransferEncoding:
    return encode_atomicized_transfer(Side.SELL, schemas, assets, address, atomicizer_address)


def encode_atomicized_buy(schemas, assets, address, atomicizer_address) -> TransferEncoding:
    return encode_atomicized_transfer(Side.BUY, schemas, assets, address, atomicizer_address)
