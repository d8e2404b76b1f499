# Contract ABIs
"""
ABI fragments for the contracts this library calls or encodes against
"""
from typing import Any, Dict, List, Sequence, Tuple

Arg = Tuple[str, str]


def _function(
    name: str,
    inputs: Sequence[Arg],
    outputs: Sequence[Arg] = (),
    mutability: str = "nonpayable",
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [_param(n, t) for n, t in inputs],
        "outputs": [_param(n, t) for n, t in outputs],
        "stateMutability": mutability,
    }


def _param(name: str, type_: str) -> Dict[str, Any]:
    if type_.startswith("tuple"):
        # "tuple[](address target,uint256 value,bytes callData)"
        head, _, rest = type_.partition("(")
        components = []
        for part in rest.rstrip(")").split(","):
            ctype, cname = part.strip().split(" ")
            components.append({"name": cname, "type": ctype})
        return {"name": name, "type": head, "components": components}
    return {"name": name, "type": type_}


ERC20_ABI: List[Dict[str, Any]] = [
    _function("transferFrom", [("from", "address"), ("to", "address"), ("amount", "uint256")], [("", "bool")]),
    _function("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")]),
    _function("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")], "view"),
    _function("balanceOf", [("owner", "address")], [("", "uint256")], "view"),
]

ERC721_ABI: List[Dict[str, Any]] = [
    _function("safeTransferFrom", [("from", "address"), ("to", "address"), ("tokenId", "uint256")]),
    _function("setApprovalForAll", [("operator", "address"), ("approved", "bool")]),
    _function("isApprovedForAll", [("owner", "address"), ("operator", "address")], [("", "bool")], "view"),
    _function("ownerOf", [("tokenId", "uint256")], [("", "address")], "view"),
    _function("balanceOf", [("owner", "address")], [("", "uint256")], "view"),
]

ERC1155_ABI: List[Dict[str, Any]] = [
    _function(
        "safeTransferFrom",
        [("from", "address"), ("to", "address"), ("id", "uint256"), ("amount", "uint256"), ("data", "bytes")],
    ),
    _function("setApprovalForAll", [("operator", "address"), ("approved", "bool")]),
    _function("isApprovedForAll", [("account", "address"), ("operator", "address")], [("", "bool")], "view"),
    _function("balanceOf", [("account", "address"), ("id", "uint256")], [("", "uint256")], "view"),
]

MERKLE_VALIDATOR_ABI: List[Dict[str, Any]] = [
    _function(
        "matchERC721UsingCriteria",
        [("from", "address"), ("to", "address"), ("token", "address"), ("tokenId", "uint256"),
         ("root", "bytes32"), ("proof", "bytes32[]")],
        [("", "bool")],
    ),
    _function(
        "matchERC721WithSafeTransferUsingCriteria",
        [("from", "address"), ("to", "address"), ("token", "address"), ("tokenId", "uint256"),
         ("root", "bytes32"), ("proof", "bytes32[]")],
        [("", "bool")],
    ),
    _function(
        "matchERC1155UsingCriteria",
        [("from", "address"), ("to", "address"), ("token", "address"), ("tokenId", "uint256"),
         ("amount", "uint256"), ("root", "bytes32"), ("proof", "bytes32[]")],
        [("", "bool")],
    ),
]

ATOMICIZER_ABI: List[Dict[str, Any]] = [
    _function(
        "atomicize",
        [("addrs", "address[]"), ("values", "uint256[]"), ("calldataLengths", "uint256[]"),
         ("calldatas", "bytes")],
    ),
]

PROXY_REGISTRY_ABI: List[Dict[str, Any]] = [
    _function("registerProxy", [], [("", "address")]),
    _function("proxies", [("", "address")], [("", "address")], "view"),
]

_ORDER_ARGS: List[Arg] = [
    ("addrs", "address[7]"),
    ("uints", "uint256[9]"),
    ("feeMethod", "uint8"),
    ("side", "uint8"),
    ("saleKind", "uint8"),
    ("howToCall", "uint8"),
    ("calldata", "bytes"),
    ("replacementPattern", "bytes"),
    ("staticExtradata", "bytes"),
]

_MATCH_ARGS: List[Arg] = [
    ("addrs", "address[14]"),
    ("uints", "uint256[18]"),
    ("feeMethodsSidesKindsHowToCalls", "uint8[8]"),
    ("calldataBuy", "bytes"),
    ("calldataSell", "bytes"),
    ("replacementPatternBuy", "bytes"),
    ("replacementPatternSell", "bytes"),
    ("staticExtradataBuy", "bytes"),
    ("staticExtradataSell", "bytes"),
]

EXCHANGE_ABI: List[Dict[str, Any]] = [
    _function("nonces", [("", "address")], [("", "uint256")], "view"),
    _function("incrementNonce", []),
    _function("validateOrderParameters_", _ORDER_ARGS, [("", "bool")], "view"),
    _function(
        "validateOrder_",
        _ORDER_ARGS + [("v", "uint8"), ("r", "bytes32"), ("s", "bytes32")],
        [("", "bool")],
        "view",
    ),
    _function("ordersCanMatch_", _MATCH_ARGS, [("", "bool")], "view"),
    _function(
        "orderCalldataCanMatch",
        [("buyCalldata", "bytes"), ("buyReplacementPattern", "bytes"),
         ("sellCalldata", "bytes"), ("sellReplacementPattern", "bytes")],
        [("", "bool")],
        "pure",
    ),
    _function(
        "atomicMatch_",
        _MATCH_ARGS + [("vs", "uint8[2]"), ("rssMetadata", "bytes32[5]")],
        [],
        "payable",
    ),
]

# Value-forwarding aggregate on the deployed multicall helper
MULTICALL_ABI: List[Dict[str, Any]] = [
    _function(
        "aggregate",
        [("calls", "tuple[](address target,uint256 value,bytes callData)")],
        [("blockNumber", "uint256"), ("returnData", "bytes[]")],
        "payable",
    ),
]
