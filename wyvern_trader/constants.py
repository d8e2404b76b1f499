# Protocol Constants
"""
Fixed protocol values shared by the order builder, signer and settlement
"""

ORDERBOOK_VERSION = 1
API_BASE_MAINNET = "https://api.opensea.io"
ORDERBOOK_PATH = f"/wyvern/v{ORDERBOOK_VERSION}"

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
NULL_BYTES = "0x"
NULL_BLOCK_HASH = "0x" + "00" * 32
MAX_UINT_256 = 2**256 - 1

# Fees, in basis points
DEFAULT_BUYER_FEE_BASIS_POINTS = 0
DEFAULT_SELLER_FEE_BASIS_POINTS = 250
PROTOCOL_SELLER_BOUNTY_BASIS_POINTS = 100
DEFAULT_MAX_BOUNTY = DEFAULT_SELLER_FEE_BASIS_POINTS
INVERSE_BASIS_POINT = 10000
PROTOCOL_FEE_RECIPIENT = "0x5b3256965e7c3cf26e11fcaf296dfc8807c01073"

# Time windows
MIN_EXPIRATION_MINUTES = 15
MAX_EXPIRATION_MONTHS = 6
LISTING_TIME_OFFSET_SECONDS = 100
DUTCH_AUCTION_BACKTRACK_SECONDS = 30

DEFAULT_TOKEN_DECIMALS = 18
DEFAULT_GAS_INCREASE_FACTOR = 1.01
MAX_ERROR_LENGTH = 120

# Retries
MATCH_VALIDATION_RETRIES = 3
MATCH_VALIDATION_DELAY = 0.5
PROXY_POLL_RETRIES = 10
PROXY_POLL_DELAY = 1.0

# EIP-712
EIP_712_WYVERN_DOMAIN_NAME = "Wyvern Exchange Contract"
EIP_712_WYVERN_DOMAIN_VERSION = "2.3"

EIP_712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

EIP_712_ORDER_TYPES = {
    "Order": [
        {"name": "exchange", "type": "address"},
        {"name": "maker", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "makerRelayerFee", "type": "uint256"},
        {"name": "takerRelayerFee", "type": "uint256"},
        {"name": "makerProtocolFee", "type": "uint256"},
        {"name": "takerProtocolFee", "type": "uint256"},
        {"name": "feeRecipient", "type": "address"},
        {"name": "feeMethod", "type": "uint8"},
        {"name": "side", "type": "uint8"},
        {"name": "saleKind", "type": "uint8"},
        {"name": "target", "type": "address"},
        {"name": "howToCall", "type": "uint8"},
        {"name": "calldata", "type": "bytes"},
        {"name": "replacementPattern", "type": "bytes"},
        {"name": "staticTarget", "type": "address"},
        {"name": "staticExtradata", "type": "bytes"},
        {"name": "paymentToken", "type": "address"},
        {"name": "basePrice", "type": "uint256"},
        {"name": "extra", "type": "uint256"},
        {"name": "listingTime", "type": "uint256"},
        {"name": "expirationTime", "type": "uint256"},
        {"name": "salt", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
    ],
}
