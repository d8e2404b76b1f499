# Wyvern Trader
"""
Client library for Wyvern-style exchange orders: build, sign, post and
settle them atomically on-chain
"""
from wyvern_trader.config import Network, NetworkConfig, Settings, get_network_config, get_settings
from wyvern_trader.models.orders import (
    Asset,
    Bundle,
    Order,
    SchemaName,
    Side,
    UnhashedOrder,
    order_from_json,
    order_to_json,
)
from wyvern_trader.services.trader import Trader, get_trader

__version__ = "0.1.0"

__all__ = [
    "Asset",
    "Bundle",
    "Network",
    "NetworkConfig",
    "Order",
    "SchemaName",
    "Settings",
    "Side",
    "Trader",
    "UnhashedOrder",
    "get_network_config",
    "get_settings",
    "get_trader",
    "order_from_json",
    "order_to_json",
]
