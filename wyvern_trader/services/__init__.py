# Services Package
from wyvern_trader.services.match_validator import MatchValidator
from wyvern_trader.services.order_builder import OrderBuilder
from wyvern_trader.services.settlement import SettlementEngine
from wyvern_trader.services.signer import OrderSigner
from wyvern_trader.services.trader import Trader

__all__ = ["MatchValidator", "OrderBuilder", "OrderSigner", "SettlementEngine", "Trader"]
