# Clients Package
from wyvern_trader.clients.contracts import ContractGateway
from wyvern_trader.clients.orderbook import OrderbookClient
from wyvern_trader.clients.wallet import WalletProvider

__all__ = ["ContractGateway", "OrderbookClient", "WalletProvider"]
