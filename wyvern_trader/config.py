# Configuration Management
"""
Environment-based configuration with Pydantic settings, plus the
per-network contract address table
"""
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wyvern_trader.constants import (
    API_BASE_MAINNET,
    DEFAULT_GAS_INCREASE_FACTOR,
    MATCH_VALIDATION_DELAY,
    MATCH_VALIDATION_RETRIES,
    PROXY_POLL_DELAY,
    PROXY_POLL_RETRIES,
)
from wyvern_trader.exceptions import NetworkConfigError


class Network(str, Enum):
    """Supported networks"""
    MAIN = "main"
    RINKEBY = "rinkeby"
    OEC = "OEC"
    OEC_TEST = "OEC_Test"
    BSC_TEST = "BSC_Test"
    BSC = "BSC"


class NetworkConfig(BaseModel):
    """Chain id and contract addresses for one network"""

    model_config = ConfigDict(frozen=True)

    network: Network
    chain_id: int
    exchange: str
    proxy_registry: str
    atomicizer: str
    token_transfer_proxy: Optional[str] = None
    merkle_validator: Optional[str] = None
    multicall: Optional[str] = None
    wrapped_native_token: Optional[str] = None

    @field_validator(
        "exchange", "proxy_registry", "atomicizer", "token_transfer_proxy",
        "merkle_validator", "multicall", "wrapped_native_token",
    )
    @classmethod
    def lowercase_address(cls, v):
        return v.lower() if v else v

    def require(self, name: str) -> str:
        """Address of an optional contract, or fail if this network lacks it"""
        address = getattr(self, name, None)
        if not address:
            raise NetworkConfigError(
                f"No {name.replace('_', ' ')} contract configured for network {self.network.value}"
            )
        return address


NETWORK_CONFIGS: Dict[Network, NetworkConfig] = {
    Network.MAIN: NetworkConfig(
        network=Network.MAIN,
        chain_id=1,
        exchange="0x7f268357A8c2552623316e2562D90e642bB538E5",
        proxy_registry="0xa5409ec958c83c3f309868babaca7c86dcb077c1",
        atomicizer="0xc99f70bfd82fb7c8f8191fdfbfb735606b15e5c5",
        merkle_validator="0xbaf2127b49fc93cbca6269fade0f7f31df4c88a7",
        multicall="0xeefba1e63905ef1d7acba5a8513c70307c1ce441",
        wrapped_native_token="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    ),
    Network.RINKEBY: NetworkConfig(
        network=Network.RINKEBY,
        chain_id=4,
        exchange="0x2d1FBe9075e01bB16dc4C5c209be8CEBb3db1eB1",
        proxy_registry="0xEb3542517464701cD4d42B5bDC49c1cB21d83331",
        atomicizer="0x1d9D0D4f3C47187CD483b11E1556aEA838f0270d",
        token_transfer_proxy="0xdb043586cc1a0a784329733f5caa39f2167d8c0f",
        merkle_validator="0x35411178dfF431Be291e95bF4925b9932AC07785",
        multicall="0x42ad527de7d4e9d9d011ac45b31d8551f8fe9821",
        wrapped_native_token="0xc778417E063141139Fce010982780140Aa0cD5Ab",
    ),
    Network.BSC_TEST: NetworkConfig(
        network=Network.BSC_TEST,
        chain_id=97,
        exchange="0xb90b9A8e129D359F80F7b6fccf503B525e1B6455",
        proxy_registry="0x6CEa74418A513C95D0efa4D75349Cb1f6ee7A335",
        atomicizer="0x443EF018e182d409bcf7f794d409bCea4C73C2C7",
        merkle_validator="0x078b9259b4dc543eCa8F85A70d4635F403238D21",
    ),
}


def get_network_config(network) -> NetworkConfig:
    """Address table for a network; networks without one are rejected"""
    try:
        network = Network(network)
    except ValueError as e:
        raise NetworkConfigError(f"Unknown network: {network}", e)
    config = NETWORK_CONFIGS.get(network)
    if config is None:
        raise NetworkConfigError(f"No contract addresses configured for network {network.value}")
    return config


class Settings(BaseSettings):
    """Library settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # Network
    NETWORK: Network = Network.MAIN
    RPC_URL: str = "http://localhost:8545"

    # Orderbook API
    API_BASE_URL: str = API_BASE_MAINNET
    API_KEY: Optional[str] = None
    REQUEST_TIMEOUT: float = 10.0
    ORDERBOOK_PAGE_SIZE: int = 20
    ORDERBOOK_POST_RETRIES: int = 2

    # Wallet
    PRIVATE_KEYS: str = ""

    # Settlement
    GAS_INCREASE_FACTOR: float = DEFAULT_GAS_INCREASE_FACTOR
    MATCH_VALIDATION_RETRIES: int = MATCH_VALIDATION_RETRIES
    MATCH_VALIDATION_DELAY: float = MATCH_VALIDATION_DELAY
    PROXY_POLL_RETRIES: int = PROXY_POLL_RETRIES
    PROXY_POLL_DELAY: float = PROXY_POLL_DELAY

    @property
    def private_keys(self) -> List[str]:
        """Configured private keys, one per unlocked account"""
        return [k.strip() for k in self.PRIVATE_KEYS.split(",") if k.strip()]

    @property
    def network_config(self) -> NetworkConfig:
        return get_network_config(self.NETWORK)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
