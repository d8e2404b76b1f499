# Asset Schemas
"""
Per-network registry of the asset interfaces this library can trade
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from wyvern_trader.abis import ERC20_ABI, ERC721_ABI, ERC1155_ABI
from wyvern_trader.config import Network
from wyvern_trader.exceptions import EncodingError, UnsupportedSchemaError
from wyvern_trader.models.orders import SchemaName


@dataclass(frozen=True)
class Schema:
    """ABI interface and transfer entry points for one asset type"""
    name: SchemaName
    abi: List[Dict[str, Any]]
    transfer_function: str
    # Merkle validator function for delegated-call transfers, if any
    criteria_function: Optional[str] = None
    fungible: bool = False

    def get_function(self, name: str) -> Dict[str, Any]:
        return get_function(self.abi, name)


def get_function(abi: List[Dict[str, Any]], name: str) -> Dict[str, Any]:
    """Look up a function fragment by name"""
    for fragment in abi:
        if fragment.get("type") == "function" and fragment.get("name") == name:
            return fragment
    raise EncodingError(f"Function {name} is not part of this interface")


ERC721_SCHEMA = Schema(
    name=SchemaName.ERC721,
    abi=ERC721_ABI,
    transfer_function="safeTransferFrom",
    criteria_function="matchERC721WithSafeTransferUsingCriteria",
)

ERC1155_SCHEMA = Schema(
    name=SchemaName.ERC1155,
    abi=ERC1155_ABI,
    transfer_function="safeTransferFrom",
    criteria_function="matchERC1155UsingCriteria",
)

ERC20_SCHEMA = Schema(
    name=SchemaName.ERC20,
    abi=ERC20_ABI,
    transfer_function="transferFrom",
    fungible=True,
)

MAIN_SCHEMAS: List[Schema] = [ERC721_SCHEMA, ERC1155_SCHEMA, ERC20_SCHEMA]

SCHEMAS: Dict[Network, List[Schema]] = {
    Network.MAIN: MAIN_SCHEMAS,
    Network.RINKEBY: MAIN_SCHEMAS,
    Network.BSC: MAIN_SCHEMAS,
    Network.BSC_TEST: MAIN_SCHEMAS,
    Network.OEC: MAIN_SCHEMAS,
    Network.OEC_TEST: MAIN_SCHEMAS,
}


def get_schema(network: Network, schema_name: Optional[SchemaName] = None) -> Schema:
    """Schema registered for a network, defaulting to ERC721"""
    schema_name = SchemaName(schema_name or SchemaName.ERC721)
    for schema in SCHEMAS.get(network, []):
        if schema.name == schema_name:
            return schema
    raise UnsupportedSchemaError(f"Trading for this asset ({schema_name.value}) is not yet supported.")
