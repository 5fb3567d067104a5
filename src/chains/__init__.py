"""
Chain registry for supported EVM networks
"""

from src.chains.registry import (
    ChainInfo,
    CHAINS,
    SUPPORTED_NETWORKS,
    get_chain,
    get_chain_by_id,
    get_chain_id,
    get_rpc_url,
    get_usdc_address,
    is_testnet,
    to_caip2,
)

__all__ = [
    "ChainInfo",
    "CHAINS",
    "SUPPORTED_NETWORKS",
    "get_chain",
    "get_chain_by_id",
    "get_chain_id",
    "get_rpc_url",
    "get_usdc_address",
    "is_testnet",
    "to_caip2",
]
