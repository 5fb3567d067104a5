"""
Static chain registry for x402 exact-scheme networks
Maps network identifiers to chain ID, RPC endpoint and USDC contract
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class ChainInfo:
    """Static description of a supported EVM network"""
    network: str
    chain_id: int
    name: str
    rpc_url: str
    usdc_address: str
    is_testnet: bool
    native_symbol: str = "ETH"
    explorer_url: Optional[str] = None

    @property
    def caip2(self) -> str:
        return f"eip155:{self.chain_id}"


CHAINS: Dict[str, ChainInfo] = {
    "avalanche": ChainInfo(
        network="avalanche",
        chain_id=43114,
        name="Avalanche C-Chain",
        rpc_url="https://api.avax.network/ext/bc/C/rpc",
        usdc_address="0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E",
        is_testnet=False,
        native_symbol="AVAX",
        explorer_url="https://snowtrace.io",
    ),
    "avalanche-fuji": ChainInfo(
        network="avalanche-fuji",
        chain_id=43113,
        name="Avalanche Fuji",
        rpc_url="https://api.avax-test.network/ext/bc/C/rpc",
        usdc_address="0x5425890298aed601595a70AB815c96711a31Bc65",
        is_testnet=True,
        native_symbol="AVAX",
        explorer_url="https://testnet.snowtrace.io",
    ),
    "celo": ChainInfo(
        network="celo",
        chain_id=42220,
        name="Celo",
        rpc_url="https://forno.celo.org",
        usdc_address="0xcebA9300f2b948710d2653dD7B07f33A8B32118C",
        is_testnet=False,
        native_symbol="CELO",
        explorer_url="https://explorer.celo.org/mainnet",
    ),
    "celo-sepolia": ChainInfo(
        network="celo-sepolia",
        chain_id=11142220,
        name="Celo Sepolia",
        rpc_url="https://forno.celo-sepolia.celo-testnet.org",
        usdc_address=ZERO_ADDRESS,
        is_testnet=True,
        native_symbol="CELO",
        explorer_url="https://celo-sepolia.blockscout.com",
    ),
    "base": ChainInfo(
        network="base",
        chain_id=8453,
        name="Base",
        rpc_url="https://mainnet.base.org",
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        is_testnet=False,
        explorer_url="https://basescan.org",
    ),
    "base-sepolia": ChainInfo(
        network="base-sepolia",
        chain_id=84532,
        name="Base Sepolia",
        rpc_url="https://sepolia.base.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        is_testnet=True,
        explorer_url="https://sepolia.basescan.org",
    ),
    "ethereum": ChainInfo(
        network="ethereum",
        chain_id=1,
        name="Ethereum",
        rpc_url="https://eth.llamarpc.com",
        usdc_address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        is_testnet=False,
        explorer_url="https://etherscan.io",
    ),
    "sepolia": ChainInfo(
        network="sepolia",
        chain_id=11155111,
        name="Sepolia",
        rpc_url="https://rpc.sepolia.org",
        usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        is_testnet=True,
        explorer_url="https://sepolia.etherscan.io",
    ),
    "polygon": ChainInfo(
        network="polygon",
        chain_id=137,
        name="Polygon",
        rpc_url="https://polygon-rpc.com",
        usdc_address="0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        is_testnet=False,
        native_symbol="POL",
        explorer_url="https://polygonscan.com",
    ),
    "polygon-amoy": ChainInfo(
        network="polygon-amoy",
        chain_id=80002,
        name="Polygon Amoy",
        rpc_url="https://rpc-amoy.polygon.technology",
        usdc_address="0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582",
        is_testnet=True,
        native_symbol="POL",
        explorer_url="https://amoy.polygonscan.com",
    ),
    "monad": ChainInfo(
        network="monad",
        chain_id=10142,
        name="Monad",
        rpc_url="https://rpc.monad.xyz",
        usdc_address=ZERO_ADDRESS,
        is_testnet=False,
        native_symbol="MON",
        explorer_url="https://monadexplorer.com",
    ),
    "monad-testnet": ChainInfo(
        network="monad-testnet",
        chain_id=10143,
        name="Monad Testnet",
        rpc_url="https://testnet-rpc.monad.xyz",
        usdc_address=ZERO_ADDRESS,
        is_testnet=True,
        native_symbol="MON",
        explorer_url="https://testnet.monadexplorer.com",
    ),
    "arbitrum": ChainInfo(
        network="arbitrum",
        chain_id=42161,
        name="Arbitrum One",
        rpc_url="https://arb1.arbitrum.io/rpc",
        usdc_address="0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        is_testnet=False,
        explorer_url="https://arbiscan.io",
    ),
    "arbitrum-sepolia": ChainInfo(
        network="arbitrum-sepolia",
        chain_id=421614,
        name="Arbitrum Sepolia",
        rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
        usdc_address="0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d",
        is_testnet=True,
        explorer_url="https://sepolia.arbiscan.io",
    ),
    "optimism": ChainInfo(
        network="optimism",
        chain_id=10,
        name="OP Mainnet",
        rpc_url="https://mainnet.optimism.io",
        usdc_address="0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        is_testnet=False,
        explorer_url="https://optimistic.etherscan.io",
    ),
    "optimism-sepolia": ChainInfo(
        network="optimism-sepolia",
        chain_id=11155420,
        name="OP Sepolia",
        rpc_url="https://sepolia.optimism.io",
        usdc_address="0x5fd84259d66Cd46123540766Be93DFE6D43130D7",
        is_testnet=True,
        explorer_url="https://sepolia-optimism.etherscan.io",
    ),
}

SUPPORTED_NETWORKS: List[str] = list(CHAINS.keys())


def get_chain(network: str) -> Optional[ChainInfo]:
    """Look up a chain by network identifier (e.g. "base-sepolia")"""
    return CHAINS.get(network)


def get_chain_by_id(chain_id: int) -> Optional[ChainInfo]:
    """Look up a chain by numeric chain ID"""
    for chain in CHAINS.values():
        if chain.chain_id == chain_id:
            return chain
    return None


def get_chain_id(network: str) -> Optional[int]:
    chain = CHAINS.get(network)
    return chain.chain_id if chain else None


def get_rpc_url(network: str) -> Optional[str]:
    chain = CHAINS.get(network)
    return chain.rpc_url if chain else None


def get_usdc_address(network: str) -> Optional[str]:
    """USDC contract for a network, or None where USDC is not deployed"""
    chain = CHAINS.get(network)
    if chain is None or chain.usdc_address == ZERO_ADDRESS:
        return None
    return chain.usdc_address


def is_testnet(network: str) -> bool:
    chain = CHAINS.get(network)
    return bool(chain and chain.is_testnet)


def to_caip2(network: str) -> str:
    """Network in CAIP-2 form (eip155:<chainId>); unknown networks pass through"""
    chain = CHAINS.get(network)
    return chain.caip2 if chain else network
