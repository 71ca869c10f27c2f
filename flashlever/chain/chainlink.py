"""
Web3 readers for live Chainlink feeds.

These satisfy the PriceFeed protocol so a PriceOracle can validate
on-chain rounds exactly like simulated ones. Only RPC transport failures
are retried; round validation happens in the oracle.
"""
from typing import Optional

from web3 import Web3

from flashlever.config.settings import get_settings
from flashlever.models.common import Address, to_address
from flashlever.oracle.feeds import RoundData
from flashlever.utils.logger import get_logger
from flashlever.utils.retry import retry_rpc

logger = get_logger(__name__)

AGGREGATOR_V3_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"internalType": "uint80", "name": "roundId", "type": "uint80"},
            {"internalType": "int256", "name": "answer", "type": "int256"},
            {"internalType": "uint256", "name": "startedAt", "type": "uint256"},
            {"internalType": "uint256", "name": "updatedAt", "type": "uint256"},
            {"internalType": "uint80", "name": "answeredInRound", "type": "uint80"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


def build_web3(rpc_url: Optional[str] = None) -> Web3:
    """Create a Web3 client from an explicit URL or settings."""
    url = rpc_url or get_settings().rpc_url
    if not url:
        raise ValueError("RPC_URL is not configured")
    return Web3(Web3.HTTPProvider(url))


class ChainlinkPriceFeed:
    """
    AggregatorV3 feed read over JSON-RPC. Also used for L2 sequencer
    uptime feeds, which share the interface (answer 0 = up, 1 = down).

    Args:
        w3: Web3 client
        address: Feed contract address
    """

    def __init__(self, w3: Web3, address: Address):
        self.address = to_address(address, "feed")
        self.contract = w3.eth.contract(address=self.address, abi=AGGREGATOR_V3_ABI)
        self._decimals: Optional[int] = None

    @property
    def decimals(self) -> int:
        if self._decimals is None:
            self._decimals = self._read_decimals()
        return self._decimals

    @retry_rpc
    def _read_decimals(self) -> int:
        return int(self.contract.functions.decimals().call())

    @retry_rpc
    def latest_round_data(self) -> RoundData:
        round_id, answer, started_at, updated_at, answered_in_round = (
            self.contract.functions.latestRoundData().call()
        )
        logger.debug("chainlink_round_read", feed=self.address, round_id=round_id, answer=answer)
        return RoundData(
            round_id=int(round_id),
            answer=int(answer),
            started_at=int(started_at),
            updated_at=int(updated_at),
            answered_in_round=int(answered_in_round),
        )
