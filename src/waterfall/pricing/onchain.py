"""On-chain aggregator price source.

Reads an aggregator contract exposing latestRoundData() and decimals()
(the Chainlink AggregatorV3 interface) over JSON-RPC. The contract is a
read-only witness: nothing is signed or sent.

web3 is imported lazily so the engine runs without an RPC endpoint; only
constructing this source requires it.
"""

from __future__ import annotations

from typing import Optional

from waterfall.pricing.resolver import FeedReading


AGGREGATOR_ABI = [
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


class OnChainAggregatorSource:
    """Feed-shaped price source backed by an aggregator contract.

    Usage:
        source = OnChainAggregatorSource(rpc_url, "0x5f4e...8419")
        reading = source.latest_round_data()
    """

    def __init__(
        self,
        rpc_url: str,
        feed_address: str,
        timeout: int = 10,
        w3: Optional[object] = None,
    ) -> None:
        from web3 import Web3, HTTPProvider

        self._w3 = w3 or Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._feed = self._w3.eth.contract(
            address=Web3.to_checksum_address(feed_address),
            abi=AGGREGATOR_ABI,
        )
        self._decimals: Optional[int] = None

    @property
    def decimals(self) -> int:
        if self._decimals is None:
            self._decimals = int(self._feed.functions.decimals().call())
        return self._decimals

    def latest_round_data(self) -> FeedReading:
        _round_id, answer, _started, updated_at, _answered = (
            self._feed.functions.latestRoundData().call()
        )
        return FeedReading(
            answer=int(answer),
            decimals=self.decimals,
            updated_at=int(updated_at),
        )
