"""
Web3 Chain Reader

ChainReader over a JSON-RPC node using web3.py.

Only the view methods the aggregators and valuation reports call are described
here, as minimal ABI fragments. Any failure (revert, RPC error, decode error,
unknown method) maps to REVERTED.
"""

import logging
from typing import Any, Optional

from web3 import Web3

from .base import REVERTED, ChainReader

logger = logging.getLogger(__name__)


# method -> (input types, output types)
METHOD_SIGNATURES: dict[str, tuple[list[str], list[str]]] = {
    # ERC20 / LP token
    "symbol": ([], ["string"]),
    "name": ([], ["string"]),
    "decimals": ([], ["uint8"]),
    "totalSupply": ([], ["uint256"]),
    # Pair factory
    "stableFee": ([], ["uint256"]),
    "volatileFee": ([], ["uint256"]),
    "stakingNFTFee": ([], ["uint256"]),
    "MAX_REFERRAL_FEE": ([], ["uint256"]),
    # Bribe
    "getNextEpochStart": ([], ["uint256"]),
    "rewardsListLength": ([], ["uint256"]),
    "rewardTokens": (["uint256"], ["address"]),
    "earned": (["uint256", "address"], ["uint256"]),
    "owner": ([], ["address"]),
    # Voter
    "poolVoteLength": (["uint256"], ["uint256"]),
    "poolVote": (["uint256", "uint256"], ["address"]),
    "votes": (["uint256", "address"], ["uint256"]),
    "weights": (["address"], ["uint256"]),
    "gauges": (["address"], ["address"]),
    # Gauge
    "rewardToken": ([], ["address"]),
    "TOKEN": ([], ["address"]),
    "internal_bribe": ([], ["address"]),
    "external_bribe": ([], ["address"]),
    "isForPair": ([], ["bool"]),
    "rewardRate": ([], ["uint256"]),
    "periodFinish": ([], ["uint256"]),
    "emergency": ([], ["bool"]),
    # Concentrated liquidity pool
    "liquidity": ([], ["uint128"]),
    "slot0": ([], ["uint160", "int24"]),
    "feeGrowthGlobal0X128": ([], ["uint256"]),
    "feeGrowthGlobal1X128": ([], ["uint256"]),
    # Minter
    "EMISSION": ([], ["uint256"]),
    "TAIL_EMISSION": ([], ["uint256"]),
    "teamRate": ([], ["uint256"]),
}


def build_abi_fragment(method: str) -> Optional[dict]:
    """ABI entry for a known view method, or None."""
    signature = METHOD_SIGNATURES.get(method)
    if signature is None:
        return None
    inputs, outputs = signature
    return {
        "name": method,
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs)],
        "outputs": [{"name": f"out{i}", "type": t} for i, t in enumerate(outputs)],
    }


def _normalize_result(value: Any) -> Any:
    if isinstance(value, str) and Web3.is_address(value):
        return value.lower()
    if isinstance(value, (list, tuple)):
        return tuple(_normalize_result(v) for v in value)
    return value


class Web3ChainReader(ChainReader):
    """
    Reader backed by a web3.py HTTP provider.

    Usage:
        reader = Web3ChainReader("https://rpc.example")
        reader.read("0xtoken", "decimals")  # 18 or REVERTED
    """

    def __init__(self, rpc_url: str, timeout_seconds: float = 10.0, w3: Optional[Web3] = None):
        self.rpc_url = rpc_url
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))

    def is_connected(self) -> bool:
        try:
            return self.w3.is_connected()
        except Exception as e:
            logger.warning(f"RPC connectivity check failed: {e}")
            return False

    def _coerce_args(self, method: str, args: tuple) -> list:
        input_types = METHOD_SIGNATURES[method][0]
        coerced = []
        for arg_type, arg in zip(input_types, args):
            if arg_type == "address":
                coerced.append(Web3.to_checksum_address(arg))
            else:
                coerced.append(int(arg))
        return coerced

    def read(self, address: str, method: str, *args: Any) -> Any:
        fragment = build_abi_fragment(method)
        if fragment is None:
            logger.debug(f"No ABI fragment for {method}")
            return REVERTED

        try:
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(address),
                abi=[fragment],
            )
            value = contract.functions[method](*self._coerce_args(method, args)).call()
        except Exception as e:
            logger.debug(f"{method} on {address} failed: {e}")
            return REVERTED

        return _normalize_result(value)
