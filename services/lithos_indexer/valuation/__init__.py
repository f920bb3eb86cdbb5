# Lithos Indexer Valuation
# Off-chain reports priced through the manual conversion graph

from .bribes import BribeClaimables, ExpectedBribesReport, expected_bribes, onchain_claimables
from .gauge_apr import GaugeAprReport, gauge_apr

__all__ = [
    "BribeClaimables",
    "ExpectedBribesReport",
    "GaugeAprReport",
    "expected_bribes",
    "gauge_apr",
    "onchain_claimables",
]
