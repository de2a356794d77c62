"""
Strike Finance Market Monitor - Liquidation Risk Package
"""

from .analyzer import (
    analyze_market,
    estimate_position_price,
    estimate_market_price
)
from .strike_api import (
    fetch_strike,
    load_snapshot,
    merge_responses
)
from .models import (
    MarketAnalysis,
    MarketSnapshot,
    SideFilter,
    RiskLevel
)

__all__ = [
    'analyze_market',
    'estimate_position_price',
    'estimate_market_price',
    'fetch_strike',
    'load_snapshot',
    'merge_responses',
    'MarketAnalysis',
    'MarketSnapshot',
    'SideFilter',
    'RiskLevel'
]
