"""
Detector Families
=================

Pure functions turning trades, order-book snapshots and market metadata into
AnomalyEvents. Each family exposes a ``detect_<family>_anomalies`` runner.
"""

from .cross_market import (
    detect_cross_market_anomalies,
    detect_cross_market_mispricing,
    detect_linked_event_anomaly,
    detect_pre_expiry_anomaly,
)
from .liquidity import (
    detect_depth_change,
    detect_liquidity_anomalies,
    detect_slippage_change,
    detect_spread_tightening,
    detect_spread_widening,
)
from .participant import (
    detect_new_wallet_impact,
    detect_participant_anomalies,
    detect_wallet_concentration,
    detect_whale_trades,
)
from .price_volatility import (
    detect_breakout,
    detect_price_jump,
    detect_price_volatility_anomalies,
    detect_volatility_spike,
)
from .volume_flow import (
    detect_flow_imbalance,
    detect_volume_flow_anomalies,
    detect_volume_spike,
)

__all__ = [
    # Volume / flow
    'detect_volume_spike',
    'detect_flow_imbalance',
    'detect_volume_flow_anomalies',
    # Price / volatility
    'detect_price_jump',
    'detect_volatility_spike',
    'detect_breakout',
    'detect_price_volatility_anomalies',
    # Liquidity
    'detect_spread_widening',
    'detect_spread_tightening',
    'detect_depth_change',
    'detect_slippage_change',
    'detect_liquidity_anomalies',
    # Participant
    'detect_whale_trades',
    'detect_wallet_concentration',
    'detect_new_wallet_impact',
    'detect_participant_anomalies',
    # Cross-market
    'detect_cross_market_mispricing',
    'detect_linked_event_anomaly',
    'detect_pre_expiry_anomaly',
    'detect_cross_market_anomalies',
]
