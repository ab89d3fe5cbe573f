"""
Detection Configuration (Pydantic)
==================================

Default thresholds, windows and weights for the anomaly detectors, plus the
deep-merge used to apply partial overrides.

Every section is a frozen model, so a config is immutable for the duration
of a computation. Overrides may use snake_case names or the camelCase keys
used by the dashboard payloads (``volumeZScore``, ``crossMarket`` ...).

Usage:
    from surveillance.config import DEFAULT_CONFIG, merge_config

    config = merge_config({"thresholds": {"volumeZScore": 3.0}})
    config.thresholds.volume_z_score   # 3.0
    config.thresholds.price_z_score    # 2.5 (default)
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from core.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class _Section(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class WindowsConfig(_Section):
    """Window sizes in milliseconds."""
    short: int = Field(default=5 * MINUTE_MS, gt=0)
    medium: int = Field(default=15 * MINUTE_MS, gt=0)
    long: int = Field(default=60 * MINUTE_MS, gt=0)


class ThresholdsConfig(_Section):
    """Z-score thresholds (standard deviations)."""
    volume_z_score: float = Field(default=2.5, ge=0)
    price_z_score: float = Field(default=2.5, ge=0)
    volatility_z_score: float = Field(default=2.0, ge=0)
    spread_z_score: float = Field(default=2.0, ge=0)


class MinimumsConfig(_Section):
    """Minimum evidence required before a detector may fire."""
    volume_notional: float = Field(default=100.0, ge=0, description="USDC in the current window")
    data_points: int = Field(default=10, ge=1, description="Windows/observations in a baseline")
    price_move_points: float = Field(default=10.0, ge=0, description="Percent move in the window")


class FlowImbalanceConfig(_Section):
    threshold: float = Field(default=0.7, ge=0, le=1)
    # Accepted in overrides only; no detector reads it (the gate is baseline p90)
    percentile_threshold: float = Field(default=0.95, ge=0, le=1)


class WeightsConfig(_Section):
    """Category weights for composite scoring. Not required to sum to 1."""
    volume: float = Field(default=0.3, ge=0)
    price: float = Field(default=0.3, ge=0)
    liquidity: float = Field(default=0.2, ge=0)
    participant: float = Field(default=0.15, ge=0)
    cross_market: float = Field(default=0.05, ge=0)


class SeverityBandsConfig(_Section):
    """Upper cut points of the heat score bands."""
    calm: float = 20.0
    mild: float = 50.0
    hot: float = 80.0
    on_fire: float = 100.0

    @model_validator(mode="after")
    def _check_ascending(self) -> "SeverityBandsConfig":
        if not (self.calm <= self.mild <= self.hot <= self.on_fire):
            raise ValueError("severity band cut points must be ascending")
        return self


class WhaleConfig(_Section):
    absolute_threshold: float = Field(default=10_000.0, gt=0)
    percentile_threshold: float = Field(default=0.98, ge=0, le=1)


class WalletConcentrationConfig(_Section):
    threshold: float = Field(default=0.7, ge=0, le=1)
    percentile_threshold: float = Field(default=0.95, ge=0, le=1)


class CrossMarketConfig(_Section):
    std_dev_threshold: float = Field(default=2.5, ge=0)


class PreExpiryConfig(_Section):
    time_threshold: int = Field(default=DAY_MS, gt=0, description="ms before expiry to start checking")


class AnomalyDetectionConfig(_Section):
    """Complete detection configuration."""
    windows: WindowsConfig = Field(default_factory=WindowsConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    minimums: MinimumsConfig = Field(default_factory=MinimumsConfig)
    flow_imbalance: FlowImbalanceConfig = Field(default_factory=FlowImbalanceConfig)
    weights: WeightsConfig = Field(default_factory=WeightsConfig)
    severity_bands: SeverityBandsConfig = Field(default_factory=SeverityBandsConfig)
    whale: WhaleConfig = Field(default_factory=WhaleConfig)
    wallet_concentration: WalletConcentrationConfig = Field(default_factory=WalletConcentrationConfig)
    cross_market: CrossMarketConfig = Field(default_factory=CrossMarketConfig)
    pre_expiry: PreExpiryConfig = Field(default_factory=PreExpiryConfig)


DEFAULT_CONFIG = AnomalyDetectionConfig()

ConfigOverride = Union[AnomalyDetectionConfig, Mapping[str, Any]]


def _field_names(model_cls: Type[BaseModel]) -> Dict[str, str]:
    """Map both field names and aliases to field names."""
    names: Dict[str, str] = {}
    for name, info in model_cls.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def _deep_merge(
    model_cls: Type[BaseModel],
    base: Dict[str, Any],
    override: Mapping[str, Any],
) -> Dict[str, Any]:
    merged = dict(base)
    names = _field_names(model_cls)
    for key, value in override.items():
        name = names.get(key, key)
        if value is None:
            continue
        info = model_cls.model_fields.get(name)
        sub_cls = info.annotation if info is not None else None
        if (
            isinstance(value, Mapping)
            and isinstance(sub_cls, type)
            and issubclass(sub_cls, BaseModel)
            and isinstance(merged.get(name), dict)
        ):
            merged[name] = _deep_merge(sub_cls, merged[name], value)
        else:
            merged[name] = value
    return merged


def merge_config(
    overrides: Optional[ConfigOverride] = None,
    base: AnomalyDetectionConfig = DEFAULT_CONFIG,
) -> AnomalyDetectionConfig:
    """
    Merge a partial override over a base config (defaults by default).

    Every nested key independently falls back to the base value when it is
    absent from the override.

    Raises:
        ConfigValidationError: If the merged config fails validation
    """
    if overrides is None:
        return base
    if isinstance(overrides, AnomalyDetectionConfig):
        return overrides

    merged = _deep_merge(AnomalyDetectionConfig, base.model_dump(), overrides)
    try:
        return AnomalyDetectionConfig.model_validate(merged)
    except ValidationError as e:
        logger.error(f"Detection config override rejected: {e}")
        raise ConfigValidationError(
            "Invalid anomaly detection config override",
            context={"errors": e.error_count()},
            cause=e,
        ) from e
