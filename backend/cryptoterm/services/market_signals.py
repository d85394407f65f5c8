"""Market signal detection.

Runs a fixed battery of heuristics over the current market view:
- Volume anomaly: outsized move in the volume view
- Divergence: 24h move against the 7d trend
- Momentum: large 24h move on a major (> $1B) asset
- Support/resistance: close to the all-time high, or deep below it

Detection is a pure function of its input: the same assets, volume view and
detection time always produce the same signals in the same order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

if TYPE_CHECKING:
    from .external_data import MarketAsset, VolumeEntry

logger = logging.getLogger(__name__)

VOLUME_ANOMALY_THRESHOLD = 50.0
VOLUME_ANOMALY_HIGH_THRESHOLD = 100.0
DIVERGENCE_THRESHOLD = 10.0
MOMENTUM_THRESHOLD = 15.0
MOMENTUM_MARKET_CAP_FLOOR = 1_000_000_000
NEAR_ATH_THRESHOLD = -5.0
DEEP_CORRECTION_THRESHOLD = -50.0


class SignalKind(str, Enum):
    """Types of detected market conditions."""
    DIVERGENCE = "divergence"
    VOLUME_ANOMALY = "volume_anomaly"
    WHALE_PATTERN = "whale_pattern"
    MOMENTUM = "momentum"
    SUPPORT_RESISTANCE = "support_resistance"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


@dataclass(frozen=True)
class Signal:
    """One detected market condition."""
    kind: SignalKind
    severity: Severity
    symbol: str
    message: str
    timestamp: datetime
    data: Optional[Dict[str, Any]] = None


def _signed(value: float) -> str:
    """Format a percentage with two decimals and an explicit + when positive."""
    return f"{'+' if value > 0 else ''}{value:.2f}"


class MarketSignalDetector:
    """Applies every rule to the same input and merges the results.

    Rules run in a fixed order; the merged list is stable-sorted by severity
    so equal-severity signals keep rule emission order.
    """

    def detect(
        self,
        assets: Iterable["MarketAsset"],
        volume_view: Iterable["VolumeEntry"],
        as_of: Optional[datetime] = None,
    ) -> List[Signal]:
        """Run all rules and return signals ordered high → medium → low.

        Args:
            assets: Current market asset list
            volume_view: Volume-sorted view of the same list
            as_of: Detection time stamped on every signal (default: now, UTC)

        Returns:
            Sorted signal list; empty when the input is unusable.
        """
        as_of = as_of or datetime.now(timezone.utc)
        try:
            assets = list(assets or [])
            volume_view = list(volume_view or [])
        except TypeError as e:
            logger.error(f"Signal detection skipped, unusable input: {e}")
            return []

        signals: List[Signal] = []
        rules = [
            (self._volume_anomalies, volume_view),
            (self._divergences, assets),
            (self._momentum_shifts, assets),
            (self._support_resistance, assets),
        ]
        for rule, source in rules:
            try:
                signals.extend(rule(source, as_of))
            except (AttributeError, TypeError, ValueError) as e:
                # a malformed row drops this rule's output, not the whole pass
                logger.error(f"Signal rule {rule.__name__} failed: {e}")

        return sorted(signals, key=lambda s: s.severity.rank, reverse=True)

    def _volume_anomalies(self, volume_view: List["VolumeEntry"], as_of: datetime) -> List[Signal]:
        signals = []
        for entry in volume_view:
            change = entry.volume_change
            if abs(change) > VOLUME_ANOMALY_THRESHOLD:
                signals.append(Signal(
                    kind=SignalKind.VOLUME_ANOMALY,
                    severity=Severity.HIGH if abs(change) > VOLUME_ANOMALY_HIGH_THRESHOLD else Severity.MEDIUM,
                    symbol=entry.symbol.upper(),
                    message=f"Unusual volume spike detected: {_signed(change)}%",
                    timestamp=as_of,
                    data={"volume": entry.volume, "change": change},
                ))
        return signals

    def _divergences(self, assets: List["MarketAsset"], as_of: datetime) -> List[Signal]:
        signals = []
        for asset in assets:
            change_24h = asset.change_24h
            change_7d = asset.change_7d
            if change_24h > DIVERGENCE_THRESHOLD and change_7d < 0:
                message = (
                    f"Bullish divergence: Strong 24h gain ({_signed(change_24h)}%) "
                    f"but 7d trend is negative"
                )
            elif change_24h < -DIVERGENCE_THRESHOLD and change_7d > 0:
                message = (
                    f"Bearish divergence: Sharp 24h drop ({_signed(change_24h)}%) "
                    f"but 7d trend is positive"
                )
            else:
                continue
            signals.append(Signal(
                kind=SignalKind.DIVERGENCE,
                severity=Severity.MEDIUM,
                symbol=asset.symbol.upper(),
                message=message,
                timestamp=as_of,
                data={"price_24h": change_24h, "price_7d": change_7d},
            ))
        return signals

    def _momentum_shifts(self, assets: List["MarketAsset"], as_of: datetime) -> List[Signal]:
        signals = []
        for asset in assets:
            if asset.market_cap <= MOMENTUM_MARKET_CAP_FLOOR:
                continue
            change = asset.change_24h
            if abs(change) > MOMENTUM_THRESHOLD:
                direction = "upward" if change > 0 else "downward"
                signals.append(Signal(
                    kind=SignalKind.MOMENTUM,
                    severity=Severity.HIGH,
                    symbol=asset.symbol.upper(),
                    message=f"Strong {direction} momentum: {_signed(change)}% in 24h",
                    timestamp=as_of,
                    data={"change_24h": change, "market_cap": asset.market_cap},
                ))
        return signals

    def _support_resistance(self, assets: List["MarketAsset"], as_of: datetime) -> List[Signal]:
        signals = []
        for asset in assets:
            distance = asset.ath_change_percentage
            data = {"current_price": asset.price, "ath": asset.ath, "distance": distance}
            # thresholds are disjoint, so at most one fires per asset
            if distance > NEAR_ATH_THRESHOLD:
                signals.append(Signal(
                    kind=SignalKind.SUPPORT_RESISTANCE,
                    severity=Severity.HIGH,
                    symbol=asset.symbol.upper(),
                    message=f"Approaching ATH: Only {abs(distance):.2f}% away from all-time high",
                    timestamp=as_of,
                    data=data,
                ))
            elif distance < DEEP_CORRECTION_THRESHOLD:
                signals.append(Signal(
                    kind=SignalKind.SUPPORT_RESISTANCE,
                    severity=Severity.MEDIUM,
                    symbol=asset.symbol.upper(),
                    message=f"Deep correction: {abs(distance):.2f}% below ATH",
                    timestamp=as_of,
                    data=data,
                ))
        return signals
