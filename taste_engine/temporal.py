"""
Temporal listening context and learned per-context preferences.
"""

import time
from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, Optional, Any

from .config import TemporalConfig, DEFAULT_TEMPORAL_CONFIG
from .features import FeatureVector


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def day_type(moment: datetime) -> str:
    # Monday == 0 ... Sunday == 6
    return "weekend" if moment.weekday() >= 5 else "weekday"


def season(month: int) -> str:
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "fall"
    return "winter"


def time_context(when: Optional[float] = None) -> str:
    """
    Context key `{timeOfDay}_{weekday|weekend}_{season}` for a timestamp.

    Args:
        when: Unix timestamp in seconds (defaults to now, local time)
    """
    moment = datetime.fromtimestamp(time.time() if when is None else when)
    return f"{time_of_day(moment.hour)}_{day_type(moment)}_{season(moment.month)}"


@dataclass
class TemporalPreference:
    """Learned feature preferences for one time context."""
    time_context: str
    preferences: Dict[str, float] = field(default_factory=dict)
    last_updated: float = 0.0
    weight: float = DEFAULT_TEMPORAL_CONFIG.initial_weight

    def update(
        self,
        features: FeatureVector,
        when: Optional[float] = None,
        config: TemporalConfig = DEFAULT_TEMPORAL_CONFIG
    ) -> None:
        """Fold one observation in with an exponential moving average."""
        for name in config.learned_features:
            current = self.preferences.get(name, 0.5)
            observed = float(features.get(name))
            self.preferences[name] = (1 - config.decay) * current + config.decay * observed

        self.last_updated = time.time() if when is None else when
        self.weight = min(self.weight + config.weight_step, config.max_weight)

    def influence(self, config: TemporalConfig = DEFAULT_TEMPORAL_CONFIG) -> float:
        return min(self.weight / 2.0, config.max_influence)

    def is_confident(self, config: TemporalConfig = DEFAULT_TEMPORAL_CONFIG) -> bool:
        return self.weight > config.min_confident_weight

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_context": self.time_context,
            "preferences": dict(self.preferences),
            "last_updated": self.last_updated,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemporalPreference":
        return cls(
            time_context=data["time_context"],
            preferences={k: float(v) for k, v in (data.get("preferences") or {}).items()},
            last_updated=float(data.get("last_updated") or 0.0),
            weight=float(data.get("weight", DEFAULT_TEMPORAL_CONFIG.initial_weight)),
        )
