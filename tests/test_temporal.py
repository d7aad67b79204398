"""
Tests for time contexts and temporal preferences.
"""

from datetime import datetime

import pytest

from taste_engine.config import TemporalConfig
from taste_engine.temporal import (
    TemporalPreference,
    day_type,
    season,
    time_context,
    time_of_day,
)

from conftest import make_features


class TestTimeContext:
    """Tests for context derivation."""

    @pytest.mark.parametrize("hour,expected", [
        (6, "morning"),
        (11, "morning"),
        (12, "afternoon"),
        (17, "afternoon"),
        (18, "evening"),
        (21, "evening"),
        (22, "night"),
        (3, "night"),
    ])
    def test_time_of_day(self, hour, expected):
        assert time_of_day(hour) == expected

    def test_day_type(self):
        assert day_type(datetime(2024, 6, 1)) == "weekend"   # Saturday
        assert day_type(datetime(2024, 6, 2)) == "weekend"   # Sunday
        assert day_type(datetime(2024, 6, 3)) == "weekday"   # Monday

    @pytest.mark.parametrize("month,expected", [
        (3, "spring"), (5, "spring"),
        (6, "summer"), (8, "summer"),
        (9, "fall"), (11, "fall"),
        (12, "winter"), (1, "winter"), (2, "winter"),
    ])
    def test_season(self, month, expected):
        assert season(month) == expected

    def test_context_key(self):
        # Monday morning in January (local time)
        when = datetime(2024, 1, 8, 9, 30).timestamp()
        assert time_context(when) == "morning_weekday_winter"

    def test_weekend_summer_night(self):
        when = datetime(2024, 7, 6, 23, 0).timestamp()
        assert time_context(when) == "night_weekend_summer"


class TestTemporalPreference:
    """Tests for the EMA update and confidence weight."""

    def test_first_update_starts_from_neutral(self):
        pref = TemporalPreference("morning_weekday_winter", weight=1.0)

        pref.update(make_features(energy=0.9), when=100.0)

        assert pref.preferences["energy"] == pytest.approx(0.9 * 0.5 + 0.1 * 0.9)
        assert pref.weight == pytest.approx(1.1)
        assert pref.last_updated == 100.0

    def test_weight_is_capped(self):
        pref = TemporalPreference("ctx", weight=1.0)
        for _ in range(20):
            pref.update(make_features(), when=0.0)

        assert pref.weight == pytest.approx(2.0)

    def test_converges_toward_observations(self):
        pref = TemporalPreference("ctx")
        for _ in range(100):
            pref.update(make_features(valence=0.2), when=0.0)

        assert pref.preferences["valence"] == pytest.approx(0.2, abs=1e-3)

    def test_influence_is_capped(self):
        assert TemporalPreference("ctx", weight=1.0).influence() == pytest.approx(0.5)
        assert TemporalPreference("ctx", weight=2.0).influence() == pytest.approx(0.7)

    def test_confidence_threshold(self):
        assert not TemporalPreference("ctx", weight=0.5).is_confident()
        assert TemporalPreference("ctx", weight=0.6).is_confident()

    def test_custom_learned_features(self):
        pref = TemporalPreference("ctx")
        pref.update(make_features(), when=0.0, config=TemporalConfig(learned_features=["energy"]))

        assert set(pref.preferences) == {"energy"}

    def test_dict_round_trip(self):
        pref = TemporalPreference("ctx", {"energy": 0.7}, last_updated=5.0, weight=1.3)

        assert TemporalPreference.from_dict(pref.to_dict()) == pref
