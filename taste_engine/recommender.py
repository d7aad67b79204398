"""
Recommendation Engine
=====================

Session object holding one user's local state and the operations on it:

1. Feature cache (track id -> FeatureVector), never recomputed once cached
2. Track library (tracks with features) ranked by feature similarity
3. Seed-based recommendation with target overrides and range filters
4. Temporal preference learning from listening activity
5. Explicit load()/save() lifecycle against a keyed store

Usage:
    engine = RecommendationEngine(store)
    engine.load()
    recs = engine.recommend(["seed_id"], {"target_energy": 0.8}, limit=10)
"""

import time
import random
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Tuple, Union, Iterable

from .config import (
    OPTION_FEATURES,
    SimilarityWeights,
    DEFAULT_SIMILARITY_WEIGHTS,
    TemporalConfig,
    DEFAULT_TEMPORAL_CONFIG,
    KEY_FEATURES,
    KEY_TRACKS,
    KEY_PREFERENCES,
    KEY_TEMPORAL,
    KEY_HISTORY,
    SNAPSHOT_KEYS,
)
from .features import FeatureVector, Track, centroid
from .scoring import feature_similarity
from .storage import KeyValueStore, MemoryStore, load_json, save_json
from .temporal import TemporalPreference, time_context


logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class TrackWithFeatures:
    """A library entry: track metadata plus its synthesized features."""
    track: Track
    features: FeatureVector
    genres: List[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.track.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track": self.track.to_dict(),
            "features": self.features.to_dict(),
            "genres": list(self.genres),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackWithFeatures":
        return cls(
            track=Track.from_dict(data["track"]),
            features=FeatureVector.from_dict(data["features"]),
            genres=list(data.get("genres") or []),
        )


@dataclass
class RecommendationOptions:
    """
    Target values and range filters for recommendation.

    Built from flat `target_<feature>` / `min_<feature>` / `max_<feature>`
    keys, as the catalog's recommendation endpoint accepts them.
    """
    targets: Dict[str, float] = field(default_factory=dict)
    minimums: Dict[str, float] = field(default_factory=dict)
    maximums: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, float]]) -> "RecommendationOptions":
        parsed = cls()
        for key, value in (options or {}).items():
            if value is None:
                continue
            prefix, _, feature = key.partition("_")
            if feature not in OPTION_FEATURES:
                raise ValueError(f"Unknown recommendation option: {key}")
            if prefix == "target":
                parsed.targets[feature] = float(value)
            elif prefix == "min":
                parsed.minimums[feature] = float(value)
            elif prefix == "max":
                parsed.maximums[feature] = float(value)
            else:
                raise ValueError(f"Unknown recommendation option: {key}")
        return parsed

    def to_dict(self) -> Dict[str, float]:
        flat = {}
        flat.update({f"target_{k}": v for k, v in self.targets.items()})
        flat.update({f"min_{k}": v for k, v in self.minimums.items()})
        flat.update({f"max_{k}": v for k, v in self.maximums.items()})
        return flat

    def apply_targets(self, features: FeatureVector) -> FeatureVector:
        return features.replace(**self.targets) if self.targets else features

    def matches(self, features: FeatureVector) -> bool:
        for feature, low in self.minimums.items():
            if features.get(feature) < low:
                return False
        for feature, high in self.maximums.items():
            if features.get(feature) > high:
                return False
        return True


OptionsLike = Union[RecommendationOptions, Dict[str, float], None]


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected a number, got {value!r}")
    return float(value)


def _is_listening_event(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    timestamp = entry.get("timestamp")
    return isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool)


def _as_options(options: OptionsLike) -> RecommendationOptions:
    if isinstance(options, RecommendationOptions):
        return options
    return RecommendationOptions.from_dict(options)


class RecommendationEngine:
    """
    Local similarity & recommendation engine for one user session.

    Construct once per user context and pass it to collaborators.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        weights: SimilarityWeights = DEFAULT_SIMILARITY_WEIGHTS,
        temporal_config: TemporalConfig = DEFAULT_TEMPORAL_CONFIG,
        rng: Optional[random.Random] = None,
        clock=time.time,
    ):
        """
        Initialize recommendation engine.

        Args:
            store: Persistent keyed store (in-memory store if None)
            weights: Similarity weights
            temporal_config: Temporal preference learning configuration
            rng: Random source for the random-sample fallback
            clock: Returns the current Unix time in seconds
        """
        self.store = store if store is not None else MemoryStore()
        self.weights = weights
        self.temporal_config = temporal_config
        self.rng = rng or random.Random()
        self.clock = clock

        self.feature_cache: Dict[str, FeatureVector] = {}
        self.library: Dict[str, TrackWithFeatures] = {}
        self.user_preferences: Dict[str, float] = {}
        self.temporal_preferences: Dict[str, TemporalPreference] = {}
        self.listening_history: List[Dict[str, Any]] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def load(self) -> None:
        """Load persisted state. Corrupt entries are treated as empty."""
        features = load_json(self.store, KEY_FEATURES)
        if isinstance(features, dict):
            self.feature_cache = self._decode(features, FeatureVector.from_dict, KEY_FEATURES)

        tracks = load_json(self.store, KEY_TRACKS)
        if isinstance(tracks, dict):
            self.library = self._decode(tracks, TrackWithFeatures.from_dict, KEY_TRACKS)

        preferences = load_json(self.store, KEY_PREFERENCES)
        if isinstance(preferences, dict):
            self.user_preferences = self._decode(preferences, _as_number, KEY_PREFERENCES)

        temporal = load_json(self.store, KEY_TEMPORAL)
        if isinstance(temporal, dict):
            self.temporal_preferences = self._decode(
                temporal, TemporalPreference.from_dict, KEY_TEMPORAL
            )

        history = load_json(self.store, KEY_HISTORY)
        if isinstance(history, list):
            self.listening_history = [h for h in history if _is_listening_event(h)]
            dropped = len(history) - len(self.listening_history)
            if dropped:
                logger.warning("Skipping %d unreadable %s entries", dropped, KEY_HISTORY)
        self._prune_history()

        logger.debug(
            "Loaded engine state: %d features, %d tracks",
            len(self.feature_cache), len(self.library)
        )

    @staticmethod
    def _decode(raw: Dict[str, Any], decoder, key: str) -> Dict[str, Any]:
        decoded = {}
        for item_id, item in raw.items():
            try:
                decoded[item_id] = decoder(item)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping unreadable %s entry %s: %s", key, item_id, e)
        return decoded

    def save(self) -> None:
        """Persist state. Quota failures purge snapshot keys and retry once."""
        save_json(
            self.store, KEY_FEATURES,
            {k: v.to_dict() for k, v in self.feature_cache.items()},
            purge_keys=SNAPSHOT_KEYS,
        )
        save_json(
            self.store, KEY_TRACKS,
            {k: v.to_dict() for k, v in self.library.items()},
            purge_keys=SNAPSHOT_KEYS,
        )
        self._save_preferences()

    def _save_preferences(self) -> None:
        save_json(self.store, KEY_PREFERENCES, self.user_preferences, purge_keys=SNAPSHOT_KEYS)
        save_json(
            self.store, KEY_TEMPORAL,
            {k: v.to_dict() for k, v in self.temporal_preferences.items()},
            purge_keys=SNAPSHOT_KEYS,
        )
        save_json(self.store, KEY_HISTORY, self.listening_history, purge_keys=SNAPSHOT_KEYS)

    # =========================================================================
    # FEATURE CACHE & LIBRARY
    # =========================================================================

    def cache_features(self, track_id: str, features: FeatureVector) -> None:
        self.feature_cache[track_id] = features

    def get_cached_features(self, track_id: str) -> Optional[FeatureVector]:
        return self.feature_cache.get(track_id)

    def add_track(self, entry: TrackWithFeatures) -> None:
        """Add a track to the library (and its features to the cache)."""
        self.library[entry.id] = entry
        self.cache_features(entry.id, entry.features)

    def get_track(self, track_id: str) -> Optional[TrackWithFeatures]:
        return self.library.get(track_id)

    # =========================================================================
    # SIMILARITY
    # =========================================================================

    def similarity(self, a: FeatureVector, b: FeatureVector) -> float:
        return feature_similarity(a, b, self.weights)

    def rank_library(self, target: FeatureVector) -> List[Tuple[TrackWithFeatures, float]]:
        """All library tracks with their similarity to `target`, best first."""
        scored = [(entry, self.similarity(target, entry.features)) for entry in self.library.values()]
        scored.sort(key=lambda x: x[1], reverse=True)
        return scored

    def find_similar_tracks(self, target: FeatureVector, limit: int = 10) -> List[TrackWithFeatures]:
        return [entry for entry, _ in self.rank_library(target)[:limit]]

    # =========================================================================
    # RECOMMENDATION
    # =========================================================================

    def recommend(
        self,
        seed_track_ids: Iterable[str],
        options: OptionsLike = None,
        limit: int = 20
    ) -> List[TrackWithFeatures]:
        """
        Recommend library tracks similar to a set of seeds.

        The seeds' features are averaged, explicit `target_*` options
        override that average, the library is ranked against the result,
        `min_*`/`max_*` filters are applied and the seeds excluded.

        Args:
            seed_track_ids: Seed track IDs (resolved through the feature cache)
            options: RecommendationOptions or flat option dict
            limit: Maximum tracks to return

        Returns:
            Recommended tracks, or a random sample when no seed resolves
        """
        opts = _as_options(options)
        seed_ids = list(seed_track_ids)

        seed_features = [
            f for f in (self.get_cached_features(tid) for tid in seed_ids) if f is not None
        ]
        if not seed_features:
            return self.random_tracks(limit)

        target = opts.apply_targets(centroid(seed_features, centroid_id="average"))

        excluded = set(seed_ids)
        results = []
        for entry, _ in self.rank_library(target):
            if entry.id in excluded or not opts.matches(entry.features):
                continue
            results.append(entry)
            if len(results) >= limit:
                break
        return results

    def random_tracks(self, limit: int) -> List[TrackWithFeatures]:
        tracks = list(self.library.values())
        return self.rng.sample(tracks, min(limit, len(tracks)))

    # =========================================================================
    # USER PREFERENCES
    # =========================================================================

    def update_user_preferences(self, feature: str, value: float, weight: float = 1.0) -> None:
        """Weighted running blend of an explicit preference signal."""
        current = self.user_preferences.get(feature, 0.0)
        self.user_preferences[feature] = (current + value * weight) / (1 + weight)
        self._save_preferences()

    def get_user_preferences(self) -> Dict[str, float]:
        return dict(self.user_preferences)

    # =========================================================================
    # TEMPORAL LEARNING
    # =========================================================================

    def record_listening(
        self,
        track_id: str,
        features: Optional[FeatureVector] = None,
        when: Optional[float] = None
    ) -> str:
        """
        Record a listening event and learn from it.

        Args:
            track_id: Track that was played
            features: Its features (the feature cache is consulted if None)
            when: Unix timestamp (defaults to now)

        Returns:
            The time context the event was filed under
        """
        now = self.clock() if when is None else when
        context = time_context(now)

        self.listening_history.append({
            "track_id": track_id,
            "timestamp": now,
            "context": context,
        })
        self._prune_history(now)

        features = features or self.get_cached_features(track_id)
        if features is not None:
            preference = self.temporal_preferences.get(context)
            if preference is None:
                preference = TemporalPreference(
                    time_context=context,
                    weight=self.temporal_config.initial_weight,
                )
                self.temporal_preferences[context] = preference
            preference.update(features, now, self.temporal_config)

        self._save_preferences()
        return context

    def _prune_history(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        cutoff = now - self.temporal_config.history_days * SECONDS_PER_DAY
        self.listening_history = [
            h for h in self.listening_history if float(h.get("timestamp", 0)) > cutoff
        ]

    def contextual_options(
        self,
        options: OptionsLike = None,
        when: Optional[float] = None
    ) -> RecommendationOptions:
        """
        Blend the current context's learned preferences into unset targets.

        Contexts whose confidence weight is not above the configured minimum
        are ignored.
        """
        opts = _as_options(options)
        now = self.clock() if when is None else when
        preference = self.temporal_preferences.get(time_context(now))

        if preference is None or not preference.is_confident(self.temporal_config):
            return opts

        influence = preference.influence(self.temporal_config)
        blended = RecommendationOptions(
            targets=dict(opts.targets),
            minimums=dict(opts.minimums),
            maximums=dict(opts.maximums),
        )
        for feature in self.temporal_config.contextual_targets:
            if feature in blended.targets or feature not in preference.preferences:
                continue
            blended.targets[feature] = (
                preference.preferences[feature] * influence + 0.5 * (1 - influence)
            )
        return blended

    def contextual_recommendations(
        self,
        options: OptionsLike = None,
        limit: int = 20,
        seed_track_ids: Iterable[str] = (),
        when: Optional[float] = None
    ) -> List[TrackWithFeatures]:
        return self.recommend(seed_track_ids, self.contextual_options(options, when), limit)

    def temporal_insights(self) -> Dict[str, Any]:
        """Summarize listening patterns per time context."""
        context_counts = Counter(h["context"] for h in self.listening_history if "context" in h)

        week_counts: Counter = Counter()
        season_counts: Counter = Counter()
        for context, count in context_counts.items():
            parts = context.split("_")
            if len(parts) == 3:
                week_counts[parts[1]] += count
                season_counts[parts[2]] += count

        return {
            "total_sessions": len(self.listening_history),
            "contexts": dict(context_counts),
            "patterns": {
                "most_active_time": context_counts.most_common(1)[0][0] if context_counts else "",
                "preferred_week_type": week_counts.most_common(1)[0][0] if week_counts else "",
                "seasonal_trends": dict(season_counts),
            },
            "temporal_preferences": {
                k: v.to_dict() for k, v in self.temporal_preferences.items()
            },
        }

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def cache_stats(self) -> Dict[str, int]:
        return {
            "audio_features_count": len(self.feature_cache),
            "track_library_count": len(self.library),
            "user_preferences_count": len(self.user_preferences),
            "temporal_preferences_count": len(self.temporal_preferences),
            "listening_history_count": len(self.listening_history),
        }

    def clear_cache(self) -> None:
        """Drop cached features, the library and explicit preferences."""
        self.feature_cache.clear()
        self.library.clear()
        self.user_preferences.clear()
        for key in (KEY_FEATURES, KEY_TRACKS, KEY_PREFERENCES):
            self.store.delete(key)

    def export_data(self) -> Dict[str, Any]:
        return {
            "audio_features": {k: v.to_dict() for k, v in self.feature_cache.items()},
            "tracks": {k: v.to_dict() for k, v in self.library.items()},
            "preferences": dict(self.user_preferences),
        }

    def import_data(self, data: Dict[str, Any]) -> None:
        if data.get("audio_features"):
            self.feature_cache = self._decode(
                data["audio_features"], FeatureVector.from_dict, "audio_features"
            )
        if data.get("tracks"):
            self.library = self._decode(data["tracks"], TrackWithFeatures.from_dict, "tracks")
        if data.get("preferences"):
            self.user_preferences = self._decode(data["preferences"], _as_number, "preferences")
        self.save()
