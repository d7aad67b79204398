"""
Feature Synthesizer
===================

Generates pseudo-acoustic features from track metadata, since audio analysis
is not available. Steps, applied in order to a neutral starting vector:

    1. Genre blending    - average toward each matching genre template
    2. Title heuristics  - keyword rules on the track name
    3. Duration          - very short / very long tracks
    4. Popularity        - very popular / niche tracks
    5. Jitter            - small random spread so shared templates don't tie

Every step clamps its output. The result is cached by track id in the
engine's feature cache, so jitter is drawn once per track.
"""

import random
import logging
from typing import List, Dict, Optional, Iterable, Sequence, Tuple

from .config import (
    GENRE_TEMPLATES,
    FALLBACK_GENRE,
    TITLE_RULES,
    SHORT_TRACK_MINUTES,
    SHORT_TRACK_ADJUSTMENTS,
    LONG_TRACK_MINUTES,
    LONG_TRACK_ADJUSTMENTS,
    POPULAR_THRESHOLD,
    POPULAR_ADJUSTMENTS,
    NICHE_THRESHOLD,
    NICHE_ADJUSTMENTS,
    TEMPO_RANGE,
    SynthesisConfig,
    DEFAULT_SYNTHESIS_CONFIG,
)
from .features import FeatureVector, Track, default_features
from .recommender import RecommendationEngine, TrackWithFeatures
from .spotify_client import CatalogClient


logger = logging.getLogger(__name__)

Adjustment = Tuple[str, float, float]


def match_genre_template(genre: str) -> Tuple[str, Dict[str, float]]:
    """
    Find the template for a genre tag.

    The first table entry that is a substring of the tag (or contains it)
    wins; unmatched tags get the fallback template.
    """
    normalized = genre.lower()
    for name, template in GENRE_TEMPLATES.items():
        if name == FALLBACK_GENRE:
            continue
        if name in normalized or normalized in name:
            return name, template
    return FALLBACK_GENRE, GENRE_TEMPLATES[FALLBACK_GENRE]


def apply_adjustments(features: FeatureVector, adjustments: Sequence[Adjustment]) -> FeatureVector:
    """Apply (feature, delta, bound) rules; the bound caps increments and floors decrements."""
    changes = {}
    for name, delta, bound in adjustments:
        current = changes.get(name, features.get(name))
        if delta >= 0:
            changes[name] = min(bound, current + delta)
        else:
            changes[name] = max(bound, current + delta)
    return features.replace(**changes).clamped()


def apply_genre_templates(features: FeatureVector, genres: Iterable[str]) -> FeatureVector:
    """Blend toward each genre's template in turn: new = (old + template) / 2."""
    matched = 0
    for genre in genres:
        if not genre:
            continue
        name, template = match_genre_template(genre)
        if name != FALLBACK_GENRE:
            matched += 1
        features = features.replace(**{
            key: (features.get(key) + value) / 2 for key, value in template.items()
        }).clamped()
    logger.debug("Applied %d genre templates", matched)
    return features


def apply_title_heuristics(features: FeatureVector, title: str) -> FeatureVector:
    name = (title or "").lower()
    for keywords, adjustments in TITLE_RULES:
        if any(word in name for word in keywords):
            features = apply_adjustments(features, adjustments)
    return features


def apply_duration_adjustments(features: FeatureVector, duration_ms: int) -> FeatureVector:
    minutes = duration_ms / 60000
    if minutes < SHORT_TRACK_MINUTES:
        return apply_adjustments(features, SHORT_TRACK_ADJUSTMENTS)
    if minutes > LONG_TRACK_MINUTES:
        return apply_adjustments(features, LONG_TRACK_ADJUSTMENTS)
    return features


def apply_popularity_adjustments(features: FeatureVector, popularity: int) -> FeatureVector:
    if popularity > POPULAR_THRESHOLD:
        return apply_adjustments(features, POPULAR_ADJUSTMENTS)
    if popularity < NICHE_THRESHOLD:
        return apply_adjustments(features, NICHE_ADJUSTMENTS)
    return features


def apply_jitter(
    features: FeatureVector,
    rng: random.Random,
    config: SynthesisConfig = DEFAULT_SYNTHESIS_CONFIG
) -> FeatureVector:
    """Uniform spread on energy/danceability/valence and tempo."""
    changes = {
        name: features.get(name) + (rng.random() - 0.5) * config.unit_jitter
        for name in ("energy", "danceability", "valence")
    }
    low, high = TEMPO_RANGE
    changes["tempo"] = max(low, min(high, features.tempo + (rng.random() - 0.5) * config.tempo_jitter))
    return features.replace(**changes).clamped()


class FeatureSynthesizer:
    """
    Turns track metadata into a FeatureVector.

    Results are cached in the engine's feature cache keyed by track id; a
    second call for the same id is a cache hit.
    """

    def __init__(
        self,
        engine: RecommendationEngine,
        client: Optional[CatalogClient] = None,
        config: SynthesisConfig = DEFAULT_SYNTHESIS_CONFIG,
    ):
        """
        Initialize synthesizer.

        Args:
            engine: Engine whose feature cache and library receive results
            client: Catalog client for genre lookup (metadata-only if None)
            config: Jitter configuration
        """
        self.engine = engine
        self.client = client
        self.config = config
        self.rng = random.Random(config.seed)

    def synthesize(self, track: Track, genres: Optional[List[str]] = None) -> FeatureVector:
        """
        Generate (or fetch cached) features for a track.

        Args:
            track: Track metadata
            genres: Genre tags for the track's artists; looked up through
                the catalog client when None

        Returns:
            FeatureVector for the track
        """
        cached = self.engine.get_cached_features(track.id)
        if cached is not None:
            return cached

        if genres is None:
            genres = self._lookup_genres(track)

        features = default_features(track.id).replace(duration_ms=track.duration_ms).clamped()
        if genres:
            features = apply_genre_templates(features, genres)
        features = apply_title_heuristics(features, track.name)
        features = apply_duration_adjustments(features, track.duration_ms)
        features = apply_popularity_adjustments(features, track.popularity)
        if self.config.jitter:
            features = apply_jitter(features, self.rng, self.config)

        self.engine.cache_features(track.id, features)
        logger.debug(
            "Synthesized %s: energy=%.2f danceability=%.2f valence=%.2f",
            track.name, features.energy, features.danceability, features.valence
        )
        return features

    def _lookup_genres(self, track: Track) -> List[str]:
        if self.client is None:
            return []
        by_artist = self.client.fetch_artist_genres(track.artist_ids)
        genres: List[str] = []
        for artist_id in track.artist_ids:
            for genre in by_artist.get(artist_id, []):
                if genre not in genres:
                    genres.append(genre)
        return genres

    def enrich(self, track: Track, genres: Optional[List[str]] = None) -> TrackWithFeatures:
        """Synthesize features and add the track to the engine's library."""
        if genres is None:
            genres = self._lookup_genres(track)
        entry = TrackWithFeatures(track=track, features=self.synthesize(track, genres), genres=genres)
        self.engine.add_track(entry)
        return entry

    def enrich_many(self, tracks: Iterable[Track]) -> List[TrackWithFeatures]:
        """Batch genre lookup for all artists first, then enrich each track."""
        tracks = list(tracks)
        if self.client is not None:
            artist_ids = [a for t in tracks for a in t.artist_ids]
            self.client.fetch_artist_genres(artist_ids)

        entries = []
        for track in tracks:
            genres = self.client.cached_genres(track.artist_ids) if self.client else []
            entries.append(self.enrich(track, genres))
        return entries

    def features_for_ids(self, track_ids: Iterable[str]) -> Dict[str, FeatureVector]:
        """
        Features for bare track ids: cached where known, neutral defaults
        (also cached) where no metadata is available.
        """
        results = {}
        for track_id in track_ids:
            features = self.engine.get_cached_features(track_id)
            if features is None:
                features = default_features(track_id)
                self.engine.cache_features(track_id, features)
            results[track_id] = features
        return results
