"""
Local Discovery
===============

Surfaces interesting tracks from the user's own library in four categories:

    hidden-gem      outliers within their cluster (distance to centroid)
    mood-shift      tracks combining contrasting qualities
    genre-explorer  tracks whose genres are rare in the library
    perfect-match   tracks closest to the library's average profile

Each category is ranked and deduplicated on its own, capped, then merged
keeping the highest-scoring entry per track.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Dict, Any, Callable, NamedTuple

from .config import DiscoveryConfig, DEFAULT_DISCOVERY_CONFIG
from .clustering import AnalyzedTrack, MusicCluster
from .features import FeatureVector, Track, weighted_distance


HIDDEN_GEM = "hidden-gem"
MOOD_SHIFT = "mood-shift"
GENRE_EXPLORER = "genre-explorer"
PERFECT_MATCH = "perfect-match"

CATEGORIES = [HIDDEN_GEM, MOOD_SHIFT, GENRE_EXPLORER, PERFECT_MATCH]


@dataclass
class LocalDiscovery:
    track: Track
    discovery_score: float
    reasons: List[str] = field(default_factory=list)
    category: str = HIDDEN_GEM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track": self.track.to_dict(),
            "discovery_score": self.discovery_score,
            "reasons": list(self.reasons),
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalDiscovery":
        category = data.get("category", HIDDEN_GEM)
        if category not in CATEGORIES:
            raise ValueError(f"Unknown discovery category: {category}")
        return cls(
            track=Track.from_dict(data["track"]),
            discovery_score=float(data["discovery_score"]),
            reasons=list(data.get("reasons") or []),
            category=category,
        )


class ContrastRule(NamedTuple):
    predicate: Callable[[FeatureVector], bool]
    contrast: Callable[[FeatureVector], float]
    reason: str


MOOD_SHIFT_RULES = [
    ContrastRule(
        lambda f: f.energy > 0.4 and f.acousticness > 0.3,
        lambda f: (f.energy + f.acousticness) / 2,
        "Energy meets acoustic warmth",
    ),
    ContrastRule(
        lambda f: f.valence > 0.4 and f.instrumentalness > 0.2,
        lambda f: (f.valence + f.instrumentalness) / 2,
        "Uplifting instrumental vibes",
    ),
    ContrastRule(
        lambda f: f.danceability > 0.5 and f.acousticness > 0.4,
        lambda f: (f.danceability + f.acousticness) / 2,
        "Danceable with organic sound",
    ),
    ContrastRule(
        lambda f: f.energy > 0.6 and f.valence < 0.5,
        lambda f: (f.energy + (1 - f.valence)) / 2,
        "Energetic yet emotionally deep",
    ),
    ContrastRule(
        lambda f: f.danceability > 0.4 and f.speechiness > 0.05,
        lambda f: (f.danceability + f.speechiness) / 2,
        "Rhythmic with vocal presence",
    ),
    ContrastRule(
        lambda f: f.energy < 0.4 and f.valence > 0.6,
        lambda f: ((1 - f.energy) + f.valence) / 2,
        "Calm yet uplifting mood",
    ),
]


def find_hidden_gems(
    clusters: List[MusicCluster],
    config: DiscoveryConfig = DEFAULT_DISCOVERY_CONFIG
) -> List[LocalDiscovery]:
    gems = []
    for cluster in clusters:
        if len(cluster.tracks) < config.min_cluster_size:
            continue
        for track in cluster.tracks:
            distance = weighted_distance(track.features, cluster.centroid)
            if distance > config.outlier_distance:
                gems.append(LocalDiscovery(
                    track=track.track,
                    discovery_score=min(0.95, 0.6 + distance * 0.6),
                    reasons=[
                        f'Unique track in your "{cluster.name}" collection',
                        "Stands out from similar songs in your library",
                    ],
                    category=HIDDEN_GEM,
                ))
    return gems


def find_mood_shifters(
    tracks: List[AnalyzedTrack],
    config: DiscoveryConfig = DEFAULT_DISCOVERY_CONFIG
) -> List[LocalDiscovery]:
    shifters = []
    for track in tracks:
        f = track.features
        contrast = 0.0
        reasons = []
        for rule in MOOD_SHIFT_RULES:
            if rule.predicate(f):
                contrast += rule.contrast(f)
                reasons.append(rule.reason)

        if reasons and contrast > config.min_contrast:
            shifters.append(LocalDiscovery(
                track=track.track,
                discovery_score=min(0.95, 0.5 + contrast * 0.3),
                reasons=["Blends contrasting musical elements"] + reasons[:2],
                category=MOOD_SHIFT,
            ))
    return shifters


def genre_rarity(tracks: List[AnalyzedTrack]) -> Dict[str, float]:
    """1 - (occurrences of a genre / occurrences of all genres)."""
    counts = Counter()
    for track in tracks:
        counts.update(track.genres)
    total = sum(counts.values())
    if not total:
        return {}
    return {genre: 1 - count / total for genre, count in counts.items()}


def find_genre_explorers(
    tracks: List[AnalyzedTrack],
    config: DiscoveryConfig = DEFAULT_DISCOVERY_CONFIG
) -> List[LocalDiscovery]:
    rarity = genre_rarity(tracks)
    explorers = []
    for track in tracks:
        if not track.genres:
            continue
        average = sum(rarity.get(g, 0.0) for g in track.genres) / len(track.genres)
        if average <= config.min_rarity:
            continue

        rare = [g for g in track.genres if rarity.get(g, 0.0) > config.named_rarity][:2]
        if rare:
            headline = f"Explores {' & '.join(rare)} sounds"
        else:
            headline = f"Explores {track.genres[0] or 'unique'} sounds"

        explorers.append(LocalDiscovery(
            track=track.track,
            discovery_score=0.6 + average * 0.35,
            reasons=[headline, "Represents a rare genre in your collection"],
            category=GENRE_EXPLORER,
        ))
    return explorers


def find_perfect_matches(
    tracks: List[AnalyzedTrack],
    profile: FeatureVector,
    config: DiscoveryConfig = DEFAULT_DISCOVERY_CONFIG
) -> List[LocalDiscovery]:
    matches = []
    for track in tracks:
        distance = weighted_distance(track.features, profile)
        if distance < config.max_profile_distance:
            matches.append(LocalDiscovery(
                track=track.track,
                discovery_score=min(0.98, 0.7 + (config.max_profile_distance - distance) * 0.6),
                reasons=[
                    "Perfectly matches your music taste profile",
                    "Embodies your listening preferences",
                ],
                category=PERFECT_MATCH,
            ))
    return matches


def dedupe_and_limit(discoveries: List[LocalDiscovery], limit: int) -> List[LocalDiscovery]:
    """Best entry per track, highest score first, at most `limit`."""
    seen = set()
    result = []
    for discovery in sorted(discoveries, key=lambda d: d.discovery_score, reverse=True):
        if discovery.track.id in seen:
            continue
        seen.add(discovery.track.id)
        result.append(discovery)
    return result[:limit]


def generate_discoveries(
    tracks: List[AnalyzedTrack],
    clusters: List[MusicCluster],
    profile: FeatureVector,
    config: DiscoveryConfig = DEFAULT_DISCOVERY_CONFIG
) -> List[LocalDiscovery]:
    """
    Run all four categories and merge them.

    Args:
        tracks: All analyzed tracks
        clusters: Clusters built from those tracks
        profile: Average feature vector of the library
        config: Discovery thresholds

    Returns:
        One discovery per track at most, highest score first
    """
    categories = [
        find_hidden_gems(clusters, config),
        find_mood_shifters(tracks, config),
        find_genre_explorers(tracks, config),
        find_perfect_matches(tracks, profile, config),
    ]

    best: Dict[str, LocalDiscovery] = {}
    for discoveries in categories:
        for discovery in dedupe_and_limit(discoveries, config.per_category_limit):
            existing = best.get(discovery.track.id)
            if existing is None or discovery.discovery_score > existing.discovery_score:
                best[discovery.track.id] = discovery

    return sorted(best.values(), key=lambda d: d.discovery_score, reverse=True)
