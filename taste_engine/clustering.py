"""
Taste Clustering
================

Partitions analyzed tracks into named taste clusters with a priority-ordered
decision list (first matching rule wins, `Mixed Vibes` otherwise), and
provides the track-level similarity used across clusters:

    S_track = 0.7 × S_features + 0.3 × genre_overlap

Also home to the two other rule tables evaluated over feature vectors: the
mood table and the genre-priority table used by the music profile.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple, Callable, NamedTuple, Any, Iterable

from .config import (
    FALLBACK_CLUSTER,
    TRACK_FEATURE_WEIGHT,
    TRACK_GENRE_WEIGHT,
    MATCHED_FEATURE_THRESHOLD,
    MATCHED_TEMPO_THRESHOLD,
    MATCHED_GENRE_THRESHOLD,
    SIMILAR_SONG_THRESHOLD,
    CROSS_CLUSTER_THRESHOLD,
    MAX_SIMILAR_SONGS,
    MAX_DOMINANT_GENRES,
    MAX_GENRE_DISTRIBUTION,
    MOOD_DEFINITIONS,
    GENRE_PRIORITY,
    DEFAULT_GENRE_PRIORITY,
    HIGH_ENERGY_PROFILE,
    CHILL_PROFILE,
    ACOUSTIC_PROFILE,
    ELECTRONIC_PROFILE,
    SimilarityWeights,
    DEFAULT_SIMILARITY_WEIGHTS,
)
from .features import FeatureVector, Track, centroid
from .scoring import feature_similarity


class ClusterRule(NamedTuple):
    name: str
    priority: int
    predicate: Callable[[FeatureVector], bool]
    icon: str = ""


# Checked highest priority first
CLUSTER_RULES: List[ClusterRule] = sorted([
    ClusterRule("High Energy Bangers", 10, lambda f: f.energy > 0.75 and f.danceability > 0.65, "⚡"),
    ClusterRule("Dance Floor Hits", 9, lambda f: f.danceability > 0.75 and f.energy > 0.5, "💃"),
    ClusterRule("Uplifting Anthems", 8, lambda f: f.valence > 0.65 and f.energy > 0.55, "☀️"),
    ClusterRule("Electronic Beats", 7, lambda f: f.acousticness < 0.25 and f.energy > 0.5, "🎹"),
    ClusterRule("Chill Vibes", 6, lambda f: f.energy < 0.45 and f.valence > 0.45, "🌙"),
    ClusterRule("Melancholic Moods", 5, lambda f: f.valence < 0.4 and f.energy < 0.55, "💜"),
    ClusterRule("Acoustic Sessions", 4, lambda f: f.acousticness > 0.55, "🎸"),
    ClusterRule("Instrumental Focus", 3, lambda f: f.instrumentalness > 0.4, "🎼"),
    ClusterRule("Vocal & Lyrical", 2, lambda f: f.speechiness > 0.15 and f.instrumentalness < 0.3, "🎤"),
    ClusterRule("Moderate Energy", 1, lambda f: 0.45 <= f.energy <= 0.65, "🎵"),
], key=lambda rule: rule.priority, reverse=True)

CLUSTER_PRIORITY = {rule.name: rule.priority for rule in CLUSTER_RULES}
CLUSTER_PRIORITY[FALLBACK_CLUSTER] = 0
CLUSTER_ICONS = {rule.name: rule.icon for rule in CLUSTER_RULES}
CLUSTER_ICONS[FALLBACK_CLUSTER] = "🎶"


@dataclass
class AnalyzedTrack:
    """A track, its features, its artists' genres and its cluster."""
    track: Track
    features: FeatureVector
    genres: List[str] = field(default_factory=list)
    cluster: Optional[str] = None

    @property
    def id(self) -> str:
        return self.track.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track": self.track.to_dict(),
            "features": self.features.to_dict(),
            "genres": list(self.genres),
            "cluster": self.cluster,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyzedTrack":
        return cls(
            track=Track.from_dict(data["track"]),
            features=FeatureVector.from_dict(data["features"]),
            genres=list(data.get("genres") or []),
            cluster=data.get("cluster"),
        )


@dataclass
class MusicCluster:
    name: str
    description: str
    tracks: List[AnalyzedTrack]
    centroid: FeatureVector
    dominant_genres: List[str] = field(default_factory=list)
    # Member count before any truncation for storage
    full_track_count: Optional[int] = None

    @property
    def track_count(self) -> int:
        return self.full_track_count if self.full_track_count is not None else len(self.tracks)

    @property
    def icon(self) -> str:
        return CLUSTER_ICONS.get(self.name, "")

    def to_dict(self, max_tracks: Optional[int] = None) -> Dict[str, Any]:
        tracks = self.tracks if max_tracks is None else self.tracks[:max_tracks]
        return {
            "name": self.name,
            "description": self.description,
            "tracks": [t.to_dict() for t in tracks],
            "centroid": self.centroid.to_dict(),
            "dominant_genres": list(self.dominant_genres),
            "full_track_count": self.track_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MusicCluster":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            tracks=[AnalyzedTrack.from_dict(t) for t in data.get("tracks") or []],
            centroid=FeatureVector.from_dict(data["centroid"]),
            dominant_genres=list(data.get("dominant_genres") or []),
            full_track_count=data.get("full_track_count"),
        )


@dataclass
class SimilarSongResult:
    track: Track
    similarity: float
    reasons: List[str] = field(default_factory=list)
    matched_features: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track": self.track.to_dict(),
            "similarity": self.similarity,
            "reasons": list(self.reasons),
            "matched_features": list(self.matched_features),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimilarSongResult":
        return cls(
            track=Track.from_dict(data["track"]),
            similarity=float(data["similarity"]),
            reasons=list(data.get("reasons") or []),
            matched_features=list(data.get("matched_features") or []),
        )


# =============================================================================
# CLUSTER ASSIGNMENT
# =============================================================================

def assign_cluster(features: FeatureVector) -> str:
    """Name of the highest-priority rule the features satisfy."""
    for rule in CLUSTER_RULES:
        if rule.predicate(features):
            return rule.name
    return FALLBACK_CLUSTER


def dominant_genres(tracks: Iterable[AnalyzedTrack], limit: int = MAX_DOMINANT_GENRES) -> List[str]:
    counts = Counter()
    for track in tracks:
        counts.update(track.genres)
    return [genre for genre, _ in counts.most_common(limit)]


def describe_centroid(center: FeatureVector) -> str:
    parts = []

    if center.energy > 0.7:
        parts.append("high energy")
    elif center.energy < 0.4:
        parts.append("relaxed")

    if center.valence > 0.7:
        parts.append("upbeat")
    elif center.valence < 0.4:
        parts.append("moody")

    if center.danceability > 0.7:
        parts.append("danceable")

    if center.acousticness > 0.6:
        parts.append("acoustic")
    elif center.acousticness < 0.3:
        parts.append("electronic")

    if not parts:
        return "A balanced mix of tracks"
    return f"{', '.join(parts)} tracks"


def cluster_tracks(tracks: Iterable[AnalyzedTrack]) -> List[MusicCluster]:
    """
    Partition tracks into named clusters.

    Every track lands in exactly one cluster (its `cluster` attribute is
    set accordingly). Clusters are ordered by size, then rule priority.

    Args:
        tracks: Analyzed tracks

    Returns:
        Non-empty clusters with centroids and dominant genres
    """
    groups: Dict[str, List[AnalyzedTrack]] = {}
    for track in tracks:
        name = assign_cluster(track.features)
        track.cluster = name
        groups.setdefault(name, []).append(track)

    clusters = []
    for name, members in groups.items():
        center = centroid((t.features for t in members), centroid_id=f"centroid:{name}")
        clusters.append(MusicCluster(
            name=name,
            description=describe_centroid(center),
            tracks=members,
            centroid=center,
            dominant_genres=dominant_genres(members),
        ))

    clusters.sort(key=lambda c: (len(c.tracks), CLUSTER_PRIORITY.get(c.name, 0)), reverse=True)
    return clusters


# =============================================================================
# TRACK SIMILARITY
# =============================================================================

def genre_overlap(genres1: Iterable[str], genres2: Iterable[str]) -> float:
    """
    Exact matches count 1, substring (partial) matches count 0.5,
    normalized by the larger genre set.
    """
    set1 = {g.lower() for g in genres1}
    set2 = {g.lower() for g in genres2}
    if not set1 or not set2:
        return 0.0

    overlap = 0.0
    for g1 in set1:
        if g1 in set2:
            overlap += 1
        for g2 in set2:
            if g1 != g2 and (g1 in g2 or g2 in g1):
                overlap += 0.5

    return min(1.0, overlap / max(len(set1), len(set2)))


def track_similarity(
    a: AnalyzedTrack,
    b: AnalyzedTrack,
    weights: SimilarityWeights = DEFAULT_SIMILARITY_WEIGHTS
) -> Tuple[float, List[str]]:
    """
    Similarity of two analyzed tracks and the features they match on.

    Returns:
        Tuple of (similarity, matched feature tags)
    """
    fa, fb = a.features, b.features
    matched = []

    if abs(fa.energy - fb.energy) < MATCHED_FEATURE_THRESHOLD:
        matched.append("energy")
    if abs(fa.valence - fb.valence) < MATCHED_FEATURE_THRESHOLD:
        matched.append("mood")
    if abs(fa.danceability - fb.danceability) < MATCHED_FEATURE_THRESHOLD:
        matched.append("danceability")
    if abs(fa.acousticness - fb.acousticness) < MATCHED_FEATURE_THRESHOLD:
        matched.append("acousticness")
    if abs(fa.tempo - fb.tempo) < MATCHED_TEMPO_THRESHOLD:
        matched.append("tempo")

    overlap = genre_overlap(a.genres, b.genres)
    if overlap > MATCHED_GENRE_THRESHOLD:
        matched.append("genre")

    similarity = feature_similarity(fa, fb, weights) * TRACK_FEATURE_WEIGHT + overlap * TRACK_GENRE_WEIGHT
    return similarity, matched


MATCH_REASONS = [
    ("energy", "Similar energy level"),
    ("mood", "Similar mood/vibe"),
    ("danceability", "Similar danceability"),
    ("genre", "Shared genres"),
    ("tempo", "Similar tempo"),
    ("acousticness", "Similar acoustic feel"),
]


def find_similar_songs(
    target: AnalyzedTrack,
    candidates: Iterable[AnalyzedTrack],
    limit: int = 10,
    threshold: float = SIMILAR_SONG_THRESHOLD
) -> List[SimilarSongResult]:
    """Candidates more similar than `threshold` to the target, best first."""
    results = []
    for candidate in candidates:
        if candidate.id == target.id:
            continue
        similarity, matched = track_similarity(target, candidate)
        if similarity > threshold:
            reasons = [reason for tag, reason in MATCH_REASONS if tag in matched]
            results.append(SimilarSongResult(candidate.track, similarity, reasons, matched))

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[:limit]


def cross_cluster_similar_songs(
    clusters: List[MusicCluster],
    tracks: List[AnalyzedTrack],
    limit: int = MAX_SIMILAR_SONGS
) -> List[SimilarSongResult]:
    """
    Tracks that sound like a cluster they were not assigned to.

    Each cluster is represented by a synthetic track (centroid features,
    dominant genres) and scored against every track outside it.
    """
    best: Dict[str, SimilarSongResult] = {}

    for cluster in clusters:
        member_ids = {t.id for t in cluster.tracks}
        representative = AnalyzedTrack(
            track=Track(id="centroid", name="Centroid"),
            features=cluster.centroid,
            genres=cluster.dominant_genres,
        )

        for track in tracks:
            if track.id in member_ids:
                continue
            similarity, matched = track_similarity(representative, track)
            if similarity <= CROSS_CLUSTER_THRESHOLD:
                continue
            existing = best.get(track.id)
            if existing is None or existing.similarity < similarity:
                reasons = [f'Similar to "{cluster.name}" cluster']
                reasons.extend(f"Matched {tag}" for tag in matched)
                best[track.id] = SimilarSongResult(track.track, similarity, reasons, matched)

    results = sorted(best.values(), key=lambda r: r.similarity, reverse=True)
    return results[:limit]


# =============================================================================
# MOOD TABLE
# =============================================================================

def _condition_results(features: FeatureVector, conditions: Dict[str, float]) -> List[bool]:
    results = []
    for key, bound in conditions.items():
        kind, _, feature = key.partition("_")
        value = features.get(feature)
        results.append(value >= bound if kind == "min" else value <= bound)
    return results


def match_mood(features: FeatureVector) -> Optional[str]:
    """First mood whose every condition holds, or None."""
    for mood, conditions in MOOD_DEFINITIONS:
        if all(_condition_results(features, conditions)):
            return mood
    return None


def mood_match_score(features: FeatureVector, mood: str) -> Optional[float]:
    """Fraction of the mood's conditions satisfied (None for unknown moods)."""
    for name, conditions in MOOD_DEFINITIONS:
        if name == mood:
            results = _condition_results(features, conditions)
            return sum(results) / len(results) if results else 0.0
    return None


def _percent(count: int, total: int) -> int:
    """Whole percentage, halves rounded up."""
    return int(count / total * 100 + 0.5)


def mood_distribution(tracks: Iterable[AnalyzedTrack]) -> List[Dict[str, Any]]:
    counts = Counter()
    for track in tracks:
        mood = match_mood(track.features)
        if mood:
            counts[mood] += 1

    total = sum(counts.values()) or 1
    distribution = [
        {"mood": mood, "percentage": _percent(count, total)}
        for mood, count in counts.items()
    ]
    distribution.sort(key=lambda d: d["percentage"], reverse=True)
    return distribution


# =============================================================================
# GENRE & PROFILE
# =============================================================================

def top_genre(genres: List[str]) -> Optional[str]:
    """The single highest-priority genre; earlier genres win ties."""
    if not genres:
        return None
    best = genres[0]
    best_priority = GENRE_PRIORITY.get(best.lower(), DEFAULT_GENRE_PRIORITY)
    for genre in genres[1:]:
        priority = GENRE_PRIORITY.get(genre.lower(), DEFAULT_GENRE_PRIORITY)
        if priority > best_priority:
            best, best_priority = genre, priority
    return best


def genre_distribution(
    tracks: List[AnalyzedTrack],
    limit: Optional[int] = MAX_GENRE_DISTRIBUTION
) -> List[Dict[str, Any]]:
    """
    Genre shares with exactly one genre counted per track.

    Percentages are relative to the number of tracks.
    """
    counts = Counter()
    for track in tracks:
        genre = top_genre(track.genres)
        if genre:
            counts[genre] += 1

    total = len(tracks) or 1
    distribution = [
        {"genre": genre, "count": count, "percentage": _percent(count, total)}
        for genre, count in counts.most_common()
    ]
    return distribution[:limit] if limit is not None else distribution


def energy_profile(average: FeatureVector) -> str:
    if average.energy > HIGH_ENERGY_PROFILE:
        return "high-energy"
    if average.energy < CHILL_PROFILE:
        return "chill"
    return "balanced"


def acoustic_profile(average: FeatureVector) -> str:
    if average.acousticness > ACOUSTIC_PROFILE:
        return "acoustic"
    if average.acousticness < ELECTRONIC_PROFILE:
        return "electronic"
    return "mixed"
