"""
Track & Feature Data Types
==========================

Track metadata and the 13-dimensional pseudo-acoustic feature vector the
rest of the engine works on, plus the vector arithmetic shared by the
engine and the discovery service:

    1. Clamping every feature to its documented range
    2. Centroids (per-feature arithmetic mean)
    3. Weighted Euclidean distance over the mood-bearing features
"""

from dataclasses import dataclass, field, fields, asdict, replace
from typing import List, Dict, Optional, Any, Iterable, Sequence

import numpy as np
from scipy.spatial import distance

from .config import (
    UNIT_FEATURES,
    TEMPO_RANGE,
    DEFAULT_FEATURE_VALUES,
    DISTANCE_WEIGHTS,
    DEFAULT_POPULARITY,
)


@dataclass
class Artist:
    id: str
    name: str = ""


@dataclass
class Track:
    """Catalog track metadata (no audio)."""
    id: str
    name: str = ""
    artists: List[Artist] = field(default_factory=list)
    duration_ms: int = 0
    popularity: int = DEFAULT_POPULARITY
    album_id: Optional[str] = None
    album_name: Optional[str] = None
    uri: Optional[str] = None

    @property
    def artist_ids(self) -> List[str]:
        return [a.id for a in self.artists if a.id]

    @property
    def artist_names(self) -> List[str]:
        return [a.name for a in self.artists]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """
        Build a track from a catalog track object.

        Args:
            data: Track dictionary as returned by the Spotify Web API

        Returns:
            Track instance
        """
        album = data.get("album") or {}
        popularity = data.get("popularity")
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            artists=[
                Artist(id=a.get("id") or "", name=a.get("name") or "")
                for a in data.get("artists") or []
            ],
            duration_ms=int(data.get("duration_ms") or 0),
            # A missing (or zero) popularity is treated as average
            popularity=int(popularity) if popularity else DEFAULT_POPULARITY,
            album_id=album.get("id"),
            album_name=album.get("name"),
            uri=data.get("uri"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artists": [{"id": a.id, "name": a.name} for a in self.artists],
            "duration_ms": self.duration_ms,
            "popularity": self.popularity,
            "album": {"id": self.album_id, "name": self.album_name},
            "uri": self.uri,
        }


@dataclass(frozen=True)
class FeatureVector:
    """
    Synthesized pseudo-acoustic descriptor for one track.

    Immutable once created; every "mutation" goes through replace().
    """
    id: str = ""
    acousticness: float = DEFAULT_FEATURE_VALUES["acousticness"]
    danceability: float = DEFAULT_FEATURE_VALUES["danceability"]
    energy: float = DEFAULT_FEATURE_VALUES["energy"]
    instrumentalness: float = DEFAULT_FEATURE_VALUES["instrumentalness"]
    liveness: float = DEFAULT_FEATURE_VALUES["liveness"]
    speechiness: float = DEFAULT_FEATURE_VALUES["speechiness"]
    valence: float = DEFAULT_FEATURE_VALUES["valence"]
    key: int = DEFAULT_FEATURE_VALUES["key"]
    mode: int = DEFAULT_FEATURE_VALUES["mode"]
    tempo: float = DEFAULT_FEATURE_VALUES["tempo"]
    loudness: float = DEFAULT_FEATURE_VALUES["loudness"]
    time_signature: int = DEFAULT_FEATURE_VALUES["time_signature"]
    duration_ms: int = DEFAULT_FEATURE_VALUES["duration_ms"]

    def get(self, name: str) -> float:
        return getattr(self, name)

    def replace(self, **changes) -> "FeatureVector":
        return replace(self, **changes)

    def clamped(self) -> "FeatureVector":
        """Return a copy with every feature inside its documented range."""
        changes = {name: _clip(self.get(name), 0.0, 1.0) for name in UNIT_FEATURES}
        changes["tempo"] = _clip(self.tempo, *TEMPO_RANGE)
        changes["loudness"] = min(float(self.loudness), 0.0)
        changes["key"] = int(self.key) % 12
        changes["mode"] = 1 if self.mode >= 1 else 0
        changes["time_signature"] = max(1, int(self.time_signature))
        changes["duration_ms"] = max(0, int(self.duration_ms))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureVector":
        """
        Build from a stored dict; unknown keys are ignored.

        Raises:
            TypeError: if `data` is not a dict
            ValueError: if a feature value is not a number
        """
        if not isinstance(data, dict):
            raise TypeError(f"Feature data must be a dict, got {type(data).__name__}")
        values = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "id":
                values["id"] = str(value)
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Feature {f.name} must be numeric, got {value!r}")
            else:
                values[f.name] = value
        return cls(**values)


NUMERIC_FIELDS = [f.name for f in fields(FeatureVector) if f.name != "id"]
INTEGER_FIELDS = ["key", "mode", "time_signature", "duration_ms"]


def _clip(value: float, low: float, high: float) -> float:
    return float(np.clip(value, low, high))


def default_features(track_id: str = "default") -> FeatureVector:
    """Neutral feature vector used before any heuristics are applied."""
    return FeatureVector(id=track_id)


def features_to_array(
    features: FeatureVector,
    names: Sequence[str] = NUMERIC_FIELDS
) -> np.ndarray:
    return np.array([float(features.get(n)) for n in names])


def centroid(vectors: Iterable[FeatureVector], centroid_id: str = "centroid") -> FeatureVector:
    """
    Per-feature arithmetic mean of a set of feature vectors.

    Integer-valued fields are rounded so the centroid is itself a valid
    FeatureVector.

    Args:
        vectors: Feature vectors to average (must be non-empty)
        centroid_id: Id given to the resulting vector

    Returns:
        Centroid FeatureVector
    """
    vectors = list(vectors)
    if not vectors:
        raise ValueError("Cannot compute the centroid of an empty set")

    matrix = np.array([features_to_array(v) for v in vectors])
    means = matrix.mean(axis=0)

    values: Dict[str, Any] = {}
    for name, value in zip(NUMERIC_FIELDS, means):
        if name in INTEGER_FIELDS:
            values[name] = int(round(float(value)))
        else:
            values[name] = float(value)
    return FeatureVector(id=centroid_id, **values)


def weighted_distance(
    a: FeatureVector,
    b: FeatureVector,
    weights: Dict[str, float] = DISTANCE_WEIGHTS
) -> float:
    """
    Weighted Euclidean distance: sqrt(sum((w * (a - b))^2)).

    Features outside `weights` do not contribute.
    """
    names = list(weights.keys())
    w = np.array([weights[n] for n in names])
    # scipy's weighted euclidean is sqrt(sum(w * d^2)), so square the weights
    return float(distance.euclidean(
        features_to_array(a, names),
        features_to_array(b, names),
        w ** 2,
    ))
