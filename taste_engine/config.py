"""
Configuration and constants for the Taste Engine.

Everything here is hand-authored tuning data: genre templates, title
heuristics, similarity weights, cluster and mood rule thresholds and
storage limits. Rule *logic* lives in the modules that evaluate it.
"""
import os
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

# =============================================================================
# ENVIRONMENT
# =============================================================================
ENV_ACCESS_TOKEN = "SPOTIFY_ACCESS_TOKEN"
ENV_HOME = "TASTE_ENGINE_HOME"
ENV_QUOTA = "TASTE_ENGINE_QUOTA_BYTES"
ENV_LOG_LEVEL = "TASTE_ENGINE_LOG_LEVEL"

DEFAULT_HOME = os.path.join(os.path.expanduser("~"), ".taste_engine")
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024  # typical browser local-storage quota


def get_home_dir() -> str:
    """Store directory, read at runtime (not import time)."""
    return os.environ.get(ENV_HOME) or DEFAULT_HOME


def get_quota_bytes() -> int:
    raw = os.environ.get(ENV_QUOTA)
    if not raw:
        return DEFAULT_QUOTA_BYTES
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_QUOTA_BYTES


# =============================================================================
# FEATURE CONFIGURATION
# =============================================================================
# Features bounded to [0, 1]
UNIT_FEATURES = [
    "acousticness",
    "danceability",
    "energy",
    "instrumentalness",
    "liveness",
    "speechiness",
    "valence",
]

TEMPO_RANGE = (40.0, 200.0)

DEFAULT_FEATURE_VALUES = {
    "acousticness": 0.5,
    "danceability": 0.5,
    "energy": 0.5,
    "instrumentalness": 0.1,
    "key": 5,
    "liveness": 0.1,
    "loudness": -10.0,
    "mode": 1,
    "speechiness": 0.1,
    "tempo": 120.0,
    "time_signature": 4,
    "valence": 0.5,
    "duration_ms": 200000,
}

# Features accepted as target_/min_/max_ recommendation options
OPTION_FEATURES = [
    "acousticness",
    "danceability",
    "energy",
    "instrumentalness",
    "liveness",
    "loudness",
    "speechiness",
    "tempo",
    "valence",
]

# Weighted Euclidean distance (outlier / profile-match detection)
DISTANCE_WEIGHTS = {
    "energy": 1.5,
    "danceability": 1.3,
    "valence": 1.2,
    "acousticness": 1.0,
    "instrumentalness": 0.8,
    "speechiness": 0.5,
    "liveness": 0.3,
}

# =============================================================================
# GENRE TEMPLATES (order matters: first substring match wins)
# =============================================================================
GENRE_TEMPLATES: Dict[str, Dict[str, float]] = {
    # Electronic/Dance
    "electronic": {"energy": 0.8, "danceability": 0.85, "valence": 0.7, "tempo": 128, "acousticness": 0.1},
    "house": {"energy": 0.85, "danceability": 0.9, "valence": 0.75, "tempo": 125, "acousticness": 0.05},
    "techno": {"energy": 0.9, "danceability": 0.8, "valence": 0.6, "tempo": 130, "acousticness": 0.02},
    "edm": {"energy": 0.95, "danceability": 0.85, "valence": 0.8, "tempo": 128, "acousticness": 0.03},
    "dubstep": {"energy": 0.9, "danceability": 0.7, "valence": 0.6, "tempo": 140, "acousticness": 0.02},
    # Rock/Metal
    "rock": {"energy": 0.8, "danceability": 0.5, "valence": 0.6, "tempo": 120, "acousticness": 0.2},
    "hard rock": {"energy": 0.9, "danceability": 0.4, "valence": 0.65, "tempo": 125, "acousticness": 0.1},
    "metal": {"energy": 0.95, "danceability": 0.3, "valence": 0.4, "tempo": 140, "acousticness": 0.05},
    "punk": {"energy": 0.9, "danceability": 0.6, "valence": 0.7, "tempo": 150, "acousticness": 0.1},
    "alternative": {"energy": 0.7, "danceability": 0.5, "valence": 0.5, "tempo": 115, "acousticness": 0.25},
    # Pop
    "pop": {"energy": 0.7, "danceability": 0.75, "valence": 0.75, "tempo": 120, "acousticness": 0.15},
    "indie pop": {"energy": 0.6, "danceability": 0.65, "valence": 0.7, "tempo": 110, "acousticness": 0.3},
    "electropop": {"energy": 0.8, "danceability": 0.8, "valence": 0.8, "tempo": 125, "acousticness": 0.1},
    # Hip-Hop/Rap
    "hip-hop": {"energy": 0.75, "danceability": 0.8, "valence": 0.6, "tempo": 95, "acousticness": 0.1},
    "rap": {"energy": 0.8, "danceability": 0.75, "valence": 0.6, "tempo": 100, "acousticness": 0.05},
    "trap": {"energy": 0.85, "danceability": 0.8, "valence": 0.5, "tempo": 140, "acousticness": 0.02},
    # R&B/Soul
    "r&b": {"energy": 0.6, "danceability": 0.7, "valence": 0.6, "tempo": 95, "acousticness": 0.2},
    "soul": {"energy": 0.65, "danceability": 0.65, "valence": 0.7, "tempo": 100, "acousticness": 0.3},
    "funk": {"energy": 0.8, "danceability": 0.85, "valence": 0.8, "tempo": 110, "acousticness": 0.15},
    # Jazz/Blues
    "jazz": {"energy": 0.5, "danceability": 0.4, "valence": 0.6, "tempo": 90, "acousticness": 0.6},
    "blues": {"energy": 0.5, "danceability": 0.4, "valence": 0.4, "tempo": 85, "acousticness": 0.5},
    # Folk/Country
    "folk": {"energy": 0.4, "danceability": 0.3, "valence": 0.6, "tempo": 100, "acousticness": 0.8},
    "country": {"energy": 0.6, "danceability": 0.5, "valence": 0.7, "tempo": 110, "acousticness": 0.6},
    "acoustic": {"energy": 0.3, "danceability": 0.3, "valence": 0.6, "tempo": 90, "acousticness": 0.9},
    # Classical
    "classical": {"energy": 0.3, "danceability": 0.1, "valence": 0.5, "tempo": 80, "acousticness": 0.95},
    # Ambient/Chill
    "ambient": {"energy": 0.2, "danceability": 0.2, "valence": 0.5, "tempo": 70, "acousticness": 0.7},
    "chillout": {"energy": 0.3, "danceability": 0.4, "valence": 0.6, "tempo": 85, "acousticness": 0.4},
    "lo-fi": {"energy": 0.25, "danceability": 0.3, "valence": 0.6, "tempo": 75, "acousticness": 0.5},
    # Latin
    "latin": {"energy": 0.8, "danceability": 0.9, "valence": 0.85, "tempo": 115, "acousticness": 0.2},
    "reggaeton": {"energy": 0.85, "danceability": 0.9, "valence": 0.8, "tempo": 95, "acousticness": 0.1},
    "salsa": {"energy": 0.8, "danceability": 0.95, "valence": 0.9, "tempo": 180, "acousticness": 0.3},
    # Default fallback
    "unknown": {"energy": 0.5, "danceability": 0.5, "valence": 0.5, "tempo": 120, "acousticness": 0.5},
}

FALLBACK_GENRE = "unknown"

# =============================================================================
# TITLE HEURISTICS
# =============================================================================
# (keywords, [(feature, delta, bound)]): bound is a ceiling for positive
# deltas and a floor for negative ones.
TitleRule = Tuple[Tuple[str, ...], List[Tuple[str, float, float]]]

TITLE_RULES: List[TitleRule] = [
    (("remix", "club", "dance"), [("energy", 0.2, 0.9), ("danceability", 0.2, 0.9)]),
    (("acoustic", "unplugged", "stripped"), [("acousticness", 0.4, 0.95), ("energy", -0.3, 0.1)]),
    (("live", "concert"), [("liveness", 0.6, 0.9)]),
    (("instrumental", "karaoke"), [("instrumentalness", 0.7, 0.9), ("speechiness", -0.05, 0.03)]),
    (("sad", "cry", "alone", "broken"), [("valence", -0.3, 0.1), ("energy", -0.2, 0.2)]),
    (("happy", "party", "celebration", "joy"), [("valence", 0.3, 0.9), ("energy", 0.2, 0.9)]),
]

SHORT_TRACK_MINUTES = 2
SHORT_TRACK_ADJUSTMENTS = [("energy", 0.1, 0.9), ("tempo", 10, 180)]
LONG_TRACK_MINUTES = 6
LONG_TRACK_ADJUSTMENTS = [("energy", -0.1, 0.2), ("valence", -0.1, 0.2)]

POPULAR_THRESHOLD = 80
POPULAR_ADJUSTMENTS = [("danceability", 0.1, 0.9), ("valence", 0.1, 0.9)]
NICHE_THRESHOLD = 30
NICHE_ADJUSTMENTS = [("acousticness", 0.1, 0.8), ("instrumentalness", 0.1, 0.6)]

DEFAULT_POPULARITY = 50


@dataclass
class SynthesisConfig:
    """Configuration for pseudo-acoustic feature synthesis."""
    # Jitter applied once at synthesis time, then cached with the vector
    jitter: bool = True
    unit_jitter: float = 0.05   # total spread on energy/danceability/valence
    tempo_jitter: float = 20.0  # total spread in BPM
    seed: Optional[int] = None

DEFAULT_SYNTHESIS_CONFIG = SynthesisConfig()

# =============================================================================
# CATALOG API CONFIGURATION
# =============================================================================
@dataclass
class CatalogConfig:
    """Configuration for the catalog (Spotify Web API) boundary."""
    # Spotify API limit: 50 artists / tracks per request
    batch_size: int = 50
    # Fixed pause between sequential batches (rate-limit safeguard)
    batch_delay: float = 0.1
    requests_timeout: int = 10

DEFAULT_CATALOG_CONFIG = CatalogConfig()

# =============================================================================
# SIMILARITY WEIGHTS
# =============================================================================
@dataclass
class SimilarityWeights:
    """Weights for the per-feature similarity combination."""
    # Core musical characteristics
    valence: float = 0.20
    energy: float = 0.18
    danceability: float = 0.15
    # Acoustic properties
    acousticness: float = 0.12
    tempo: float = 0.10
    loudness: float = 0.08
    # Musical structure
    mode: float = 0.07
    key: float = 0.05
    # Specialized characteristics
    instrumentalness: float = 0.03
    speechiness: float = 0.02
    liveness: float = 0.01
    # Added on top, then everything is normalized by the total weight
    mood_coherence: float = 0.10

    def feature_weights(self) -> Dict[str, float]:
        return {
            "valence": self.valence,
            "energy": self.energy,
            "danceability": self.danceability,
            "acousticness": self.acousticness,
            "tempo": self.tempo,
            "loudness": self.loudness,
            "mode": self.mode,
            "key": self.key,
            "instrumentalness": self.instrumentalness,
            "speechiness": self.speechiness,
            "liveness": self.liveness,
        }

DEFAULT_SIMILARITY_WEIGHTS = SimilarityWeights()

CIRCLE_OF_FIFTHS = [0, 7, 2, 9, 4, 11, 6, 1, 8, 3, 10, 5]
CROSS_MODE_SIMILARITY = 0.3
HARMONIC_TEMPO_SIMILARITY = 0.8

# (max BPM difference, similarity), checked in order
TEMPO_BANDS = [(5, 1.0), (15, 0.9), (30, 0.7), (50, 0.5)]
# (max difference, similarity) for valence/energy/danceability
EMOTIONAL_BANDS = [(0.1, 1.0), (0.2, 0.9), (0.3, 0.7), (0.5, 0.5)]
# Loudness differences are scaled by this span (dB) before 1 - |diff|
LOUDNESS_SPAN_DB = 60.0

# =============================================================================
# TEMPORAL PREFERENCE LEARNING
# =============================================================================
@dataclass
class TemporalConfig:
    """Configuration for time-of-day/week/season preference learning."""
    decay: float = 0.1          # EMA: new = (1 - decay) * old + decay * observed
    initial_weight: float = 1.0
    weight_step: float = 0.1
    max_weight: float = 2.0
    min_confident_weight: float = 0.5
    max_influence: float = 0.7
    history_days: int = 30
    learned_features: List[str] = field(default_factory=lambda: [
        "acousticness", "danceability", "energy", "instrumentalness",
        "liveness", "speechiness", "tempo", "valence",
    ])
    # Targets blended from learned preferences when the caller left them unset
    contextual_targets: List[str] = field(default_factory=lambda: [
        "energy", "valence", "danceability",
    ])

DEFAULT_TEMPORAL_CONFIG = TemporalConfig()

# =============================================================================
# CLUSTERING & DISCOVERY
# =============================================================================
FALLBACK_CLUSTER = "Mixed Vibes"

# Genre overlap component of track similarity
TRACK_FEATURE_WEIGHT = 0.7
TRACK_GENRE_WEIGHT = 0.3
MATCHED_FEATURE_THRESHOLD = 0.15
MATCHED_TEMPO_THRESHOLD = 15
MATCHED_GENRE_THRESHOLD = 0.3

SIMILAR_SONG_THRESHOLD = 0.5      # per-track "find similar" search
CROSS_CLUSTER_THRESHOLD = 0.7     # centroid vs. other clusters' tracks
MAX_SIMILAR_SONGS = 20
MAX_DOMINANT_GENRES = 3
MAX_GENRE_DISTRIBUTION = 10
MOOD_MATCH_THRESHOLD = 0.8


@dataclass
class DiscoveryConfig:
    """Thresholds and scoring constants for local discoveries."""
    per_category_limit: int = 20
    # Hidden gems: outliers from their own cluster's centroid
    outlier_distance: float = 0.15
    min_cluster_size: int = 2
    # Mood shifters
    min_contrast: float = 0.3
    # Genre explorers: average rarity of a track's genres
    min_rarity: float = 0.7
    named_rarity: float = 0.8
    # Perfect matches: closeness to the whole-library centroid
    max_profile_distance: float = 0.5

DEFAULT_DISCOVERY_CONFIG = DiscoveryConfig()

# Mood rules: first match wins, inclusive bounds
MOOD_DEFINITIONS: List[Tuple[str, Dict[str, float]]] = [
    ("Energetic & Happy", {"min_energy": 0.7, "min_valence": 0.6}),
    ("Energetic & Intense", {"min_energy": 0.7, "max_valence": 0.4}),
    ("Calm & Positive", {"max_energy": 0.5, "min_valence": 0.6}),
    ("Melancholic", {"max_energy": 0.5, "max_valence": 0.4}),
    ("Party & Dance", {"min_danceability": 0.7, "min_energy": 0.6}),
    ("Focus & Study", {"max_energy": 0.5, "min_instrumentalness": 0.3}),
    ("Acoustic & Intimate", {"min_acousticness": 0.6}),
    ("Electronic & Modern", {"max_acousticness": 0.3, "min_energy": 0.5}),
]

# One genre is counted per track; the highest priority wins
GENRE_PRIORITY: Dict[str, int] = {
    "k-pop": 100, "j-pop": 100, "c-pop": 100,
    "latin": 90, "reggaeton": 90,
    "hip-hop": 85, "rap": 85, "trap": 85,
    "classical": 85, "jazz": 85,
    "country": 80, "r&b": 80, "soul": 80,
    "gospel": 75, "blues": 75,
    "electronic": 70, "edm": 70, "house": 70, "techno": 70,
    "rock": 65, "metal": 65, "punk": 65, "alternative": 65,
    "indie": 60,
    "pop": 50,
    "acoustic": 40,
    "ambient": 35,
}
DEFAULT_GENRE_PRIORITY = 50

HIGH_ENERGY_PROFILE = 0.65
CHILL_PROFILE = 0.4
ACOUSTIC_PROFILE = 0.5
ELECTRONIC_PROFILE = 0.25

# =============================================================================
# ANALYSIS CACHE & STORAGE KEYS
# =============================================================================
@dataclass
class AnalysisCacheConfig:
    """Time-to-live and truncation limits for cached analysis results."""
    ttl_minutes: int = 30
    snapshot_tracks_per_cluster: int = 10
    snapshot_similar_songs: int = 20
    snapshot_discoveries: int = 80

DEFAULT_ANALYSIS_CACHE_CONFIG = AnalysisCacheConfig()

KEY_FEATURES = "engine.features"
KEY_TRACKS = "engine.tracks"
KEY_PREFERENCES = "engine.preferences"
KEY_TEMPORAL = "engine.temporal-preferences"
KEY_HISTORY = "engine.history"
KEY_GENRE_CACHE = "catalog.artist-genres"
KEY_ANALYSIS_SNAPSHOT = "analysis.snapshot"

# Keys the engine may purge to make room when the store is full
SNAPSHOT_KEYS = [KEY_ANALYSIS_SNAPSHOT, "analysis.tracks", "analysis.result"]

ENGINE_KEYS = [KEY_FEATURES, KEY_TRACKS, KEY_PREFERENCES, KEY_TEMPORAL, KEY_HISTORY]
