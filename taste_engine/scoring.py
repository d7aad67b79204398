"""
Feature Similarity Scoring
==========================

Computes the similarity of two feature vectors as a weighted combination of
specialized per-feature sub-similarities plus a mood-coherence bonus.

Mathematical Formulation:
-------------------------

    S = clip( (Σ w_f × s_f(a, b) + w_mood × cos(m(a), m(b))) / (Σ w_f + w_mood), 0, 1 )

where:
    s_tempo   = banded BPM difference, 0.8 for double/half-time
    s_key     = circle-of-fifths distance / 6
    s_mode    = 1.0 if equal else 0.3
    s_emotion = banded difference, 1 - d² beyond 0.5 (valence/energy/danceability)
    s_loud    = 1 - |a - b| / 60 dB
    s_other   = 1 - |a - b|
    m(x)      = 7-dimensional mood vector

For any valid vector f, S(f, f) = 1 and S(a, b) = S(b, a).
"""

from typing import Dict

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from .config import (
    SimilarityWeights,
    DEFAULT_SIMILARITY_WEIGHTS,
    CIRCLE_OF_FIFTHS,
    CROSS_MODE_SIMILARITY,
    HARMONIC_TEMPO_SIMILARITY,
    TEMPO_BANDS,
    EMOTIONAL_BANDS,
    LOUDNESS_SPAN_DB,
)
from .features import FeatureVector


EMOTIONAL_FEATURES = ("valence", "energy", "danceability")


def tempo_similarity(tempo1: float, tempo2: float) -> float:
    """BPM similarity with a harmonic (double/half time) override."""
    diff = abs(tempo1 - tempo2)

    low, high = min(tempo1, tempo2), max(tempo1, tempo2)
    if low > 0:
        ratio = high / low
        if abs(ratio - 2) < 0.1:
            return HARMONIC_TEMPO_SIMILARITY

    for max_diff, similarity in TEMPO_BANDS:
        if diff <= max_diff:
            return similarity
    return max(0.0, 1 - diff / 100)


def key_similarity(key1: int, key2: int) -> float:
    """Pitch-class similarity along the circle of fifths."""
    if key1 == key2:
        return 1.0
    if key1 not in CIRCLE_OF_FIFTHS or key2 not in CIRCLE_OF_FIFTHS:
        return 0.5  # unknown key

    pos1 = CIRCLE_OF_FIFTHS.index(key1)
    pos2 = CIRCLE_OF_FIFTHS.index(key2)
    steps = abs(pos1 - pos2)
    steps = min(steps, 12 - steps)
    return max(0.0, 1 - steps / 6)


def mode_similarity(mode1: int, mode2: int) -> float:
    return 1.0 if mode1 == mode2 else CROSS_MODE_SIMILARITY


def emotional_similarity(val1: float, val2: float) -> float:
    """Non-linear banding for valence, energy and danceability."""
    diff = abs(val1 - val2)
    for max_diff, similarity in EMOTIONAL_BANDS:
        if diff <= max_diff:
            return similarity
    return max(0.0, 1 - diff * diff)


def linear_similarity(val1: float, val2: float) -> float:
    return 1 - abs(val1 - val2)


def loudness_similarity(db1: float, db2: float) -> float:
    return max(0.0, 1 - abs(db1 - db2) / LOUDNESS_SPAN_DB)


def mood_vector(features: FeatureVector) -> np.ndarray:
    """Project a feature vector onto seven mood dimensions."""
    v, e = features.valence, features.energy
    return np.array([
        v * e,                            # happy / energetic
        v * (1 - e),                      # happy / calm
        (1 - v) * e,                      # sad / intense
        (1 - v) * (1 - e),                # sad / calm
        features.danceability,            # danceable
        features.acousticness,            # organic
        1 - features.acousticness,        # synthetic
    ])


def mood_coherence(a: FeatureVector, b: FeatureVector) -> float:
    """Cosine similarity between the two tracks' mood vectors."""
    m1 = mood_vector(a).reshape(1, -1)
    m2 = mood_vector(b).reshape(1, -1)
    return float(cosine_similarity(m1, m2)[0, 0])


def feature_breakdown(a: FeatureVector, b: FeatureVector) -> Dict[str, float]:
    """Per-feature sub-similarities, keyed by feature name."""
    scores = {}
    for feature in DEFAULT_SIMILARITY_WEIGHTS.feature_weights():
        val1, val2 = a.get(feature), b.get(feature)
        if feature == "tempo":
            scores[feature] = tempo_similarity(val1, val2)
        elif feature == "key":
            scores[feature] = key_similarity(val1, val2)
        elif feature == "mode":
            scores[feature] = mode_similarity(val1, val2)
        elif feature == "loudness":
            scores[feature] = loudness_similarity(val1, val2)
        elif feature in EMOTIONAL_FEATURES:
            scores[feature] = emotional_similarity(val1, val2)
        else:
            scores[feature] = linear_similarity(val1, val2)
    return scores


def feature_similarity(
    a: FeatureVector,
    b: FeatureVector,
    weights: SimilarityWeights = DEFAULT_SIMILARITY_WEIGHTS
) -> float:
    """
    Similarity of two feature vectors in [0, 1].

    Args:
        a, b: Feature vectors to compare
        weights: Per-feature and mood-coherence weights

    Returns:
        Weighted, normalized similarity
    """
    breakdown = feature_breakdown(a, b)

    weighted = 0.0
    total_weight = 0.0
    for feature, weight in weights.feature_weights().items():
        weighted += weight * breakdown[feature]
        total_weight += weight

    weighted += weights.mood_coherence * mood_coherence(a, b)
    total_weight += weights.mood_coherence

    if total_weight <= 0:
        return 0.0
    return float(np.clip(weighted / total_weight, 0, 1))
