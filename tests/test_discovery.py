"""
Tests for local discovery categories and their merge.
"""

import random

import pytest

from taste_engine.clustering import AnalyzedTrack, cluster_tracks
from taste_engine.discovery import (
    GENRE_EXPLORER,
    HIDDEN_GEM,
    MOOD_SHIFT,
    PERFECT_MATCH,
    LocalDiscovery,
    dedupe_and_limit,
    find_genre_explorers,
    find_hidden_gems,
    find_mood_shifters,
    find_perfect_matches,
    generate_discoveries,
    genre_rarity,
)
from taste_engine.features import FeatureVector, centroid, weighted_distance

from conftest import make_features, make_track


def analyzed(track_id, genres=(), **values):
    return AnalyzedTrack(make_track(track_id), make_features(track_id, **values), list(genres))


def random_library(seed, size=40):
    rng = random.Random(seed)
    genres = ["pop", "rock", "jazz", "k-pop", "folk", "zydeco", "city pop"]
    tracks = []
    for i in range(size):
        features = FeatureVector(
            id=f"t{i}",
            acousticness=rng.random(),
            danceability=rng.random(),
            energy=rng.random(),
            instrumentalness=rng.random() * 0.6,
            speechiness=rng.random() * 0.3,
            valence=rng.random(),
        )
        tracks.append(AnalyzedTrack(make_track(f"t{i}"), features, rng.sample(genres, rng.randint(0, 2))))
    return tracks


class TestHiddenGems:
    """Tests for in-cluster outliers."""

    def test_outlier_found(self):
        tracks = [analyzed(f"n{i}", energy=0.8, danceability=0.8) for i in range(9)]
        tracks.append(analyzed("odd", energy=1.0, danceability=1.0, valence=0.0, acousticness=0.0))
        cluster = cluster_tracks(tracks)[0]

        gems = find_hidden_gems([cluster])

        assert [g.track.id for g in gems] == ["odd"]
        distance = weighted_distance(tracks[-1].features, cluster.centroid)
        assert gems[0].discovery_score == pytest.approx(min(0.95, 0.6 + 0.6 * distance))
        assert gems[0].reasons[0] == 'Unique track in your "High Energy Bangers" collection'
        assert gems[0].category == HIDDEN_GEM

    def test_single_track_cluster_skipped(self):
        cluster = cluster_tracks([analyzed("solo", energy=0.9, danceability=0.9)])[0]
        assert find_hidden_gems([cluster]) == []


class TestMoodShifters:
    """Tests for contrasting-quality tracks."""

    def test_contrast_sum(self):
        shifters = find_mood_shifters([analyzed("x", energy=0.5, acousticness=0.5)])

        assert len(shifters) == 1
        # (0.5 + 0.5) / 2 + (0.5 + 0.1) / 2
        assert shifters[0].discovery_score == pytest.approx(0.5 + 0.8 * 0.3)
        assert shifters[0].reasons == [
            "Blends contrasting musical elements",
            "Energy meets acoustic warmth",
            "Rhythmic with vocal presence",
        ]
        assert shifters[0].category == MOOD_SHIFT

    def test_score_is_capped(self):
        f = dict(energy=0.9, acousticness=0.9, danceability=0.9, valence=0.45,
                 instrumentalness=0.9, speechiness=0.9)
        assert find_mood_shifters([analyzed("x", **f)])[0].discovery_score == 0.95

    def test_no_contrast(self):
        tracks = [analyzed("x", energy=0.3, acousticness=0.2, danceability=0.3)]
        assert find_mood_shifters(tracks) == []


class TestGenreExplorers:
    """Tests for rare-genre tracks."""

    def test_rarity(self):
        tracks = [analyzed("a", ["pop"]), analyzed("b", ["pop", "zydeco"])]

        rarity = genre_rarity(tracks)

        assert rarity["pop"] == pytest.approx(1 / 3)
        assert rarity["zydeco"] == pytest.approx(2 / 3)

    def test_rare_genre_named(self):
        tracks = [analyzed(f"p{i}", ["pop"]) for i in range(9)] + [analyzed("z", ["zydeco"])]

        explorers = find_genre_explorers(tracks)

        assert [e.track.id for e in explorers] == ["z"]
        assert explorers[0].discovery_score == pytest.approx(0.6 + 0.9 * 0.35)
        assert explorers[0].reasons == [
            "Explores zydeco sounds",
            "Represents a rare genre in your collection",
        ]
        assert explorers[0].category == GENRE_EXPLORER

    def test_fallback_headline(self):
        # Average rarity above 0.7, but no single genre above 0.8
        tracks = (
            [analyzed(f"a{i}", [g]) for i in range(2) for g in ("g1", "g2", "g3", "g4", "g5")]
            + [analyzed("x", ["g1", "g2"])]
        )

        explorers = {e.track.id: e for e in find_genre_explorers(tracks)}

        assert explorers["x"].reasons[0] == "Explores g1 sounds"

    def test_tracks_without_genres_skipped(self):
        assert find_genre_explorers([analyzed("a"), analyzed("b", ["pop"])]) == []


class TestPerfectMatches:
    """Tests for profile matches."""

    def test_close_to_profile(self):
        tracks = [analyzed("near", energy=0.5), analyzed("far", energy=0.0, danceability=1.0, valence=0.0)]
        profile = make_features("avg")

        matches = find_perfect_matches(tracks, profile)

        assert [m.track.id for m in matches] == ["near"]
        assert matches[0].discovery_score == pytest.approx(0.98)
        assert matches[0].category == PERFECT_MATCH


class TestMerge:
    """Tests for per-category dedup and the final merge."""

    def test_dedupe_and_limit(self):
        t = make_track("a")
        discoveries = [
            LocalDiscovery(t, 0.6, [], HIDDEN_GEM),
            LocalDiscovery(t, 0.9, [], HIDDEN_GEM),
            LocalDiscovery(make_track("b"), 0.7, [], HIDDEN_GEM),
        ]

        result = dedupe_and_limit(discoveries, 1)

        assert [(d.track.id, d.discovery_score) for d in result] == [("a", 0.9)]

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_no_duplicates_and_max_score_kept(self, seed):
        tracks = random_library(seed)
        clusters = cluster_tracks(tracks)
        profile = centroid(t.features for t in tracks)

        merged = generate_discoveries(tracks, clusters, profile)

        ids = [d.track.id for d in merged]
        assert len(ids) == len(set(ids))

        per_category = [
            dedupe_and_limit(find_hidden_gems(clusters), 20),
            dedupe_and_limit(find_mood_shifters(tracks), 20),
            dedupe_and_limit(find_genre_explorers(tracks), 20),
            dedupe_and_limit(find_perfect_matches(tracks, profile), 20),
        ]
        best = {}
        for category in per_category:
            for d in category:
                best[d.track.id] = max(best.get(d.track.id, 0.0), d.discovery_score)

        assert {d.track.id: d.discovery_score for d in merged} == best
        scores = [d.discovery_score for d in merged]
        assert scores == sorted(scores, reverse=True)

    def test_category_round_trip(self):
        d = LocalDiscovery(make_track("a"), 0.8, ["r"], MOOD_SHIFT)
        assert LocalDiscovery.from_dict(d.to_dict()) == d

    def test_unknown_category_rejected(self):
        data = LocalDiscovery(make_track("a"), 0.8).to_dict()
        data["category"] = "mystery"

        with pytest.raises(ValueError):
            LocalDiscovery.from_dict(data)
