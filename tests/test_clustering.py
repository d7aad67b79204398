"""
Tests for taste clustering, track similarity and the mood/genre tables.
"""

import random

import pytest

from taste_engine.clustering import (
    CLUSTER_RULES,
    AnalyzedTrack,
    MusicCluster,
    assign_cluster,
    cluster_tracks,
    cross_cluster_similar_songs,
    describe_centroid,
    dominant_genres,
    find_similar_songs,
    genre_distribution,
    genre_overlap,
    match_mood,
    mood_distribution,
    mood_match_score,
    top_genre,
    track_similarity,
)
from taste_engine.features import FeatureVector

from conftest import make_features, make_track


def analyzed(track_id, genres=(), **values):
    return AnalyzedTrack(make_track(track_id), make_features(track_id, **values), list(genres))


def random_analyzed(rng, track_id):
    features = FeatureVector(
        id=track_id,
        acousticness=rng.random(),
        danceability=rng.random(),
        energy=rng.random(),
        instrumentalness=rng.random(),
        speechiness=rng.random() * 0.4,
        valence=rng.random(),
    )
    return AnalyzedTrack(make_track(track_id), features, [rng.choice(["pop", "rock", "jazz", "k-pop"])])


class TestAssignCluster:
    """Tests for the priority decision list."""

    def test_rules_ordered_by_priority(self):
        priorities = [rule.priority for rule in CLUSTER_RULES]
        assert priorities == sorted(priorities, reverse=True)

    def test_highest_priority_wins(self):
        # Also satisfies Dance Floor Hits, Uplifting Anthems, Electronic Beats
        f = make_features(energy=0.9, danceability=0.9, valence=0.9, acousticness=0.1)
        assert assign_cluster(f) == "High Energy Bangers"

    @pytest.mark.parametrize("values,expected", [
        ({"energy": 0.6, "danceability": 0.8}, "Dance Floor Hits"),
        ({"energy": 0.6, "valence": 0.7, "acousticness": 0.5}, "Uplifting Anthems"),
        ({"energy": 0.6, "acousticness": 0.1}, "Electronic Beats"),
        ({"energy": 0.3, "valence": 0.5}, "Chill Vibes"),
        ({"energy": 0.5, "valence": 0.3}, "Melancholic Moods"),
        ({"energy": 0.6, "acousticness": 0.7}, "Acoustic Sessions"),
        ({"energy": 0.7, "instrumentalness": 0.5}, "Instrumental Focus"),
        ({"energy": 0.7, "speechiness": 0.3}, "Vocal & Lyrical"),
        ({"energy": 0.5}, "Moderate Energy"),
        ({"energy": 0.7}, "Mixed Vibes"),
    ])
    def test_each_rule(self, values, expected):
        assert assign_cluster(make_features(**values)) == expected

    def test_deterministic(self):
        f = make_features(energy=0.42, valence=0.47, danceability=0.61)
        assert len({assign_cluster(f) for _ in range(20)}) == 1


class TestClusterTracks:
    """Tests for cluster construction."""

    def test_single_high_energy_track(self):
        clusters = cluster_tracks([analyzed("x", energy=0.9, danceability=0.9)])

        assert len(clusters) == 1
        assert clusters[0].name == "High Energy Bangers"

    def test_partition(self):
        rng = random.Random(5)
        tracks = [random_analyzed(rng, f"t{i}") for i in range(60)]

        clusters = cluster_tracks(tracks)

        ids = [t.id for c in clusters for t in c.tracks]
        assert len(ids) == len(set(ids))
        assert set(ids) == {t.id for t in tracks}

    def test_members_are_labelled(self):
        tracks = [analyzed("a", energy=0.9, danceability=0.9), analyzed("b", energy=0.3, valence=0.5)]

        for cluster in cluster_tracks(tracks):
            assert all(t.cluster == cluster.name for t in cluster.tracks)

    def test_ordered_by_size_then_priority(self):
        tracks = [
            analyzed("c1", energy=0.3, valence=0.5),
            analyzed("c2", energy=0.3, valence=0.6),
            analyzed("h1", energy=0.9, danceability=0.9),
            analyzed("m1", energy=0.5),
        ]

        names = [c.name for c in cluster_tracks(tracks)]

        assert names == ["Chill Vibes", "High Energy Bangers", "Moderate Energy"]

    def test_centroid_and_genres(self):
        tracks = [
            analyzed("a", ["pop", "k-pop"], energy=0.9, danceability=0.9),
            analyzed("b", ["pop"], energy=0.8, danceability=0.7),
        ]

        cluster = cluster_tracks(tracks)[0]

        assert cluster.centroid.energy == pytest.approx(0.85)
        assert cluster.dominant_genres[0] == "pop"
        assert cluster.track_count == 2

    def test_empty(self):
        assert cluster_tracks([]) == []

    def test_describe_centroid(self):
        assert describe_centroid(make_features(energy=0.8, valence=0.8, danceability=0.8, acousticness=0.2)) == \
            "high energy, upbeat, danceable, electronic tracks"
        assert describe_centroid(make_features()) == "A balanced mix of tracks"

    def test_dominant_genres_top_three(self):
        tracks = [analyzed(str(i), ["a", "b", "c", "d"][: i + 1]) for i in range(4)]
        assert dominant_genres(tracks) == ["a", "b", "c"]


class TestGenreOverlap:
    """Tests for genre overlap."""

    def test_one_exact_match_of_two(self):
        assert genre_overlap(["k-pop", "dance pop"], ["k-pop"]) == pytest.approx(0.5)

    def test_partial_match(self):
        # "pop" is a substring of "dance pop"
        assert genre_overlap(["pop"], ["dance pop"]) == pytest.approx(0.5)

    def test_case_insensitive_and_capped(self):
        assert genre_overlap(["Pop", "dance pop"], ["pop", "DANCE POP"]) == 1.0

    def test_empty(self):
        assert genre_overlap([], ["pop"]) == 0.0

    def test_symmetric(self):
        a, b = ["indie rock", "rock"], ["rock", "punk"]
        assert genre_overlap(a, b) == genre_overlap(b, a)


class TestTrackSimilarity:
    """Tests for track-level similarity and matched features."""

    def test_shared_kpop_genre(self):
        a = analyzed("a", ["k-pop", "dance pop"], energy=0.8)
        b = analyzed("b", ["k-pop"], energy=0.8)

        similarity, matched = track_similarity(a, b)

        # Feature part is 1.0 and genre overlap 0.5
        assert similarity == pytest.approx(0.7 + 0.3 * 0.5)
        assert "genre" in matched

    def test_matched_features(self):
        a = analyzed("a", energy=0.5, valence=0.5, tempo=120)
        b = analyzed("b", energy=0.6, valence=0.9, tempo=130)

        _, matched = track_similarity(a, b)

        assert "energy" in matched
        assert "mood" not in matched
        assert "tempo" in matched
        assert "genre" not in matched

    def test_find_similar_songs(self):
        target = analyzed("t", ["pop"], energy=0.8, danceability=0.8)
        close = analyzed("c", ["pop"], energy=0.82, danceability=0.78)
        far = analyzed("f", ["metal"], energy=0.1, danceability=0.1, valence=0.0, acousticness=1.0,
                       tempo=180, mode=0)

        results = find_similar_songs(target, [target, close, far])

        assert [r.track.id for r in results] == ["c"]
        assert "Similar energy level" in results[0].reasons
        assert "Shared genres" in results[0].reasons

    def test_cross_cluster_similar_songs(self):
        tracks = [
            analyzed("h1", ["edm"], energy=0.9, danceability=0.9, acousticness=0.1),
            analyzed("h2", ["edm"], energy=0.85, danceability=0.85, acousticness=0.1),
            # Dance Floor Hits, but sounds like the bangers
            analyzed("d1", ["edm"], energy=0.74, danceability=0.9, acousticness=0.1),
        ]
        clusters = cluster_tracks(tracks)

        results = cross_cluster_similar_songs(clusters, tracks)

        ids = [r.track.id for r in results]
        assert len(ids) == len(set(ids))
        assert "d1" in ids
        entry = next(r for r in results if r.track.id == "d1")
        assert entry.reasons[0] == 'Similar to "High Energy Bangers" cluster'
        assert all(r.similarity > 0.7 for r in results)


class TestMoodTable:
    """Tests for mood matching and distribution."""

    def test_first_match_wins(self):
        # Also satisfies Party & Dance
        f = make_features(energy=0.8, valence=0.7, danceability=0.9)
        assert match_mood(f) == "Energetic & Happy"

    def test_inclusive_bounds(self):
        assert match_mood(make_features(energy=0.7, valence=0.6)) == "Energetic & Happy"

    def test_no_match(self):
        assert match_mood(make_features(energy=0.6, valence=0.5, acousticness=0.5)) is None

    def test_distribution(self):
        tracks = [
            analyzed("a", energy=0.8, valence=0.8),
            analyzed("b", energy=0.8, valence=0.8),
            analyzed("c", energy=0.3, valence=0.3),
            analyzed("d", energy=0.6, valence=0.5),
        ]

        distribution = mood_distribution(tracks)

        assert distribution[0] == {"mood": "Energetic & Happy", "percentage": 67}
        assert distribution[1] == {"mood": "Melancholic", "percentage": 33}

    def test_distribution_rounds_halves_up(self):
        tracks = [analyzed("sad", energy=0.3, valence=0.3)]
        tracks += [analyzed(f"up{i}", energy=0.8, valence=0.8) for i in range(7)]

        distribution = mood_distribution(tracks)

        assert distribution == [
            {"mood": "Energetic & Happy", "percentage": 88},
            {"mood": "Melancholic", "percentage": 13},
        ]

    def test_match_score(self):
        f = make_features(energy=0.8, valence=0.5)

        assert mood_match_score(f, "Energetic & Happy") == pytest.approx(0.5)
        assert mood_match_score(f, "Nonexistent") is None


class TestGenreDistribution:
    """Tests for the genre-priority table."""

    def test_top_genre_by_priority(self):
        assert top_genre(["pop", "k-pop"]) == "k-pop"
        assert top_genre(["Pop", "rock"]) == "rock"

    def test_ties_keep_first(self):
        assert top_genre(["hip-hop", "rap"]) == "hip-hop"
        assert top_genre(["weird", "pop"]) == "weird"

    def test_one_genre_per_track(self):
        tracks = [
            analyzed("a", ["pop", "k-pop"]),
            analyzed("b", ["pop"]),
            analyzed("c", ["jazz", "pop"]),
            analyzed("d", ["k-pop"]),
        ]

        distribution = genre_distribution(tracks)

        assert sum(d["count"] for d in distribution) == len(tracks)
        assert distribution[0] == {"genre": "k-pop", "count": 2, "percentage": 50}

    def test_percentage_base_is_track_count(self):
        tracks = [analyzed("a", ["pop"]), analyzed("b", [])]

        assert genre_distribution(tracks) == [{"genre": "pop", "count": 1, "percentage": 50}]

    def test_percentage_rounds_halves_up(self):
        tracks = [analyzed("j", ["jazz"])] + [analyzed(f"p{i}", ["pop"]) for i in range(7)]

        assert genre_distribution(tracks) == [
            {"genre": "pop", "count": 7, "percentage": 88},
            {"genre": "jazz", "count": 1, "percentage": 13},
        ]


class TestSerialization:
    """Tests for cluster persistence shapes."""

    def test_cluster_round_trip_keeps_full_count(self):
        tracks = [analyzed(str(i), energy=0.9, danceability=0.9) for i in range(5)]
        cluster = cluster_tracks(tracks)[0]

        restored = MusicCluster.from_dict(cluster.to_dict(max_tracks=2))

        assert len(restored.tracks) == 2
        assert restored.track_count == 5
        assert restored.centroid == cluster.centroid
