"""
Shared fixtures: in-memory store, a fake spotipy client, sample tracks.
"""

import pytest

from taste_engine.config import SynthesisConfig
from taste_engine.features import Artist, FeatureVector, Track
from taste_engine.recommender import RecommendationEngine
from taste_engine.spotify_client import CatalogClient
from taste_engine.storage import MemoryStore
from taste_engine.synthesizer import FeatureSynthesizer


ARTIST_GENRES = {
    "artist_house": ["house", "deep house"],
    "artist_folk": ["folk", "indie folk"],
    "artist_kpop": ["k-pop", "dance pop"],
    "artist_metal": ["metal"],
    "artist_jazz": ["jazz", "cool jazz"],
    "artist_none": [],
}


class FakeSpotify:
    """Stands in for spotipy.Spotify; records calls, never touches the network."""

    def __init__(self, genres=None, fail=False):
        self.genres = dict(ARTIST_GENRES if genres is None else genres)
        self.fail = fail
        self.artist_calls = []
        self.track_calls = []
        self.tracks_by_id = {}

    def artists(self, artist_ids):
        self.artist_calls.append(list(artist_ids))
        if self.fail:
            raise ConnectionError("network down")
        return {
            "artists": [
                {"id": a, "name": a, "genres": self.genres[a]} if a in self.genres else None
                for a in artist_ids
            ]
        }

    def tracks(self, track_ids):
        self.track_calls.append(list(track_ids))
        if self.fail:
            raise ConnectionError("network down")
        return {"tracks": [self.tracks_by_id.get(t) for t in track_ids]}


def make_track(track_id, name="Untitled", artist_id="artist_none",
               duration_ms=200000, popularity=50):
    return Track(
        id=track_id,
        name=name,
        artists=[Artist(id=artist_id, name=artist_id)],
        duration_ms=duration_ms,
        popularity=popularity,
    )


def make_features(track_id="f", **values):
    return FeatureVector(id=track_id, **values)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def fake_spotify():
    return FakeSpotify()


@pytest.fixture
def client(store, fake_spotify):
    """Catalog client with a token and the fake spotipy object."""
    catalog = CatalogClient(store, sleep=lambda seconds: None)
    catalog.sp = fake_spotify
    return catalog


@pytest.fixture
def engine(store):
    return RecommendationEngine(store, clock=lambda: 1_700_000_000.0)


@pytest.fixture
def synthesizer(engine, client):
    return FeatureSynthesizer(engine, client, SynthesisConfig(jitter=False))


@pytest.fixture
def sample_tracks():
    return [
        make_track("t1", "Club Anthem", "artist_house", popularity=85),
        make_track("t2", "Dance All Night", "artist_house"),
        make_track("t3", "Quiet River (Acoustic)", "artist_folk", popularity=20),
        make_track("t4", "Broken Heart", "artist_folk"),
        make_track("t5", "Fancy", "artist_kpop", popularity=90),
        make_track("t6", "Iron Storm", "artist_metal", duration_ms=420000),
        make_track("t7", "Blue Evening", "artist_jazz"),
        make_track("t8", "Happy Party Remix", "artist_kpop"),
        make_track("t9", "Interlude", "artist_none", duration_ms=90000),
        make_track("t10", "Live at the Hall", "artist_jazz"),
    ]
