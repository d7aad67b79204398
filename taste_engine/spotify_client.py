"""
Spotify Catalog Client
======================

The engine's only network boundary. Handles:
- Bearer-token authentication (token supplied by the caller)
- Batched artist lookup for genre tags (cached, rate limited)
- Batched track metadata lookup

The client never acquires or refreshes tokens itself. Without a token every
lookup is skipped and callers fall back to metadata-only heuristics.
"""

import time
import logging
from typing import List, Dict, Optional, Iterable

import spotipy

from .config import (
    CatalogConfig,
    DEFAULT_CATALOG_CONFIG,
    KEY_GENRE_CACHE,
    SNAPSHOT_KEYS,
)
from .features import Track
from .storage import KeyValueStore, load_json, save_json


logger = logging.getLogger(__name__)


class CatalogClient:
    """
    Wrapper around Spotipy with an artist-genre cache and batch operations.

    Attributes:
        sp: Spotipy client instance (None until a token is set)
        genre_cache: artist id -> genre tags
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        token: Optional[str] = None,
        config: CatalogConfig = DEFAULT_CATALOG_CONFIG,
        sleep=time.sleep,
    ):
        """
        Initialize catalog client.

        Args:
            store: Persistent store for the artist-genre cache
            token: Optional bearer token
            config: Batch size / delay configuration
            sleep: Delay function between batches (injectable for tests)
        """
        self.store = store
        self.config = config
        self._sleep = sleep
        self.sp: Optional[spotipy.Spotify] = None
        self.genre_cache: Dict[str, List[str]] = {}

        self._load_genre_cache()
        if token:
            self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        """Set (or clear) the bearer token used for catalog calls."""
        if not token:
            self.sp = None
            return
        self.sp = spotipy.Spotify(
            auth=token,
            requests_timeout=self.config.requests_timeout,
            retries=0,
        )

    @property
    def has_token(self) -> bool:
        return self.sp is not None

    # =========================================================================
    # CACHE
    # =========================================================================

    def _load_genre_cache(self) -> None:
        if self.store is None:
            return
        data = load_json(self.store, KEY_GENRE_CACHE)
        if isinstance(data, dict):
            self.genre_cache = {
                str(k): list(v) for k, v in data.items() if isinstance(v, list)
            }

    def _save_genre_cache(self) -> None:
        if self.store is None:
            return
        save_json(self.store, KEY_GENRE_CACHE, self.genre_cache, purge_keys=SNAPSHOT_KEYS)

    def cached_genres(self, artist_ids: Iterable[str]) -> List[str]:
        """Genres of the given artists from cache only, deduplicated in order."""
        genres: List[str] = []
        for artist_id in artist_ids:
            for genre in self.genre_cache.get(artist_id, []):
                if genre not in genres:
                    genres.append(genre)
        return genres

    def clear_genre_cache(self) -> None:
        self.genre_cache.clear()
        if self.store is not None:
            self.store.delete(KEY_GENRE_CACHE)

    # =========================================================================
    # ARTIST OPERATIONS
    # =========================================================================

    def fetch_artist_genres(self, artist_ids: Iterable[str]) -> Dict[str, List[str]]:
        """
        Fetch genre tags for artists in batches.

        Cached artists are served locally. Uncached ones are requested in
        batches of `batch_size`, sequentially, with a fixed delay between
        batches. A failed batch degrades to empty genre lists for its
        artists (not cached, so a later call retries them).

        Args:
            artist_ids: Spotify artist IDs

        Returns:
            Mapping of artist_id -> genre list (empty when no token)
        """
        results: Dict[str, List[str]] = {}
        if not self.has_token:
            logger.debug("No catalog token; skipping genre lookup")
            return results

        # Deduplicate, keep order
        unique_ids = [a for a in dict.fromkeys(artist_ids) if a]

        uncached = []
        for artist_id in unique_ids:
            if artist_id in self.genre_cache:
                results[artist_id] = self.genre_cache[artist_id]
            else:
                uncached.append(artist_id)

        if not uncached:
            return results

        logger.info("Fetching genres for %d uncached artists", len(uncached))
        batch_size = self.config.batch_size
        fetched_any = False

        for i in range(0, len(uncached), batch_size):
            batch = uncached[i:i + batch_size]
            try:
                result = self.sp.artists(batch)
                for artist in result.get("artists") or []:
                    if artist and artist.get("id"):
                        genres = list(artist.get("genres") or [])
                        results[artist["id"]] = genres
                        self.genre_cache[artist["id"]] = genres
                        fetched_any = True
            except Exception as e:
                logger.warning("Error fetching artist batch %d: %s", i // batch_size, e)

            for artist_id in batch:
                results.setdefault(artist_id, [])

            # Rate-limit safeguard between batches
            if i + batch_size < len(uncached):
                self._sleep(self.config.batch_delay)

        if fetched_any:
            self._save_genre_cache()

        return results

    # =========================================================================
    # TRACK OPERATIONS
    # =========================================================================

    def get_tracks(self, track_ids: List[str]) -> List[Track]:
        """
        Fetch track metadata in batches.

        Args:
            track_ids: List of Spotify track IDs

        Returns:
            Tracks that could be fetched (failed batches are skipped)
        """
        if not track_ids or not self.has_token:
            return []

        tracks: List[Track] = []
        batch_size = self.config.batch_size
        for i in range(0, len(track_ids), batch_size):
            batch = track_ids[i:i + batch_size]
            try:
                result = self.sp.tracks(batch)
                tracks.extend(Track.from_dict(t) for t in result.get("tracks") or [] if t)
            except Exception as e:
                logger.warning("Error fetching tracks batch %d: %s", i // batch_size, e)

            if i + batch_size < len(track_ids):
                self._sleep(self.config.batch_delay)

        return tracks
