"""
Library Analysis
================

Orchestrates a full local analysis of a user's library:

    1. Batch-fetch genres for every artist (one request per 50 artists)
    2. Synthesize features for each track and assign its cluster
    3. Build clusters, the music profile, cross-cluster similar songs
       and local discoveries
    4. Cache the result in memory and persist a truncated snapshot

Cached results come in two variants. A FullAnalysis is what this session
computed and may be served on a cache hit. A TruncatedAnalysis was restored
from the store, holds capped track lists, and is only a stale preview: the
next analyze_library() call always recomputes.
"""

import json
import time
import hashlib
import logging
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Union, Iterable, ClassVar

from .config import (
    MOOD_MATCH_THRESHOLD,
    KEY_ANALYSIS_SNAPSHOT,
    SNAPSHOT_KEYS,
    AnalysisCacheConfig,
    DEFAULT_ANALYSIS_CACHE_CONFIG,
    DiscoveryConfig,
    DEFAULT_DISCOVERY_CONFIG,
)
from .clustering import (
    AnalyzedTrack,
    MusicCluster,
    SimilarSongResult,
    assign_cluster,
    cluster_tracks,
    cross_cluster_similar_songs,
    find_similar_songs,
    genre_distribution,
    mood_distribution,
    mood_match_score,
    energy_profile,
    acoustic_profile,
)
from .discovery import LocalDiscovery, generate_discoveries
from .features import FeatureVector, Track, centroid, default_features
from .recommender import RecommendationEngine, TrackWithFeatures
from .spotify_client import CatalogClient
from .storage import KeyValueStore, MemoryStore, load_json, save_json
from .synthesizer import FeatureSynthesizer


logger = logging.getLogger(__name__)


@dataclass
class MusicProfile:
    """Aggregate view of the whole library."""
    average_features: FeatureVector
    genre_distribution: List[Dict[str, Any]] = field(default_factory=list)
    mood_distribution: List[Dict[str, Any]] = field(default_factory=list)
    energy_profile: str = "balanced"
    acoustic_profile: str = "mixed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_features": self.average_features.to_dict(),
            "genre_distribution": [dict(g) for g in self.genre_distribution],
            "mood_distribution": [dict(m) for m in self.mood_distribution],
            "energy_profile": self.energy_profile,
            "acoustic_profile": self.acoustic_profile,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MusicProfile":
        return cls(
            average_features=FeatureVector.from_dict(data["average_features"]),
            genre_distribution=list(data.get("genre_distribution") or []),
            mood_distribution=list(data.get("mood_distribution") or []),
            energy_profile=data.get("energy_profile", "balanced"),
            acoustic_profile=data.get("acoustic_profile", "mixed"),
        )


@dataclass
class AnalysisResult:
    """Complete analysis output bundle."""
    clusters: List[MusicCluster]
    similar_songs: List[SimilarSongResult]
    local_discoveries: List[LocalDiscovery]
    music_profile: MusicProfile
    analyzed_count: int
    last_updated: str

    def truncated(self, config: AnalysisCacheConfig = DEFAULT_ANALYSIS_CACHE_CONFIG) -> "AnalysisResult":
        """Copy with capped track lists; clusters remember their full size."""
        clusters = [
            MusicCluster(
                name=c.name,
                description=c.description,
                tracks=c.tracks[:config.snapshot_tracks_per_cluster],
                centroid=c.centroid,
                dominant_genres=list(c.dominant_genres),
                full_track_count=c.track_count,
            )
            for c in self.clusters
        ]
        return AnalysisResult(
            clusters=clusters,
            similar_songs=self.similar_songs[:config.snapshot_similar_songs],
            local_discoveries=self.local_discoveries[:config.snapshot_discoveries],
            music_profile=self.music_profile,
            analyzed_count=self.analyzed_count,
            last_updated=self.last_updated,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clusters": [c.to_dict() for c in self.clusters],
            "similar_songs": [s.to_dict() for s in self.similar_songs],
            "local_discoveries": [d.to_dict() for d in self.local_discoveries],
            "music_profile": self.music_profile.to_dict(),
            "analyzed_count": self.analyzed_count,
            "last_updated": self.last_updated,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            clusters=[MusicCluster.from_dict(c) for c in data.get("clusters") or []],
            similar_songs=[SimilarSongResult.from_dict(s) for s in data.get("similar_songs") or []],
            local_discoveries=[LocalDiscovery.from_dict(d) for d in data.get("local_discoveries") or []],
            music_profile=MusicProfile.from_dict(data["music_profile"]),
            analyzed_count=int(data.get("analyzed_count", 0)),
            last_updated=data.get("last_updated", ""),
        )


@dataclass
class FullAnalysis:
    """Result computed in this session; may be served from cache."""
    result: AnalysisResult
    timestamp: float
    user_id: Optional[str] = None
    library_key: Optional[str] = None

    is_authoritative: ClassVar[bool] = True

    def age(self, now: float) -> float:
        return now - self.timestamp


@dataclass
class TruncatedAnalysis(FullAnalysis):
    """Snapshot restored from storage; capped lists, never served as current."""
    is_authoritative: ClassVar[bool] = False


CachedAnalysis = Union[FullAnalysis, TruncatedAnalysis]


def library_key(tracks: Iterable[Track]) -> str:
    """Order-independent fingerprint of a library's track ids."""
    data_str = json.dumps(sorted(t.id for t in tracks))
    return f"library_{hashlib.md5(data_str.encode()).hexdigest()[:12]}"


def _as_track(track: Union[Track, Dict[str, Any]]) -> Track:
    return track if isinstance(track, Track) else Track.from_dict(track)


def _unique_tracks(tracks: Iterable[Track]) -> List[Track]:
    """First occurrence of each track id, in order."""
    unique: Dict[str, Track] = {}
    for track in tracks:
        if track.id in unique:
            logger.debug("Skipping duplicate track %s", track.id)
            continue
        unique[track.id] = track
    return list(unique.values())


class LibraryAnalyzer:
    """
    Full-library analysis for one user session.

    Usage:
        analyzer = LibraryAnalyzer(store=FileStore("~/.taste_engine"))
        analyzer.set_token(token)
        result = analyzer.analyze_library(tracks)
    """

    def __init__(
        self,
        engine: Optional[RecommendationEngine] = None,
        client: Optional[CatalogClient] = None,
        store: Optional[KeyValueStore] = None,
        synthesizer: Optional[FeatureSynthesizer] = None,
        user_id: Optional[str] = None,
        clock=time.time,
        cache_config: AnalysisCacheConfig = DEFAULT_ANALYSIS_CACHE_CONFIG,
        discovery_config: DiscoveryConfig = DEFAULT_DISCOVERY_CONFIG,
    ):
        """
        Initialize analyzer and restore any persisted snapshot.

        Args:
            engine: Engine holding the feature cache and library
            client: Catalog client for genre lookup
            store: Store for the analysis snapshot (engine's store if None)
            synthesizer: Feature synthesizer (built from engine/client if None)
            user_id: Identity owning the cached analysis
            clock: Returns the current Unix time in seconds
            cache_config: TTL and snapshot limits
            discovery_config: Discovery thresholds
        """
        if store is None:
            store = engine.store if engine is not None else MemoryStore()
        self.store = store
        self.engine = engine or RecommendationEngine(store, clock=clock)
        self.client = client or CatalogClient(store)
        self.synthesizer = synthesizer or FeatureSynthesizer(self.engine, self.client)
        self.user_id = user_id
        self.clock = clock
        self.cache_config = cache_config
        self.discovery_config = discovery_config

        self.analyzed_tracks: Dict[str, AnalyzedTrack] = {}
        self._analysis: Optional[CachedAnalysis] = None
        self._load_snapshot()

    def set_token(self, token: Optional[str], user_id: Optional[str] = None) -> None:
        """Forward the bearer token to the catalog client; optionally switch user."""
        self.client.set_token(token)
        if user_id is not None:
            self.user_id = user_id

    @property
    def cached_analysis(self) -> Optional[CachedAnalysis]:
        """Last analysis of either variant (a TruncatedAnalysis is a stale preview)."""
        return self._analysis

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def _load_snapshot(self) -> None:
        data = load_json(self.store, KEY_ANALYSIS_SNAPSHOT)
        if not isinstance(data, dict):
            return
        try:
            self._analysis = TruncatedAnalysis(
                result=AnalysisResult.from_dict(data["result"]),
                timestamp=float(data["timestamp"]),
                user_id=data.get("user_id"),
                library_key=data.get("library_key"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to load cached analysis: %s", e)

    def _save_snapshot(self, analysis: FullAnalysis) -> None:
        payload = {
            "result": analysis.result.truncated(self.cache_config).to_dict(),
            "timestamp": analysis.timestamp,
            "user_id": analysis.user_id,
            "library_key": analysis.library_key,
        }
        if not save_json(self.store, KEY_ANALYSIS_SNAPSHOT, payload, purge_keys=SNAPSHOT_KEYS):
            logger.warning("Analysis snapshot not persisted; result kept in memory only")
            return
        for key in SNAPSHOT_KEYS:
            if key != KEY_ANALYSIS_SNAPSHOT:
                self.store.delete(key)

    def _is_cache_hit(self, key: str, now: float) -> bool:
        analysis = self._analysis
        return (
            analysis is not None
            and analysis.is_authoritative
            and analysis.user_id == self.user_id
            and analysis.library_key == key
            and analysis.age(now) < self.cache_config.ttl_minutes * 60
        )

    # =========================================================================
    # ANALYSIS
    # =========================================================================

    def analyze_track(self, track: Track, genres: Optional[List[str]] = None) -> AnalyzedTrack:
        """Synthesize features, assign a cluster and add the track to the engine library."""
        existing = self.analyzed_tracks.get(track.id)
        if existing is not None:
            return existing

        if genres is None:
            genres = self.client.cached_genres(track.artist_ids)
        features = self.synthesizer.synthesize(track, genres)
        self.engine.add_track(TrackWithFeatures(track=track, features=features, genres=genres))

        analyzed = AnalyzedTrack(
            track=track,
            features=features,
            genres=genres,
            cluster=assign_cluster(features),
        )
        self.analyzed_tracks[track.id] = analyzed
        return analyzed

    def analyze_library(
        self,
        tracks: Iterable[Union[Track, Dict[str, Any]]],
        force_refresh: bool = False
    ) -> AnalysisResult:
        """
        Analyze a library, serving a fresh cached result when possible.

        A cached result is reused only if it was computed in this session,
        for the same user and the same set of tracks, less than the TTL ago.

        Args:
            tracks: Track objects or catalog track dicts
            force_refresh: Always recompute

        Returns:
            AnalysisResult
        """
        tracks = _unique_tracks(_as_track(t) for t in tracks)
        key = library_key(tracks)

        if not force_refresh and self._is_cache_hit(key, self.clock()):
            logger.info("Using in-memory full analysis")
            return self._analysis.result

        if self._analysis is not None and not self._analysis.is_authoritative:
            logger.info("Running full analysis (cached snapshot has limited track data)")

        self.analyzed_tracks.clear()
        self._analysis = None

        logger.info("Analyzing %d tracks locally...", len(tracks))
        start_time = time.time()

        artist_ids = [artist_id for t in tracks for artist_id in t.artist_ids if artist_id]
        self.client.fetch_artist_genres(artist_ids)

        analyzed = []
        for track in tracks:
            try:
                analyzed.append(self.analyze_track(track))
            except Exception as e:
                logger.warning("Failed to analyze track %s: %s", track.name, e)

        result = self._build_result(analyzed)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info("Analysis complete in %.0fms", elapsed_ms)

        analysis = FullAnalysis(
            result=result,
            timestamp=self.clock(),
            user_id=self.user_id,
            library_key=key,
        )
        self._analysis = analysis
        self._save_snapshot(analysis)
        self.engine.save()

        return result

    def _build_result(self, analyzed: List[AnalyzedTrack]) -> AnalysisResult:
        clusters = cluster_tracks(analyzed)

        if analyzed:
            average = centroid((t.features for t in analyzed), centroid_id="average")
        else:
            average = default_features("average")

        genres = genre_distribution(analyzed)
        logger.debug("Genre distribution calculated from %d tracks", len(analyzed))

        profile = MusicProfile(
            average_features=average,
            genre_distribution=genres,
            mood_distribution=mood_distribution(analyzed),
            energy_profile=energy_profile(average),
            acoustic_profile=acoustic_profile(average),
        )

        return AnalysisResult(
            clusters=clusters,
            similar_songs=cross_cluster_similar_songs(clusters, analyzed),
            local_discoveries=generate_discoveries(analyzed, clusters, average, self.discovery_config),
            music_profile=profile,
            analyzed_count=len(analyzed),
            last_updated=datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat(),
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_recommendations_for_track(self, track_id: str, limit: int = 10) -> List[SimilarSongResult]:
        """Similar songs from the analyzed library; empty if the track is unknown."""
        seed = self.analyzed_tracks.get(track_id)
        if seed is None:
            return []
        return find_similar_songs(seed, self.analyzed_tracks.values(), limit)

    def get_recommendations_by_mood(self, mood: str, limit: int = 10) -> List[Track]:
        """Analyzed tracks satisfying most of a mood's conditions."""
        scored = []
        for analyzed in self.analyzed_tracks.values():
            score = mood_match_score(analyzed.features, mood)
            if score is None:
                return []
            if score >= MOOD_MATCH_THRESHOLD:
                scored.append((analyzed.track, score))

        scored.sort(key=lambda x: x[1], reverse=True)
        return [track for track, _ in scored[:limit]]

    def clear_analysis(self) -> None:
        """Drop the analyzed tracks, the cached result and its persisted snapshot."""
        self.analyzed_tracks.clear()
        self._analysis = None
        for key in SNAPSHOT_KEYS:
            self.store.delete(key)

    def stats(self) -> Dict[str, Any]:
        analysis = self._analysis
        cache_valid = (
            analysis is not None
            and analysis.age(self.clock()) < self.cache_config.ttl_minutes * 60
        )
        return {
            "analyzed_tracks_count": len(self.analyzed_tracks),
            "cache_valid": cache_valid,
            "authoritative": bool(analysis and analysis.is_authoritative),
            "last_updated": analysis.result.last_updated if analysis else None,
        }
