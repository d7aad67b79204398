"""
Taste Engine - Local Music Taste Analysis
=========================================

A content-based recommendation and taste-analysis engine that works from
catalog metadata alone. Pseudo-acoustic features are synthesized from
genres, titles, durations and popularity, then used for similarity search,
clustering and local discovery.

Modules:
    - config: Configuration and constants
    - features: Track and feature vector types
    - storage: Keyed storage with a byte quota
    - spotify_client: Spotify catalog wrapper (artist genres, tracks)
    - synthesizer: Metadata to feature vector synthesis
    - scoring: Feature similarity scoring
    - temporal: Time contexts and learned per-context preferences
    - recommender: Session recommendation engine
    - clustering: Taste clusters and track similarity
    - discovery: Local discovery categories
    - analysis: Full library analysis orchestrator
    - cli: Command-line interface
"""

__version__ = "1.0.0"
