"""
Command-Line Interface for the Taste Engine
===========================================

Usage:
    taste-engine analyze <tracks.json> [options]
    taste-engine similar <tracks.json> <track_id> [options]
    taste-engine clear [options]

The tracks file is a JSON export of catalog track objects: a list of tracks,
an object with a "tracks" list, or a saved-tracks page ("items" whose
entries each hold a "track").

Examples:
    taste-engine analyze liked_songs.json --format simple
    taste-engine analyze liked_songs.json --token $TOKEN --force -o analysis.json
    taste-engine similar liked_songs.json 4uLU6hMCjMI75M1A2tKUQC -n 5
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from taste_engine.analysis import AnalysisResult, LibraryAnalyzer
from taste_engine.clustering import SimilarSongResult
from taste_engine.config import (
    ENV_ACCESS_TOKEN,
    ENV_LOG_LEVEL,
    get_home_dir,
    get_quota_bytes,
)
from taste_engine.features import Track
from taste_engine.recommender import RecommendationEngine
from taste_engine.spotify_client import CatalogClient
from taste_engine.storage import FileStore


logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='taste-engine',
        description='🎵 Taste Engine - local music taste analysis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  SPOTIFY_ACCESS_TOKEN      Bearer token for artist genre lookup (optional)
  TASTE_ENGINE_HOME         Cache directory (default: ~/.taste_engine)
  TASTE_ENGINE_QUOTA_BYTES  Cache size limit in bytes (default: 5 MiB)
  TASTE_ENGINE_LOG_LEVEL    Log level when --verbose is not given
        """
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--store',
        type=str,
        default=None,
        help='Cache directory (default: $TASTE_ENGINE_HOME or ~/.taste_engine)'
    )
    common.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    library = argparse.ArgumentParser(add_help=False)
    library.add_argument(
        'tracks',
        type=str,
        help='JSON file with catalog track objects'
    )
    library.add_argument(
        '--token',
        type=str,
        default=None,
        help='Spotify bearer token (default: $SPOTIFY_ACCESS_TOKEN)'
    )
    library.add_argument(
        '--force',
        action='store_true',
        help='Recompute even if a fresh analysis is cached'
    )

    output = argparse.ArgumentParser(add_help=False)
    output.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Output file path (default: print to stdout)'
    )
    output.add_argument(
        '--format',
        type=str,
        choices=['json', 'simple'],
        default='json',
        help='Output format (default: json)'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser(
        'analyze',
        parents=[library, output, common],
        help='Cluster a library and find discoveries'
    )

    similar = commands.add_parser(
        'similar',
        parents=[library, output, common],
        help='Find songs in a library similar to one track'
    )
    similar.add_argument(
        'track_id',
        type=str,
        help='Seed track ID'
    )
    similar.add_argument(
        '-n', '--num',
        type=int,
        default=10,
        help='Number of similar songs (default: 10)'
    )

    commands.add_parser(
        'clear',
        parents=[common],
        help='Delete all cached features, genres and analysis'
    )

    return parser


def setup_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.environ.get(ENV_LOG_LEVEL, 'WARNING').upper(), logging.WARNING)
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')


def load_tracks(path: str) -> List[Track]:
    """Read a track export and build Track objects."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get('tracks', data.get('items', []))

    tracks = []
    for item in data:
        # Saved-tracks pages wrap each track
        if isinstance(item, dict) and isinstance(item.get('track'), dict):
            item = item['track']
        if not isinstance(item, dict) or not item.get('id'):
            logger.warning("Skipping entry without a track id")
            continue
        tracks.append(Track.from_dict(item))
    return tracks


def build_analyzer(store_dir: Optional[str], token: Optional[str]) -> LibraryAnalyzer:
    store = FileStore(store_dir or get_home_dir(), quota_bytes=get_quota_bytes())
    engine = RecommendationEngine(store)
    engine.load()
    analyzer = LibraryAnalyzer(engine=engine, client=CatalogClient(store), store=store)
    analyzer.set_token(token or os.environ.get(ENV_ACCESS_TOKEN))
    return analyzer


def format_analysis(result: AnalysisResult, fmt: str) -> str:
    """Format analysis output based on requested format."""
    if fmt == 'json':
        return result.to_json(indent=2)

    profile = result.music_profile
    lines = [
        f"🎵 Analyzed {result.analyzed_count} tracks",
        f"   Energy: {profile.energy_profile}",
        f"   Sound: {profile.acoustic_profile}",
        "",
        "Clusters:",
        "-" * 50,
    ]
    for cluster in result.clusters:
        lines.append(f"{cluster.icon} {cluster.name} ({cluster.track_count} tracks)")
        lines.append(f"    {cluster.description}")
        if cluster.dominant_genres:
            lines.append(f"    Genres: {', '.join(cluster.dominant_genres)}")

    if profile.genre_distribution:
        lines.extend(["", "Top genres:", "-" * 50])
        for entry in profile.genre_distribution:
            lines.append(f"  {entry['genre']}: {entry['percentage']}%")

    if profile.mood_distribution:
        lines.extend(["", "Moods:", "-" * 50])
        for entry in profile.mood_distribution:
            lines.append(f"  {entry['mood']}: {entry['percentage']}%")

    if result.local_discoveries:
        lines.extend(["", "Discoveries:", "-" * 50])
        for i, discovery in enumerate(result.local_discoveries[:10], 1):
            artists = ', '.join(discovery.track.artist_names)
            lines.append(f"{i:2}. {discovery.track.name} - {artists}")
            lines.append(f"    {discovery.category} ({discovery.discovery_score:.2f})")
            lines.append(f"    Why: {'; '.join(discovery.reasons)}")

    return '\n'.join(lines)


def format_similar(results: List[SimilarSongResult], fmt: str) -> str:
    if fmt == 'json':
        return json.dumps([r.to_dict() for r in results], indent=2)

    lines = [f"Top {len(results)} similar songs:", "-" * 50]
    for i, r in enumerate(results, 1):
        lines.append(f"{i:2}. {r.track.name} - {', '.join(r.track.artist_names)}")
        lines.append(f"    Similarity: {r.similarity:.4f}")
        lines.append(f"    Why: {', '.join(r.reasons)}")
        lines.append(f"    Track ID: {r.track.id}")
    return '\n'.join(lines)


def write_output(output: str, path: Optional[str]) -> None:
    if path:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(output)
        print(f"✅ Output saved to: {path}")
    else:
        print(output)


def run_command(args: argparse.Namespace) -> int:
    if args.command == 'clear':
        store = FileStore(args.store or get_home_dir(), quota_bytes=get_quota_bytes())
        removed = store.clear()
        print(f"🧹 Removed {removed} cached entries")
        return 0

    tracks = load_tracks(args.tracks)
    if not tracks:
        print("❌ Error: no tracks found in input file", file=sys.stderr)
        return 1

    analyzer = build_analyzer(args.store, args.token)
    result = analyzer.analyze_library(tracks, force_refresh=args.force)

    if args.command == 'analyze':
        write_output(format_analysis(result, args.format), args.output)
        return 0

    if args.track_id not in analyzer.analyzed_tracks:
        print(f"❌ Error: track {args.track_id} is not in the library", file=sys.stderr)
        return 1

    similar = analyzer.get_recommendations_for_track(args.track_id, limit=args.num)
    write_output(format_similar(similar, args.format), args.output)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        return run_command(args)
    except (OSError, ValueError) as e:
        print(f"❌ Error: {str(e)}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
