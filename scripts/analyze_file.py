#!/usr/bin/env python3
"""
analyze_file.py — Run the VeriSight pipeline on a local file and print the result.

Usage (from the repository root):
    python scripts/analyze_file.py path/to/clip.mp4
    python scripts/analyze_file.py path/to/voice.wav --seed 42
    python scripts/analyze_file.py path/to/clip.mp4 --type video --stride 3

    # Also prepend the result to the MongoDB history (needs MONGO_URI)
    python scripts/analyze_file.py path/to/clip.mp4 --save

The media type is guessed from the extension unless --type is given.
Exit code is 0 on success, 1 if the analysis failed, 2 on bad arguments.
"""

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
load_dotenv(ROOT / ".env")

from verisight.ai.analysis_orchestrator import AnalysisOrchestrator, AnalysisPhase
from verisight.ai.detection_agent import DetectionAgent
from verisight.ai.strategies import mock_strategies
from verisight.core.database import close_mongo_connection, connect_to_mongo, get_db
from verisight.core.errors import PipelineFailure, StorageUnavailable
from verisight.models.analysis import AnalysisContext
from verisight.services.history_store import HistoryStore
from verisight.services.kv_store import KeyValueStore

_VIDEO_EXTS = {".mp4", ".webm", ".mov", ".avi", ".mkv", ".m4v"}
_AUDIO_EXTS = {".mp3", ".wav", ".ogg", ".m4a", ".flac", ".aac"}


def guess_media_type(path: Path) -> str | None:
    ext = path.suffix.lower()
    if ext in _VIDEO_EXTS:
        return "video"
    if ext in _AUDIO_EXTS:
        return "audio"
    return None


def _print_progress(phase: AnalysisPhase, progress: int) -> None:
    print(f"  [{progress:3d}%] {phase.value}", file=sys.stderr)


async def run(path: Path, media_type: str, seed: int | None, stride: int | None, save: bool) -> int:
    agent = DetectionAgent(mock_strategies(seed), sample_stride=stride)
    orchestrator = AnalysisOrchestrator(detection_agent=agent, observer=_print_progress)
    context = AnalysisContext(media_type=media_type, media_reference=str(path))
    size = path.stat().st_size if path.exists() else 0

    try:
        result = await orchestrator.run_analysis(context, path.name, size)
    except PipelineFailure as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2))

    if save:
        await connect_to_mongo()
        store = HistoryStore(KeyValueStore(get_db()))
        try:
            await store.add(result)
            print(f"\n✓ Saved {result.id[:12]} to history", file=sys.stderr)
        except StorageUnavailable as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1
        finally:
            await store.close()
            await close_mongo_connection()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Analyse a video or audio file for deepfake indicators")
    parser.add_argument("path", type=Path, help="Media file to analyse")
    parser.add_argument(
        "--type",
        dest="media_type",
        choices=["video", "audio"],
        help="Media type (default: guessed from the file extension)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for the mock scorers")
    parser.add_argument("--stride", type=int, default=None, help="Score every Nth video frame")
    parser.add_argument("--save", action="store_true", help="Prepend the result to MongoDB history")
    args = parser.parse_args()

    media_type = args.media_type or guess_media_type(args.path)
    if media_type is None:
        parser.error(f"cannot guess media type of {args.path.name}; pass --type")
    if args.stride is not None and args.stride < 1:
        parser.error("--stride must be >= 1")

    sys.exit(asyncio.run(run(args.path, media_type, args.seed, args.stride, args.save)))
