"""Replay archived transcript fragments through the detector and print the messages found."""

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from eamwatch.api.models import MessageOut
from eamwatch.config import get_settings
from eamwatch.detection.cache import ProcessedSetCache
from eamwatch.detection.detector import Detector
from eamwatch.ingestion.memory_store import InMemoryStore
from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.ingestion.pipeline import ChannelDispatcher
from eamwatch.pipeline_config import DetectionConfig


def load_fragments(path: Path) -> list[TranscriptFragment]:
    """Read fragments from a JSON array or a JSON-lines file.

    Each record needs ``id``, ``channel_id``, ``start_time_ms`` and
    ``raw_text``; ``duration_ms`` defaults to 0.
    """
    text = path.read_text(encoding="utf-8")
    stripped = text.lstrip()
    if stripped.startswith("["):
        records = json.loads(stripped)
    else:
        records = [json.loads(line) for line in text.splitlines() if line.strip()]

    fragments = [
        TranscriptFragment(
            id=str(r["id"]),
            channel_id=str(r["channel_id"]),
            start_time_ms=int(r["start_time_ms"]),
            duration_ms=int(r.get("duration_ms") or 0),
            raw_text=r.get("raw_text") or "",
        )
        for r in records
    ]
    return sorted(fragments, key=lambda f: (f.start_time_ms, f.id))


async def replay(fragments: list[TranscriptFragment], accept_threshold: int | None = None) -> dict:
    """Feed *fragments* in time order through an in-memory store and detector."""
    settings = get_settings()
    config = DetectionConfig.from_settings(settings)
    if accept_threshold is not None:
        config = replace(config, accept_threshold=accept_threshold)

    store = InMemoryStore()
    detector = Detector(store, config, cache=ProcessedSetCache())
    dispatcher = ChannelDispatcher(detector)

    for fragment in fragments:
        store.add_fragment(fragment)
        await dispatcher.process(fragment)
    await dispatcher.close()

    messages = store.list_messages(limit=len(fragments) or 1)
    return {
        "fragments": len(fragments),
        "messages": [MessageOut.from_message(m).model_dump(mode="json") for m in messages],
        "statistics": store.statistics(),
        "detector": detector.stats(),
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", type=Path, help="JSON or JSON-lines file of fragments")
    parser.add_argument("--threshold", type=int, default=None, help="Override the accept threshold")
    args = parser.parse_args()

    if not args.path.exists():
        print(f"File {args.path} not found.")
        sys.exit(1)

    result = asyncio.run(replay(load_fragments(args.path), args.threshold))
    print(json.dumps(result, indent=2))
