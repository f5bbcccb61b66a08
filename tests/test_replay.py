"""Tests for the fragment replay script."""

from __future__ import annotations

import asyncio
import importlib.util
import json
from pathlib import Path

from transcripts import CHATTER_1, FULL_MESSAGE

SCRIPT = Path(__file__).parent.parent / "scripts" / "replay_fragments.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("replay_fragments", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


RECORDS = [
    {"id": "f2", "channel_id": "ch-1", "start_time_ms": 600_000, "raw_text": FULL_MESSAGE},
    {"id": "f1", "channel_id": "ch-1", "start_time_ms": 0, "duration_ms": 5_000, "raw_text": FULL_MESSAGE},
    {"id": "f3", "channel_id": "ch-2", "start_time_ms": 10_000, "raw_text": CHATTER_1},
]


class TestLoadFragments:
    def test_json_array(self, tmp_path: Path) -> None:
        path = tmp_path / "fragments.json"
        path.write_text(json.dumps(RECORDS), encoding="utf-8")
        fragments = _load_script().load_fragments(path)
        assert [f.id for f in fragments] == ["f1", "f3", "f2"]
        assert fragments[2].duration_ms == 0

    def test_json_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "fragments.jsonl"
        path.write_text("\n".join(json.dumps(r) for r in RECORDS) + "\n\n", encoding="utf-8")
        assert len(_load_script().load_fragments(path)) == 3


class TestReplay:
    def test_repeat_merged_into_one_message(self, tmp_path: Path) -> None:
        path = tmp_path / "fragments.json"
        path.write_text(json.dumps(RECORDS), encoding="utf-8")
        script = _load_script()

        result = asyncio.run(script.replay(script.load_fragments(path)))

        assert result["fragments"] == 3
        assert len(result["messages"]) == 1
        message = result["messages"][0]
        assert message["header"] == "ABC123"
        assert message["recording_ids"] == ["f1", "f2"]
        assert message["repeat_count"] == 2
        assert result["detector"]["repeat_merges"] == 1

    def test_threshold_override(self, tmp_path: Path) -> None:
        path = tmp_path / "fragments.json"
        path.write_text(json.dumps(RECORDS), encoding="utf-8")
        script = _load_script()
        result = asyncio.run(script.replay(script.load_fragments(path), accept_threshold=90))
        assert result["messages"] == []
