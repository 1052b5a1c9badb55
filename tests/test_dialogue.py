"""Tests for anton.animation.dialogue (records, cache loading, fallback)."""

from __future__ import annotations

import json
import logging
import random
from pathlib import Path

import pytest
from pydantic import ValidationError

from anton.animation.dialogue import (
    FALLBACK_DIALOGUE,
    DialogueRecord,
    Round,
    Speaker,
    choose_dialogue,
    load_cache,
    load_random_dialogue,
    parse_cache,
)
from anton.assets import AssetLoadError
from anton.config import DATA_DIR


def _record(record_id: int, rounds: int = 3) -> dict:
    return {
        "id": record_id,
        "rounds": [
            {"opener_line": f"o{i}", "responder_line": f"r{i}"} for i in range(rounds)
        ],
    }


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestDialogueRecord:
    def test_round_line(self) -> None:
        r = Round(opener_line="a", responder_line="b")
        assert r.line(Speaker.OPENER) == "a"
        assert r.line(Speaker.RESPONDER) == "b"

    def test_legacy_keys(self) -> None:
        r = Round.model_validate({"anton": "a", "claude": "b"})
        assert r.opener_line == "a"
        assert r.responder_line == "b"

    def test_requires_a_round(self) -> None:
        with pytest.raises(ValidationError):
            DialogueRecord(id=1, rounds=())

    def test_frozen(self) -> None:
        record = DialogueRecord.model_validate(_record(1))
        with pytest.raises(ValidationError):
            record.id = 2

    def test_fallback_shape(self) -> None:
        assert FALLBACK_DIALOGUE.id == 0
        assert FALLBACK_DIALOGUE.round_count == 3
        assert FALLBACK_DIALOGUE.line(2, Speaker.RESPONDER) == "[TERMINATED]"


# ---------------------------------------------------------------------------
# parse_cache
# ---------------------------------------------------------------------------


class TestParseCache:
    def test_valid_list(self) -> None:
        records = parse_cache([_record(1), _record(2, rounds=4)])
        assert [r.id for r in records] == [1, 2]
        assert records[1].round_count == 4

    def test_skips_malformed(self, caplog: pytest.LogCaptureFixture) -> None:
        data = [_record(1), {"id": "x"}, {"id": 3, "rounds": []}, _record(4)]
        with caplog.at_level(logging.WARNING):
            records = parse_cache(data)
        assert [r.id for r in records] == [1, 4]
        assert "Skipping malformed dialogue" in caplog.text

    def test_top_level_must_be_list(self) -> None:
        with pytest.raises(ValueError):
            parse_cache({"id": 1})


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadCache:
    async def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text(json.dumps([_record(5)]))
        records = await load_cache(path)
        assert records[0].id == 5

    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(AssetLoadError):
            await load_cache(tmp_path / "nope.json")

    async def test_corrupt_json(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("[{not json")
        with pytest.raises(AssetLoadError):
            await load_cache(path)

    async def test_packaged_cache_is_valid(self) -> None:
        records = await load_cache(DATA_DIR / "dialogues-cache.json")
        assert records
        assert all(r.round_count >= 1 for r in records)


class TestLoadRandomDialogue:
    @pytest.mark.parametrize("content", ["", "[]", "{broken", '{"id": 1}', "[1, 2]"])
    async def test_unusable_cache_falls_back(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "cache.json"
        path.write_text(content)
        record = await load_random_dialogue(path)
        assert record is FALLBACK_DIALOGUE
        assert record.id == 0
        assert record.round_count == 3

    async def test_missing_cache_falls_back(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            record = await load_random_dialogue(tmp_path / "missing.json")
        assert record is FALLBACK_DIALOGUE
        assert "Using fallback" in caplog.text

    async def test_picks_from_cache(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text(json.dumps([_record(1), _record(2), _record(3)]))
        seen = set()
        rng = random.Random(1234)
        for _ in range(30):
            seen.add((await load_random_dialogue(path, rng)).id)
        assert seen == {1, 2, 3}

    def test_choose_empty(self) -> None:
        assert choose_dialogue([]) is FALLBACK_DIALOGUE
