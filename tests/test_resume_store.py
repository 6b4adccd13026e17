"""Tests for mosaic.resume - playback positions."""

from __future__ import annotations

import time

import pytest

from mosaic.models import ResumeEntry
from mosaic.resume import ResumeStore, is_resumable


def _entry(position: float, duration: float) -> ResumeEntry:
    return ResumeEntry(content_id="c", position=position, duration=duration)


class TestIsResumable:
    """Tests for the resumability rule."""

    @pytest.mark.parametrize(
        "position,duration,expected",
        [
            (5, 100, False),
            (95, 100, False),
            (50, 100, True),
            (10, 100, True),
            (90, 100, True),
            (500, 0, True),
            (3, 0, False),
        ],
    )
    def test_rule(self, position, duration, expected):
        assert is_resumable(_entry(position, duration)) is expected

    def test_custom_thresholds(self):
        assert is_resumable(_entry(5, 100), min_position=1) is True
        assert is_resumable(_entry(60, 100), max_progress=0.5) is False

    def test_progress(self):
        assert _entry(25, 100).progress == 0.25
        assert _entry(25, 0).progress is None


class TestResumeStore:
    """Tests for the JSON-backed store."""

    def test_upsert_and_get(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json")
        store.upsert("movie-1", 120.5, 5400, label="Dune")

        entry = store.get("movie-1")
        assert entry.position == 120.5
        assert entry.duration == 5400
        assert entry.label == "Dune"
        assert entry.content_id == "movie-1"

    def test_unknown_is_none(self, tmp_path):
        assert ResumeStore(tmp_path / "resume.json").get("nope") is None

    def test_persists_across_instances(self, tmp_path):
        ResumeStore(tmp_path / "resume.json").upsert("movie-1", 60, 100)
        assert ResumeStore(tmp_path / "resume.json").get("movie-1").position == 60

    def test_upsert_keeps_label(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json")
        store.upsert("movie-1", 60, 100, label="Dune")
        store.upsert("movie-1", 70, 100)
        assert store.get("movie-1").label == "Dune"
        assert store.get("movie-1").position == 70

    def test_negative_position_clamped(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json")
        assert store.upsert("movie-1", -5, 100).position == 0.0

    def test_all_newest_first(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json")
        store.upsert("old", 60, 100)
        time.sleep(0.01)
        store.upsert("new", 60, 100)

        assert [e.content_id for e in store.all()] == ["new", "old"]

    def test_clear(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json")
        store.upsert("movie-1", 60, 100)

        assert store.clear("movie-1") is True
        assert store.clear("movie-1") is False
        assert store.get("movie-1") is None

    def test_clear_all(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json")
        store.upsert("a", 60, 100)
        store.upsert("b", 60, 100)

        assert store.clear_all() == 2
        assert store.all() == []

    def test_is_resumable_by_id(self, tmp_path):
        store = ResumeStore(tmp_path / "resume.json", min_position=30)
        store.upsert("early", 20, 100)
        store.upsert("middle", 50, 100)

        assert store.is_resumable("early") is False
        assert store.is_resumable("middle") is True
        assert store.is_resumable("missing") is False

    def test_malformed_entries_skipped(self, tmp_path):
        path = tmp_path / "resume.json"
        path.write_text('{"bad": {"position": "x"}, "good": {"position": 20, "duration": 100}}')
        store = ResumeStore(path)
        assert [e.content_id for e in store.all()] == ["good"]
