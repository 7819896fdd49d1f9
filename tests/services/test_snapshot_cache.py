from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from streaks.engine.errors import SnapshotCacheError
from streaks.engine.types import StreakEvent, StreakSnapshot
from streaks.services.snapshot_cache import FileSnapshotCache, InMemorySnapshotCache

UTC = timezone.utc


def snapshot(*, streak_id: str = "daily") -> StreakSnapshot:
    return StreakSnapshot(
        streak_id=streak_id,
        user_id="u1",
        current_streak=2,
        longest_streak=5,
        last_event_date=datetime(2024, 6, 15, 9, 0, tzinfo=UTC),
        last_event_timezone="UTC",
        streak_start_date=date(2024, 6, 14),
        total_events=8,
        updated_at=datetime(2024, 6, 15, 9, 5, tzinfo=UTC),
        recent_events=(StreakEvent(id="evt_1", timestamp=datetime(2024, 6, 15, 9, 0, tzinfo=UTC), timezone="UTC"),),
    )


def test_file_cache_writes_one_document_per_streak(tmp_path) -> None:
    cache = FileSnapshotCache(tmp_path / "cache")

    cache.set(snapshot())
    cache.set(snapshot(streak_id="workout"))

    assert sorted(path.name for path in (tmp_path / "cache").iterdir()) == [
        "streak_daily.json",
        "streak_workout.json",
    ]
    assert cache.get("daily") == snapshot()
    assert FileSnapshotCache(tmp_path / "cache").get("workout") == snapshot(streak_id="workout")


def test_file_cache_missing_entry_returns_none(tmp_path) -> None:
    assert FileSnapshotCache(tmp_path).get("daily") is None


def test_file_cache_clear_removes_document(tmp_path) -> None:
    cache = FileSnapshotCache(tmp_path)
    cache.set(snapshot())

    cache.clear("daily")
    cache.clear("daily")

    assert cache.get("daily") is None


@pytest.mark.parametrize("content", ["{not json", '{"current_streak": 3}', "[]"])
def test_file_cache_raises_on_corrupt_document(tmp_path, content: str) -> None:
    (tmp_path / "streak_daily.json").write_text(content, encoding="utf-8")

    with pytest.raises(SnapshotCacheError):
        FileSnapshotCache(tmp_path).get("daily")


def test_in_memory_cache() -> None:
    cache = InMemorySnapshotCache()
    cache.set(snapshot())

    assert cache.get("daily") == snapshot()
    cache.clear("daily")
    assert cache.get("daily") is None
