from __future__ import annotations

import json
import os
from pathlib import Path

import structlog

from streaks.engine.codec import decode_snapshot, encode_snapshot
from streaks.engine.errors import SnapshotCacheError, SnapshotDecodeError
from streaks.engine.types import StreakSnapshot

logger = structlog.get_logger(__name__)


class InMemorySnapshotCache:
    def __init__(self) -> None:
        self._snapshots: dict[str, StreakSnapshot] = {}

    def get(self, streak_id: str) -> StreakSnapshot | None:
        return self._snapshots.get(streak_id)

    def set(self, snapshot: StreakSnapshot) -> None:
        self._snapshots[snapshot.streak_id] = snapshot

    def clear(self, streak_id: str) -> None:
        self._snapshots.pop(streak_id, None)


class FileSnapshotCache:
    """One JSON document per streak id under a cache directory."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, streak_id: str) -> Path:
        return self._directory / f"streak_{streak_id}.json"

    def get(self, streak_id: str) -> StreakSnapshot | None:
        path = self._path(streak_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SnapshotCacheError(f"failed to read cached snapshot {path}") from exc
        try:
            return decode_snapshot(payload)
        except SnapshotDecodeError as exc:
            raise SnapshotCacheError(f"cached snapshot {path} is corrupt") from exc

    def set(self, snapshot: StreakSnapshot) -> None:
        path = self._path(snapshot.streak_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(encode_snapshot(snapshot), sort_keys=True),
                encoding="utf-8",
            )
            os.replace(tmp_path, path)
        except OSError as exc:
            raise SnapshotCacheError(f"failed to write cached snapshot {path}") from exc
        logger.debug("streak_snapshot_cached", streak_id=snapshot.streak_id, path=str(path))

    def clear(self, streak_id: str) -> None:
        try:
            self._path(streak_id).unlink(missing_ok=True)
        except OSError as exc:
            raise SnapshotCacheError(f"failed to remove cached snapshot for {streak_id!r}") from exc
