from streaks.db.repo.streak_events_repo import StreakEventsRepo
from streaks.db.repo.streak_freezes_repo import StreakFreezesRepo
from streaks.db.repo.streak_snapshots_repo import StreakSnapshotsRepo

__all__ = [
    "StreakEventsRepo",
    "StreakFreezesRepo",
    "StreakSnapshotsRepo",
]
