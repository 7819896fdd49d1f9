from streaks.db.models.streak_events import StreakEventRow
from streaks.db.models.streak_freezes import StreakFreezeRow
from streaks.db.models.streak_snapshots import StreakSnapshotRow

__all__ = [
    "StreakEventRow",
    "StreakFreezeRow",
    "StreakSnapshotRow",
]
