from streaks.workers.tasks.streak_recompute import recompute_user_streak, run_streak_recompute_sweep

__all__ = [
    "recompute_user_streak",
    "run_streak_recompute_sweep",
]
