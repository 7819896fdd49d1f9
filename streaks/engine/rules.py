from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta

from streaks.engine.time import UTC, as_utc
from streaks.engine.types import CurrentRun, FreezeConsumption, StreakFreeze

ONE_DAY = timedelta(days=1)
_EARLIEST = datetime.min.replace(tzinfo=UTC)


def available_freezes_fifo(freezes: Iterable[StreakFreeze], *, now: datetime) -> list[StreakFreeze]:
    """Unused, unexpired freezes, oldest earned first; undated ones lead the queue."""
    available = [freeze for freeze in freezes if freeze.is_available(now)]
    return sorted(
        available,
        key=lambda freeze: (as_utc(freeze.earned_date) if freeze.earned_date is not None else _EARLIEST, freeze.id),
    )


def walk_current_streak(
    qualifying: Sequence[date],
    *,
    reference: date,
    freezes: Sequence[StreakFreeze] = (),
    fill_gaps: bool = True,
) -> CurrentRun:
    """Counts the run ending on the reference day, patching gaps with freezes in queue order."""
    expected = reference
    length = 0
    start_day: date | None = None
    consumptions: list[FreezeConsumption] = []
    queue = deque(freezes)

    for day in reversed(qualifying):
        if day > expected:
            continue

        broken = False
        while day < expected:
            if not fill_gaps or not queue:
                broken = True
                break
            freeze = queue.popleft()
            consumptions.append(FreezeConsumption(freeze_id=freeze.id, day=expected))
            length += 1
            start_day = expected
            expected -= ONE_DAY
        if broken:
            break

        length += 1
        start_day = day
        expected -= ONE_DAY

    return CurrentRun(length=length, start_day=start_day, freeze_consumptions=tuple(consumptions))


def longest_run(qualifying: Sequence[date]) -> int:
    longest = 0
    running = 0
    previous: date | None = None
    for day in qualifying:
        if previous is not None and day - previous == ONE_DAY:
            running += 1
        else:
            running = 1
        longest = max(longest, running)
        previous = day
    return longest


def merge_longest(existing_longest: int | None, recomputed_longest: int) -> int:
    if existing_longest is None:
        return recomputed_longest
    return max(existing_longest, recomputed_longest)
