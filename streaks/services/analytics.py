from __future__ import annotations

from typing import Any

import structlog

EVENT_REMOTE_LISTENER_STARTED = "streak_remote_listener_started"
EVENT_REMOTE_LISTENER_RECEIVED = "streak_remote_listener_received"
EVENT_REMOTE_LISTENER_FAILED = "streak_remote_listener_failed"
EVENT_SAVE_LOCAL_STARTED = "streak_save_local_started"
EVENT_SAVE_LOCAL_SUCCEEDED = "streak_save_local_succeeded"
EVENT_SAVE_LOCAL_FAILED = "streak_save_local_failed"
EVENT_CALCULATE_STARTED = "streak_calculate_started"
EVENT_CALCULATE_SUCCEEDED = "streak_calculate_succeeded"
EVENT_CALCULATE_FAILED = "streak_calculate_failed"
EVENT_FREEZE_AUTO_CONSUMED = "streak_freeze_auto_consumed"
EVENT_FREEZE_MANUALLY_CONSUMED = "streak_freeze_manually_consumed"
EVENT_ADD_FREEZE_STARTED = "streak_add_freeze_started"
EVENT_ADD_FREEZE_SUCCEEDED = "streak_add_freeze_succeeded"
EVENT_ADD_FREEZE_FAILED = "streak_add_freeze_failed"
EVENT_USE_FREEZE_STARTED = "streak_use_freeze_started"
EVENT_USE_FREEZE_SUCCEEDED = "streak_use_freeze_succeeded"
EVENT_USE_FREEZE_FAILED = "streak_use_freeze_failed"
EVENT_USE_FREEZES_STARTED = "streak_use_freezes_started"
EVENT_USE_FREEZES_SUCCEEDED = "streak_use_freezes_succeeded"
EVENT_USE_FREEZES_FAILED = "streak_use_freezes_failed"


class StructlogAnalyticsLogger:
    """Routes manager analytics into the structured log stream."""

    def __init__(self, logger_name: str = "streaks.analytics") -> None:
        self._logger = structlog.get_logger(logger_name)

    def track(self, event_name: str, **fields: Any) -> None:
        if event_name.endswith("_failed"):
            self._logger.error(event_name, **fields)
        else:
            self._logger.info(event_name, **fields)
