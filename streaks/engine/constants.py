from __future__ import annotations

import re

DEFAULT_TIMEZONE = "UTC"

MIN_EVENTS_REQUIRED_PER_DAY = 1
MIN_LEEWAY_HOURS = 0
MAX_LEEWAY_HOURS = 24
TRAVEL_FRIENDLY_LEEWAY_HOURS = 12

EVENT_MAX_AGE_DAYS = 365
RECENT_EVENTS_DAYS = 60
SNAPSHOT_STALE_AFTER_SECONDS = 3600

STREAK_ID_RE = re.compile(r"^[a-z0-9_]+$")
METADATA_KEY_RE = re.compile(r"^[A-Za-z0-9_]+$")
SANITIZED_KEY_FALLBACK = "item"
