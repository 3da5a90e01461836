"""Application-wide constants for the Bookflow engine."""

from __future__ import annotations

BRAND_NAME = "Bookflow"

# Party size bounds applied when an activity does not configure its own
DEFAULT_MIN_PARTY_SIZE = 1
DEFAULT_MAX_PARTY_SIZE = 12

# Forward scan horizon for next-available-date lookups (days)
DEFAULT_SCAN_DAYS = 30
MAX_SCAN_DAYS = 365

# Realtime invalidation
DEFAULT_DEBOUNCE_SECONDS = 0.5
REALTIME_CHANNEL_PREFIX = "availability"
SSE_PATH_PREFIX = "/api/v1/realtime"

# Confirmation codes look like BK-7F3K2Q
CONFIRMATION_CODE_PREFIX = "BK"
CONFIRMATION_CODE_LENGTH = 6
CONFIRMATION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# Text constraints
MAX_REASON_LENGTH = 255
MAX_CODE_LENGTH = 64
