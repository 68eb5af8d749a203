"""Centralized constants for lexicard.

All magic numbers and defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Scopes ----------
GLOBAL_SCOPE_ID = "all"
SCOPE_SEPARATOR = ":"

# ---------- SM-2 ----------
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
LAPSE_EASE_PENALTY = 0.2
PASSING_QUALITY = 3
EASY_BONUS = 1.3
FIRST_EASY_INTERVAL = 4  # days
GRADUATING_INTERVAL = 6  # days, second successful review
GRADUATED_REPETITIONS = 2

# ---------- Due state ----------
OVERDUE_AFTER_SECONDS = 24 * 60 * 60

# ---------- Storage ----------
LEGACY_SCHEMA_VERSION = 3  # unscoped cards keyed by word
SCHEMA_VERSION = 4  # scoped cards keyed by composite id
SQLITE_TIMEOUT = 5.0  # seconds

# ---------- Interval labels ----------
DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12
