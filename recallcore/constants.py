"""
SM-2 scheduling constants.

This module contains static parameters of the scheduling engine and its
statistics. No runtime configuration or path defaults - pure constants only.
"""

# Easiness factor bounds. New cards start at the initial value; the floor
# keeps intervals from degenerating.
INITIAL_EASINESS_FACTOR: float = 2.5
MIN_EASINESS_FACTOR: float = 1.3

# Two-step ramp before EF-scaled growth (in days).
FIRST_INTERVAL_DAYS: int = 1
SECOND_INTERVAL_DAYS: int = 6
# Upper bound on any interval, so next_review_at stays a representable date.
MAX_INTERVAL_DAYS: int = 36500

# Outcome ratings run from 1 (total failure) to 5 (perfect recall).
MIN_RATING: int = 1
MAX_RATING: int = 5
# Ratings below this are treated as forgotten.
PASSING_RATING: int = 3

# Difficulty is stored on a 1 (easy) .. 5 (hard) scale.
MIN_DIFFICULTY: float = 1.0
MAX_DIFFICULTY: float = 5.0
NEUTRAL_DIFFICULTY: float = 3.0

# Retention curve bounds and weights.
MIN_RETENTION: float = 0.1
MAX_RETENTION: float = 1.0
RETENTION_BASE: float = 0.5
RETENTION_DIFFICULTY_WEIGHT: float = 0.3
RETENTION_EASINESS_WEIGHT: float = 0.2

# Weight of the latest outcome when blending mastery.
MASTERY_RECENT_WEIGHT: float = 0.4
MASTERY_THRESHOLD: float = 0.8

# Highlight lists: cards rated this hard or harder count as struggling.
STRUGGLING_MIN_DIFFICULTY: float = 4.0
DEFAULT_HIGHLIGHT_LIMIT: int = 10

# Cards whose EF sank below this after enough repetitions count as struggling.
STRUGGLING_EASINESS_FACTOR: float = 2.0
STRUGGLING_MIN_REPETITIONS: int = 3

# Due-set selection and batching.
DEFAULT_DUE_LIMIT: int = 20
SMALL_BACKLOG: int = 5
MEDIUM_BACKLOG: int = 20
LARGE_BACKLOG: int = 50
MEDIUM_BATCH_RATIO: float = 0.75
MEDIUM_BATCH_MIN: int = 5
MEDIUM_BATCH_MAX: int = 15
LARGE_BATCH_SIZE: int = 20
HUGE_BATCH_SIZE: int = 25

# Study planning.
DEFAULT_MINUTES_PER_CARD: int = 2

# How far back the streak counter looks for review days.
STREAK_LOOKBACK_DAYS: int = 365
