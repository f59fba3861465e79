"""Application-wide constants.

This module centralizes the numeric parameters of the adaptation model.
They are part of the model's definition, not deployment settings; values
that need to be configurable at runtime go in config.py instead.
"""

# ===================
# EMA Smoothing
# ===================

# Weight of the newest observation (higher = more weight on recent signals)
EMA_ALPHA = 0.3

# Initial EMA values for a newly created profile
DEFAULT_EMA_ACCURACY = 0.5
DEFAULT_EMA_RESPONSE_TIME_MS = 5000.0
DEFAULT_EMA_ENGAGEMENT = 0.5
DEFAULT_EMA_HINT_USAGE = 0.0
DEFAULT_EMA_SKIP_RATE = 0.0


# ===================
# Difficulty Calibration
# ===================

# Target success band: keep EMA accuracy between 75% and 85%
TARGET_SUCCESS_LOW = 0.75
TARGET_SUCCESS_HIGH = 0.85
DEFAULT_TARGET_SUCCESS_RATE = 0.8

DIFFICULTY_STEP = 0.05
DIFFICULTY_MIN = 0.1
DIFFICULTY_MAX = 1.0
DEFAULT_DIFFICULTY = 0.5


# ===================
# Bayesian Knowledge Tracing
# ===================

DEFAULT_P_LEARN = 0.1
DEFAULT_P_GUESS = 0.2
DEFAULT_P_SLIP = 0.1
DEFAULT_P_KNOWN = 0.5

# Accuracy signal values at or above this count as a correct response
CORRECT_RESPONSE_THRESHOLD = 0.5

# Domain assigned to competencies whose first signal carries no domain
DEFAULT_COMPETENCY_DOMAIN = "general"

# Snapshots used for the mastery trend regression
TREND_WINDOW = 10
TREND_SLOPE_THRESHOLD = 0.01

# Observations at which confidence reaches 1 - 1/e
CONFIDENCE_OBSERVATION_SCALE = 10.0


# ===================
# Zone of Proximal Development
# ===================

ZPD_MASTERED_THRESHOLD = 0.8
ZPD_BEYOND_REACH_THRESHOLD = 0.3
ZPD_OPTIMAL_LOW = 0.4
ZPD_OPTIMAL_HIGH = 0.7


# ===================
# Fatigue Detection
# ===================

FATIGUE_WEIGHTS = {
    "accuracy_decline": 0.30,
    "response_time_increase": 0.25,
    "hint_usage_increase": 0.20,
    "session_duration": 0.15,
    "error_burstiness": 0.10,
}

# Session length at which the duration component saturates
FATIGUE_MAX_DURATION_MINUTES = 90.0

# Minimum qualifying signals for a first-half/second-half comparison
FATIGUE_MIN_HALF_SIGNALS = 4
FATIGUE_MIN_HINT_SIGNALS = 2
FATIGUE_MIN_BURST_SIGNALS = 3

# A drop of 0.5 in accuracy (or hint frequency) scores 100
FATIGUE_RATE_NORMALIZER = 0.5

# Error runs: a run of this length saturates the max-run score
FATIGUE_MAX_ERROR_RUN = 5
FATIGUE_MIN_BURST_LENGTH = 2

# Composite score thresholds, checked from the highest down
FATIGUE_END_SESSION_THRESHOLD = 85
FATIGUE_TAKE_BREAK_THRESHOLD = 70
FATIGUE_SWITCH_TOPIC_THRESHOLD = 50
FATIGUE_REDUCE_DIFFICULTY_THRESHOLD = 30


# ===================
# Decision Gates
# ===================

CONDITION_EPSILON = 1e-9

# Mastery reported when a learner has no competency states yet
DEFAULT_MASTERY_SIGNAL = 0.5


# ===================
# Next-Step Scoring
# ===================

STEP_SCORE_WEIGHTS = {
    "mastery_gain": 0.30,
    "engagement_probability": 0.25,
    "time_efficiency": 0.20,
    "prerequisite_coverage": 0.15,
    "curiosity_alignment": 0.10,
}

# Realistic ceiling for mastery gain per minute
MAX_GAIN_PER_MINUTE = 0.1

CURIOSITY_ALIGNMENT_PLACEHOLDER = 0.5


# ===================
# Persistence
# ===================

MAX_MASTERY_HISTORY = 500
DEFAULT_HISTORY_LIMIT = 50


# ===================
# Distributed Locks
# ===================

DISTRIBUTED_LOCK_TTL_SECONDS = 30
DISTRIBUTED_LOCK_RETRY_DELAY_SECONDS = 0.1
DISTRIBUTED_LOCK_MAX_RETRIES = 50
