"""Application-wide constants and configuration values.

This module centralizes all magic numbers and hardcoded values used throughout
the application, making them easier to maintain and adjust.
"""

# Question Generation
OPERAND_MIN = 1
"""Smallest operand ever shown in a question."""

OPERAND_MAX = 10
"""Largest operand ever shown in a question."""

OPERAND_SWAP_PROBABILITY = 0.5
"""Probability that the two operands are displayed in reverse order."""

BEGINNER_TOPICS = (1, 2, 5, 10)
"""Multiplication tables drawn from at the Beginner tier."""

INTERMEDIATE_TOPICS = (3, 4, 6, 7, 8, 9)
"""Multiplication tables drawn from at the Intermediate tier."""

ADVANCED_TOPICS = (1, 2, 3, 4, 5, 6, 7, 8, 9, 10)
"""Multiplication tables drawn from at the Advanced tier."""

MIN_CHOSEN_NUMBERS = 2
"""Minimum number of values a learner must pick in chosen-numbers mode."""

# Adaptive Difficulty Configuration
ANSWER_HISTORY_SIZE = 10
"""Number of recent answers kept in the rolling window."""

MIN_ANSWERS_FOR_ADJUSTMENT = 5
"""Window must hold at least this many answers before the tier may change."""

PROMOTION_THRESHOLD = 0.8
"""Window success rate at or above which the tier is raised."""

DEMOTION_THRESHOLD = 0.5
"""Window success rate at or below which the tier is lowered."""

# Session Configuration
DEFAULT_QUESTIONS_PER_SESSION = 10
"""Number of questions in a practice session unless the profile says otherwise."""

MAX_QUESTIONS_PER_SESSION = 50
"""Upper bound accepted for a session target."""

# Rewards
STARS_PER_CORRECT_ANSWER = 10
"""Stars awarded for a correct answer."""

STARS_PER_STREAK_ANSWER = 15
"""Stars awarded instead of the default when the window is a perfect streak."""

PERFECT_STREAK_MIN_CORRECT = 5
"""Correct answers the window must hold for the streak bonus."""

# Achievements
PERFECTION_MIN_ANSWERS = 10
"""Minimum answers in a flawless session to earn the perfection badge."""

TOPIC_MASTERY_SUCCESS_RATE = 0.9
"""Session success rate required in table mode for the topic mastery badge."""

SPEED_MAX_SESSION_SECONDS = 300
"""A session must finish faster than this to earn the speed badge."""

SPEED_MIN_ANSWERS = 10
"""Minimum answers in a session to earn the speed badge."""

# Mastery Calculation
MASTERY_TIERS = (
    (5, 0.95, 50),
    (4, 0.85, 30),
    (3, 0.75, 20),
    (2, 0.60, 10),
)
"""(tier, minimum success ratio, minimum attempts), evaluated top to bottom."""

MASTERY_TIER_LABELS = {
    1: "Beginner",
    2: "Intermediate",
    3: "Advanced",
    4: "Expert",
    5: "Master",
}
"""Display label for every mastery tier."""

MASTERED_MIN_TIER = 4
"""Tier from which a topic counts as mastered on the dashboard."""

TRACKED_TOPICS = (2, 3, 4, 5, 6, 7, 8, 9)
"""Tables shown in the topic grid and counted in global statistics."""

# Summary and History
RECENT_SESSION_HISTORY_LIMIT = 10
"""Number of recent practice sessions to show on the dashboard."""

# Profiles
DEFAULT_AVATAR = "dragon"
"""Avatar given to a profile when none is chosen."""

PROFILE_ID_PREFIX = "profile_"
"""Prefix of generated profile identifiers."""

# Profile Settings
SETTINGS_SCHEMA_VERSION = 2
"""Current version of the per-profile settings payload."""

DEFAULT_SETTINGS = {
    "sound_enabled": True,
    "difficulty": "adaptive",
    "validation_delay_ms": 1500,
    "questions_per_session": DEFAULT_QUESTIONS_PER_SESSION,
}
"""Per-profile settings applied when a key is missing."""

# Rate Limiting
SESSION_START_RATE_LIMIT = "30/minute"
"""Maximum number of practice sessions started per minute per client."""

ANSWER_SUBMISSION_RATE_LIMIT = "120/minute"
"""Maximum number of answer submissions allowed per minute per client."""

DEFAULT_RATE_LIMIT = "300/minute"
"""Limit applied to every other endpoint."""

# Logging
DEFAULT_LOG_LEVEL = "INFO"
"""Default logging level for the application."""
