"""Base models and common types used across modules."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


# Common response types


class ErrorResponse(BaseSchema):
    """Structured failure payload returned across the service boundary."""

    code: str
    message: str
    details: dict[str, Any] = {}


# Common enums and types


class SignalType(str, Enum):
    """Kinds of learner signals the engine understands."""

    ACCURACY = "accuracy"
    RESPONSE_TIME = "response_time"
    ENGAGEMENT = "engagement"
    HINT_USAGE = "hint_usage"
    SKIP_RATE = "skip_rate"
    TIME_ON_TASK = "time_on_task"
    RETRY_COUNT = "retry_count"
    HELP_SEEKING = "help_seeking"
    ERROR_PATTERN = "error_pattern"
    MASTERY = "mastery"
    FATIGUE = "fatigue"
    SESSION_DURATION = "session_duration"
    STREAK = "streak"


class RuleScope(str, Enum):
    """Where an adaptation rule applies."""

    GLOBAL = "global"
    DOMAIN = "domain"
    COMPETENCY = "competency"


class ConditionLogic(str, Enum):
    """How a rule combines its conditions."""

    AND = "AND"
    OR = "OR"


class ConditionOperator(str, Enum):
    """Comparison operators for rule conditions."""

    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    NEQ = "neq"
    BETWEEN = "between"


class RuleActionType(str, Enum):
    """Pedagogical actions a decision gate can fire."""

    ADJUST_DIFFICULTY = "adjust_difficulty"
    INSERT_REVIEW = "insert_review"
    SWITCH_TOPIC = "switch_topic"
    SUGGEST_BREAK = "suggest_break"
    END_SESSION = "end_session"
    PROVIDE_SCAFFOLDING = "provide_scaffolding"
    NOTIFY_EDUCATOR = "notify_educator"
    RECORD_SIGNALS = "record_signals"


class ZPDZone(str, Enum):
    """Classification of a competency relative to the learner's ZPD."""

    MASTERED = "mastered"
    ZPD = "zpd"
    BEYOND_REACH = "beyond_reach"


class MasteryTrend(str, Enum):
    """Direction of recent mastery change."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class FatigueRecommendation(str, Enum):
    """What to do about the learner's current fatigue level."""

    CONTINUE = "continue"
    REDUCE_DIFFICULTY = "reduce_difficulty"
    SWITCH_TOPIC = "switch_topic"
    TAKE_BREAK = "take_break"
    END_SESSION = "end_session"
