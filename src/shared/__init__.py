"""Shared utilities and common code."""

from src.shared.config import Settings, get_settings
from src.shared.database import (
    Base,
    close_db,
    close_redis,
    get_db_session,
    get_redis,
    shutdown,
)
from src.shared.dto import ServiceResult
from src.shared.models import (
    BaseSchema,
    ConditionLogic,
    ConditionOperator,
    ErrorResponse,
    FatigueRecommendation,
    MasteryTrend,
    RuleActionType,
    RuleScope,
    SignalType,
    ZPDZone,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "get_db_session",
    "get_redis",
    "close_db",
    "close_redis",
    "shutdown",
    # Models
    "BaseSchema",
    "ErrorResponse",
    "ServiceResult",
    # Enums
    "SignalType",
    "RuleScope",
    "ConditionLogic",
    "ConditionOperator",
    "RuleActionType",
    "ZPDZone",
    "MasteryTrend",
    "FatigueRecommendation",
]
