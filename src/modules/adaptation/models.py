"""SQLAlchemy models for Adaptation module."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.shared.constants import (
    DEFAULT_DIFFICULTY,
    DEFAULT_EMA_ACCURACY,
    DEFAULT_EMA_ENGAGEMENT,
    DEFAULT_EMA_HINT_USAGE,
    DEFAULT_EMA_RESPONSE_TIME_MS,
    DEFAULT_EMA_SKIP_RATE,
    DEFAULT_P_GUESS,
    DEFAULT_P_KNOWN,
    DEFAULT_P_LEARN,
    DEFAULT_P_SLIP,
    DEFAULT_TARGET_SUCCESS_RATE,
)
from src.shared.database import Base
from src.shared.datetime_utils import utc_now
from src.shared.models import RuleScope


class AdaptationProfileModel(Base):
    """Adaptation profile database model. One row per learner."""

    __tablename__ = "adaptation_profiles"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("uuid_generate_v4()"),
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    learner_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    ema_accuracy: Mapped[float] = mapped_column(Float, default=DEFAULT_EMA_ACCURACY)
    ema_response_time: Mapped[float] = mapped_column(Float, default=DEFAULT_EMA_RESPONSE_TIME_MS)
    ema_engagement: Mapped[float] = mapped_column(Float, default=DEFAULT_EMA_ENGAGEMENT)
    ema_hint_usage: Mapped[float] = mapped_column(Float, default=DEFAULT_EMA_HINT_USAGE)
    ema_skip_rate: Mapped[float] = mapped_column(Float, default=DEFAULT_EMA_SKIP_RATE)
    ema_last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
    )

    current_difficulty: Mapped[float] = mapped_column(Float, default=DEFAULT_DIFFICULTY)
    target_success_rate: Mapped[float] = mapped_column(Float, default=DEFAULT_TARGET_SUCCESS_RATE)
    session_count: Mapped[int] = mapped_column(Integer, default=0)
    total_time_minutes: Mapped[float] = mapped_column(Float, default=0.0)
    last_session_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_session_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=text("NOW()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=text("NOW()"),
    )

    # Relationships
    competency_states: Mapped[List["BKTCompetencyStateModel"]] = relationship(
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BKTCompetencyStateModel.competency_id",
    )


class BKTCompetencyStateModel(Base):
    """BKT state for one (profile, competency)."""

    __tablename__ = "bkt_competency_states"
    __table_args__ = (
        UniqueConstraint("profile_id", "competency_id", name="uq_bkt_profile_competency"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("uuid_generate_v4()"),
    )
    profile_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("adaptation_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    competency_id: Mapped[str] = mapped_column(String(100), nullable=False)
    domain: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    p_learn: Mapped[float] = mapped_column(Float, default=DEFAULT_P_LEARN)
    p_guess: Mapped[float] = mapped_column(Float, default=DEFAULT_P_GUESS)
    p_slip: Mapped[float] = mapped_column(Float, default=DEFAULT_P_SLIP)
    p_known: Mapped[float] = mapped_column(Float, default=DEFAULT_P_KNOWN)

    observations: Mapped[int] = mapped_column(Integer, default=0)
    last_observation_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # List of {timestamp, p_known, was_correct, response_time_ms}
    mastery_history: Mapped[list] = mapped_column(
        JSONB,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    profile: Mapped["AdaptationProfileModel"] = relationship(
        back_populates="competency_states",
    )


class AdaptationRuleModel(Base):
    """Tenant decision-gate rule."""

    __tablename__ = "adaptation_rules"
    __table_args__ = (
        Index("ix_adaptation_rules_tenant_priority", "tenant_id", "priority"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("uuid_generate_v4()"),
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope: Mapped[str] = mapped_column(String(20), default=RuleScope.GLOBAL.value)
    scope_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=100)
    # List of {signal, operator, value, secondary_value}
    conditions: Mapped[list] = mapped_column(JSONB, default=list)
    condition_logic: Mapped[str] = mapped_column(String(3), default="AND")
    # {type, parameters}
    action: Mapped[dict] = mapped_column(JSONB, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=text("NOW()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=text("NOW()"),
    )


class AdaptationEventModel(Base):
    """Adaptation event database model. Append-only."""

    __tablename__ = "adaptation_events"
    __table_args__ = (
        Index("ix_adaptation_events_learner_timestamp", "tenant_id", "learner_id", "timestamp"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("uuid_generate_v4()"),
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    learner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    profile_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("adaptation_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    rule_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("adaptation_rules.id", ondelete="SET NULL"),
        nullable=True,
    )
    # List of {type, value, timestamp, context}
    trigger_signals: Mapped[list] = mapped_column(JSONB, default=list)
    # Session ids present in trigger_signals, for session-scoped queries
    session_ids: Mapped[list] = mapped_column(JSONB, default=list)
    action: Mapped[dict] = mapped_column(JSONB, nullable=False)
    outcome: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=text("NOW()"),
    )
