"""Adaptation Module - Mastery estimation, difficulty targeting and decision gates."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, Sequence
from uuid import UUID, uuid4

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
from src.shared.datetime_utils import datetime_to_iso, iso_to_datetime, utc_now
from src.shared.dto import ServiceResult
from src.shared.models import (
    ConditionLogic,
    ConditionOperator,
    FatigueRecommendation,
    MasteryTrend,
    RuleActionType,
    RuleScope,
    SignalType,
    ZPDZone,
)


# ===================
# Signals
# ===================

@dataclass(frozen=True)
class SignalContext:
    """Where a signal was observed."""

    competency_id: str | None = None
    domain: str | None = None
    session_id: str | None = None


@dataclass(frozen=True)
class AdaptationSignal:
    """A single observation about the learner, produced by the client."""

    type: SignalType
    value: float
    timestamp: datetime = field(default_factory=utc_now)
    context: SignalContext = field(default_factory=SignalContext)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "value": self.value,
            "timestamp": datetime_to_iso(self.timestamp),
            "context": {
                "competency_id": self.context.competency_id,
                "domain": self.context.domain,
                "session_id": self.context.session_id,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AdaptationSignal":
        """Create from dictionary."""
        context = data.get("context") or {}
        return cls(
            type=SignalType(data["type"]),
            value=float(data["value"]),
            timestamp=iso_to_datetime(data.get("timestamp")) or utc_now(),
            context=SignalContext(
                competency_id=context.get("competency_id"),
                domain=context.get("domain"),
                session_id=context.get("session_id"),
            ),
        )


# ===================
# Profile & BKT state
# ===================

@dataclass
class EMAState:
    """Exponentially smoothed live signals."""

    accuracy: float = DEFAULT_EMA_ACCURACY
    response_time: float = DEFAULT_EMA_RESPONSE_TIME_MS
    engagement: float = DEFAULT_EMA_ENGAGEMENT
    hint_usage: float = DEFAULT_EMA_HINT_USAGE
    skip_rate: float = DEFAULT_EMA_SKIP_RATE
    last_updated: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class BKTParameters:
    """Bayesian Knowledge Tracing parameters for one competency."""

    p_learn: float = DEFAULT_P_LEARN
    p_guess: float = DEFAULT_P_GUESS
    p_slip: float = DEFAULT_P_SLIP
    p_known: float = DEFAULT_P_KNOWN


@dataclass(frozen=True)
class MasterySnapshot:
    """Mastery after one observation."""

    timestamp: datetime
    p_known: float
    was_correct: bool
    response_time_ms: float | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": datetime_to_iso(self.timestamp),
            "p_known": self.p_known,
            "was_correct": self.was_correct,
            "response_time_ms": self.response_time_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MasterySnapshot":
        """Create from dictionary."""
        return cls(
            timestamp=iso_to_datetime(data["timestamp"]),
            p_known=float(data["p_known"]),
            was_correct=bool(data["was_correct"]),
            response_time_ms=data.get("response_time_ms"),
        )


@dataclass(frozen=True)
class BKTCompetencyState:
    """BKT state for one (profile, competency). Updates return a new value."""

    competency_id: str
    domain: str
    params: BKTParameters = field(default_factory=BKTParameters)
    observations: int = 0
    last_observation_at: datetime = field(default_factory=utc_now)
    mastery_history: tuple[MasterySnapshot, ...] = ()


@dataclass
class AdaptationProfile:
    """Per-learner adaptation state. One per (tenant, learner)."""

    tenant_id: str
    learner_id: str
    id: UUID = field(default_factory=uuid4)
    ema_state: EMAState = field(default_factory=EMAState)
    current_difficulty: float = DEFAULT_DIFFICULTY
    target_success_rate: float = DEFAULT_TARGET_SUCCESS_RATE
    session_count: int = 0
    total_time_minutes: float = 0.0
    last_session_id: str | None = None
    last_session_at: datetime | None = None
    competency_states: list[BKTCompetencyState] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def get_competency(self, competency_id: str) -> BKTCompetencyState | None:
        """Find the state recorded for a competency, if any."""
        for state in self.competency_states:
            if state.competency_id == competency_id:
                return state
        return None

    def put_competency(self, state: BKTCompetencyState) -> None:
        """Insert or replace the state for ``state.competency_id``."""
        for i, existing in enumerate(self.competency_states):
            if existing.competency_id == state.competency_id:
                self.competency_states[i] = state
                return
        self.competency_states.append(state)


# ===================
# Rules & Events
# ===================

@dataclass(frozen=True)
class RuleCondition:
    """A comparison of one live signal against a threshold."""

    signal: SignalType
    operator: ConditionOperator
    value: float
    secondary_value: float | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "signal": self.signal.value,
            "operator": self.operator.value,
            "value": self.value,
            "secondary_value": self.secondary_value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RuleCondition":
        """Create from dictionary."""
        return cls(
            signal=SignalType(data["signal"]),
            operator=ConditionOperator(data["operator"]),
            value=float(data["value"]),
            secondary_value=data.get("secondary_value"),
        )


@dataclass(frozen=True)
class RuleAction:
    """What to do when a rule fires."""

    type: RuleActionType
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {"type": self.type.value, "parameters": dict(self.parameters)}

    @classmethod
    def from_dict(cls, data: dict) -> "RuleAction":
        """Create from dictionary."""
        return cls(
            type=RuleActionType(data["type"]),
            parameters=dict(data.get("parameters") or {}),
        )


@dataclass(frozen=True)
class RuleDefinition:
    """Caller-supplied fields of a new rule."""

    name: str
    action: RuleAction
    scope: RuleScope = RuleScope.GLOBAL
    scope_id: str | None = None
    priority: int = 100
    conditions: tuple[RuleCondition, ...] = ()
    condition_logic: ConditionLogic = ConditionLogic.AND
    description: str | None = None
    is_active: bool = True


@dataclass
class AdaptationRule:
    """A tenant-scoped decision-gate rule."""

    tenant_id: str
    name: str
    action: RuleAction
    id: UUID = field(default_factory=uuid4)
    scope: RuleScope = RuleScope.GLOBAL
    scope_id: str | None = None
    priority: int = 100
    conditions: list[RuleCondition] = field(default_factory=list)
    condition_logic: ConditionLogic = ConditionLogic.AND
    description: str | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class AdaptationEvent:
    """Append-only audit record of an adaptation."""

    tenant_id: str
    learner_id: str
    action: RuleAction
    id: UUID = field(default_factory=uuid4)
    profile_id: UUID | None = None
    rule_id: UUID | None = None
    trigger_signals: list[AdaptationSignal] = field(default_factory=list)
    outcome: str | None = None
    timestamp: datetime = field(default_factory=utc_now)


# ===================
# Derived views
# ===================

@dataclass
class MasteryEstimate:
    """Current mastery of one competency."""

    competency_id: str
    domain: str
    p_known: float
    confidence: float
    trend: MasteryTrend
    total_observations: int
    last_updated: datetime


@dataclass
class ZPDCompetency:
    """A competency classified against the learner's ZPD."""

    competency_id: str
    p_known: float
    zone: ZPDZone
    recommended_actions: list[str] = field(default_factory=list)


@dataclass
class ZPDRange:
    """Zone of Proximal Development for one domain."""

    domain: str
    lower_bound: float
    upper_bound: float
    optimal_difficulty: float
    competencies: list[ZPDCompetency] = field(default_factory=list)


@dataclass
class FatigueComponents:
    """Component scores, each 0-100."""

    accuracy_decline: float = 0.0
    response_time_increase: float = 0.0
    hint_usage_increase: float = 0.0
    session_duration: float = 0.0
    error_burstiness: float = 0.0


@dataclass
class FatigueAssessment:
    """Fatigue level for one session."""

    learner_id: str
    session_id: str
    overall_score: float
    components: FatigueComponents
    recommendation: FatigueRecommendation
    signal_count: int = 0
    assessed_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class DecisionGateInput:
    """Where the learner currently is, for scope filtering."""

    current_domain: str | None = None
    current_competency_id: str | None = None
    signals: tuple[AdaptationSignal, ...] = ()


@dataclass
class DecisionGateResult:
    """Outcome of evaluating the tenant's rules."""

    triggered_rule: AdaptationRule | None = None
    action: RuleAction | None = None


@dataclass(frozen=True)
class CandidateStep:
    """A learning activity the learner could do next."""

    step_id: str
    competency_id: str
    difficulty: float
    estimated_duration_minutes: float
    prerequisites: tuple[str, ...] = ()
    title: str | None = None


@dataclass
class StepScoreComponents:
    """Factor scores behind a step's composite score."""

    mastery_gain: float
    engagement_probability: float
    time_efficiency: float
    prerequisite_coverage: float
    curiosity_alignment: float


@dataclass
class ScoredStep:
    """A candidate step with its composite score."""

    step: CandidateStep
    score: float
    components: StepScoreComponents
    reasoning: str


# ===================
# Collaborator interfaces
# ===================

class IProfileStore(Protocol):
    """Persistence for adaptation profiles and their competency states."""

    async def find_profile(self, learner_id: str) -> AdaptationProfile | None:
        """Load a learner's profile (with competency states), or None."""
        ...

    async def create_profile(self, tenant_id: str, learner_id: str) -> AdaptationProfile:
        """Create and return a profile with default values.

        If a profile for the learner already exists (created concurrently,
        possibly under another tenant), that profile is returned instead.
        """
        ...

    async def save_profile(
        self, profile: AdaptationProfile, event: AdaptationEvent | None = None
    ) -> None:
        """Persist profile fields and upsert every competency state.

        Mastery history is truncated to the configured limit before
        the save is considered durable. ``event``, when given, is appended
        to the event log in the same unit of work as the profile.
        """
        ...


class IRuleStore(Protocol):
    """Persistence for tenant adaptation rules."""

    async def list_rules(
        self,
        tenant_id: str,
        scope: RuleScope | None = None,
        is_active: bool | None = None,
    ) -> list[AdaptationRule]:
        """List rules ascending by priority."""
        ...

    async def list_active_rules(self, tenant_id: str) -> list[AdaptationRule]:
        """List active rules ascending by priority."""
        ...

    async def get_rule(self, tenant_id: str, rule_id: UUID) -> AdaptationRule | None:
        """Get a rule owned by the tenant, or None."""
        ...

    async def create_rule(self, rule: AdaptationRule) -> AdaptationRule:
        """Store a new rule."""
        ...

    async def update_rule(self, rule: AdaptationRule) -> AdaptationRule:
        """Overwrite an existing rule."""
        ...


class IEventStore(Protocol):
    """Append-only adaptation event log."""

    async def append_event(self, event: AdaptationEvent) -> None:
        """Append an event."""
        ...

    async def query_events(
        self,
        tenant_id: str,
        learner_id: str,
        session_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[AdaptationEvent]:
        """Query events oldest first.

        When ``session_id`` is given, only events carrying at least one
        signal from that session are returned. ``limit`` keeps the most
        recent events.
        """
        ...


class IAdaptationEngine(Protocol):
    """Interface for the adaptation engine.

    Every operation returns a ServiceResult; failures are structured
    and never raised across this boundary.
    """

    async def get_or_create_profile(
        self, tenant_id: str, learner_id: str
    ) -> ServiceResult[AdaptationProfile]:
        """Get the learner's profile, creating it with defaults if absent."""
        ...

    async def apply_signals(
        self,
        tenant_id: str,
        learner_id: str,
        signals: Sequence[AdaptationSignal],
    ) -> ServiceResult[AdaptationProfile]:
        """Apply an ordered batch of signals and persist the profile."""
        ...

    async def get_mastery_estimate(
        self, tenant_id: str, learner_id: str, competency_id: str
    ) -> ServiceResult[MasteryEstimate]:
        """Get the BKT estimate, confidence and trend for a competency."""
        ...

    async def calculate_zpd(
        self, tenant_id: str, learner_id: str, domain: str
    ) -> ServiceResult[ZPDRange]:
        """Compute the Zone of Proximal Development for a domain."""
        ...

    async def get_optimal_difficulty(
        self, tenant_id: str, learner_id: str
    ) -> ServiceResult[float]:
        """Preview the difficulty rule against current state."""
        ...

    async def assess_fatigue(
        self, tenant_id: str, learner_id: str, session_id: str
    ) -> ServiceResult[FatigueAssessment]:
        """Assess fatigue from the session's recorded signals."""
        ...

    async def evaluate_decision_gate(
        self,
        tenant_id: str,
        learner_id: str,
        gate_input: DecisionGateInput,
    ) -> ServiceResult[DecisionGateResult]:
        """Return the action of the first satisfied rule, if any."""
        ...

    async def score_next_steps(
        self,
        tenant_id: str,
        learner_id: str,
        candidates: Sequence[CandidateStep],
    ) -> ServiceResult[list[ScoredStep]]:
        """Rank candidate steps by composite score, best first."""
        ...

    async def get_rules(
        self,
        tenant_id: str,
        scope: RuleScope | None = None,
        is_active: bool | None = None,
    ) -> ServiceResult[list[AdaptationRule]]:
        """List the tenant's rules ascending by priority."""
        ...

    async def create_rule(
        self, tenant_id: str, definition: RuleDefinition
    ) -> ServiceResult[AdaptationRule]:
        """Validate and store a new rule."""
        ...

    async def update_rule(
        self, tenant_id: str, rule_id: UUID, **updates: Any
    ) -> ServiceResult[AdaptationRule]:
        """Validate and apply field updates to a rule."""
        ...

    async def get_adaptation_history(
        self,
        tenant_id: str,
        learner_id: str,
        limit: int | None = None,
        since: datetime | None = None,
    ) -> ServiceResult[list[AdaptationEvent]]:
        """Get the learner's adaptation events, newest first."""
        ...
