"""Adaptation Engine Service - Learner modelling and decision gates.

This service provides:
- Per-learner adaptation profiles (EMA signals, difficulty, BKT mastery)
- Mastery estimates with confidence and trend
- Zone of Proximal Development per domain
- Session fatigue assessment
- Tenant-configurable decision-gate rules
- Next-step ranking

Every public operation returns a ServiceResult. Domain failures are
raised inside the module and converted here; unexpected store failures
are reported as STORAGE_ERROR.
"""

import copy
import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence, TypeVar
from uuid import UUID

from src.modules.adaptation import fatigue, next_step, zpd
from src.modules.adaptation.bkt import estimate_mastery
from src.modules.adaptation.decision_gate import first_triggered_rule, validate_conditions
from src.modules.adaptation.interface import (
    AdaptationEvent,
    AdaptationProfile,
    AdaptationRule,
    AdaptationSignal,
    CandidateStep,
    DecisionGateInput,
    DecisionGateResult,
    FatigueAssessment,
    IEventStore,
    IProfileStore,
    IRuleStore,
    MasteryEstimate,
    RuleAction,
    RuleCondition,
    RuleDefinition,
    ScoredStep,
    ZPDRange,
)
from src.modules.adaptation.locks import ILearnerLock, InProcessLearnerLock
from src.modules.adaptation.signals import adjust_difficulty, apply_signal_batch
from src.shared.config import Settings, get_settings
from src.shared.dto import ServiceResult
from src.shared.exceptions import (
    CompetencyNotFoundError,
    EmptySignalBatchError,
    LearnerException,
    NoDomainDataError,
    RuleNotFoundError,
    StorageError,
    TenantMismatchError,
    UnknownRuleFieldError,
    ValidationError,
)
from src.shared.models import ConditionLogic, RuleActionType, RuleScope

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fields a caller may change through update_rule
UPDATABLE_RULE_FIELDS = frozenset({
    "name",
    "description",
    "scope",
    "scope_id",
    "priority",
    "conditions",
    "condition_logic",
    "action",
    "is_active",
})


class AdaptationEngineService:
    """Adaptation engine over injected profile, rule and event stores.

    Writes for one learner are serialized through ``lock``; reads work on
    the snapshot the store returns and take no lock.
    """

    def __init__(
        self,
        profile_store: IProfileStore,
        rule_store: IRuleStore,
        event_store: IEventStore,
        lock: ILearnerLock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._profiles = profile_store
        self._rules = rule_store
        self._events = event_store
        self._lock = lock or InProcessLearnerLock()
        self._settings = settings or get_settings()

    # ===================
    # Helpers
    # ===================

    async def _execute(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
    ) -> ServiceResult[T]:
        """Run an operation, converting its outcome to a ServiceResult."""
        start = time.perf_counter()
        try:
            return ServiceResult.ok(await func())
        except LearnerException as e:
            logger.debug(f"{operation} failed with {e.code}: {e.message}")
            return ServiceResult.fail(e)
        except Exception as e:
            logger.error(f"{operation} failed with unexpected error: {e}", exc_info=True)
            return ServiceResult.fail(StorageError(operation, str(e)))
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"{operation} took {elapsed_ms:.1f}ms")

    @staticmethod
    def _check_tenant(profile: AdaptationProfile, tenant_id: str) -> AdaptationProfile:
        if profile.tenant_id != tenant_id:
            raise TenantMismatchError(profile.learner_id, tenant_id)
        return profile

    async def _find_profile(self, tenant_id: str, learner_id: str) -> AdaptationProfile | None:
        profile = await self._profiles.find_profile(learner_id)
        if profile is None:
            return None
        return self._check_tenant(profile, tenant_id)

    async def _ensure_profile(self, tenant_id: str, learner_id: str) -> AdaptationProfile:
        """Find or create the profile. Caller must hold the learner's lock."""
        profile = await self._find_profile(tenant_id, learner_id)
        if profile is not None:
            return profile

        # The store may hand back a row another tenant created concurrently
        profile = self._check_tenant(
            await self._profiles.create_profile(tenant_id, learner_id), tenant_id
        )
        logger.info(f"Created adaptation profile for learner {learner_id} (tenant {tenant_id})")
        return profile

    async def _load_profile(self, tenant_id: str, learner_id: str) -> AdaptationProfile:
        """Find the profile, taking the lock only when it must be created."""
        profile = await self._find_profile(tenant_id, learner_id)
        if profile is not None:
            return profile

        async with self._lock.hold(tenant_id, learner_id):
            return await self._ensure_profile(tenant_id, learner_id)

    # ===================
    # Profile & Signals
    # ===================

    async def get_or_create_profile(
        self, tenant_id: str, learner_id: str
    ) -> ServiceResult[AdaptationProfile]:
        """Get the learner's profile, creating it with defaults if absent."""
        return await self._execute(
            "get_or_create_profile",
            lambda: self._load_profile(tenant_id, learner_id),
        )

    async def apply_signals(
        self,
        tenant_id: str,
        learner_id: str,
        signals: Sequence[AdaptationSignal],
    ) -> ServiceResult[AdaptationProfile]:
        """Apply an ordered batch of signals and persist the profile.

        The whole batch is computed on a private copy. The profile and the
        batch's event are then saved together: either both persist or
        neither does.
        """

        async def run() -> AdaptationProfile:
            if not signals:
                raise EmptySignalBatchError(learner_id)

            async with self._lock.hold(tenant_id, learner_id):
                profile = await self._ensure_profile(tenant_id, learner_id)
                working = apply_signal_batch(copy.deepcopy(profile), signals)
                await self._profiles.save_profile(
                    working,
                    event=AdaptationEvent(
                        tenant_id=tenant_id,
                        learner_id=learner_id,
                        profile_id=working.id,
                        action=RuleAction(
                            type=RuleActionType.RECORD_SIGNALS,
                            parameters={"signal_count": len(signals)},
                        ),
                        trigger_signals=list(signals),
                    ),
                )

            logger.debug(
                f"Applied {len(signals)} signals for learner {learner_id}: "
                f"accuracy={working.ema_state.accuracy:.3f}, "
                f"difficulty={working.current_difficulty:.2f}"
            )
            return working

        return await self._execute("apply_signals", run)

    # ===================
    # Learner Model Views
    # ===================

    async def get_mastery_estimate(
        self, tenant_id: str, learner_id: str, competency_id: str
    ) -> ServiceResult[MasteryEstimate]:
        """Get the BKT estimate, confidence and trend for a competency."""

        async def run() -> MasteryEstimate:
            profile = await self._find_profile(tenant_id, learner_id)
            state = profile.get_competency(competency_id) if profile else None
            if state is None:
                raise CompetencyNotFoundError(learner_id, competency_id)
            return estimate_mastery(state)

        return await self._execute("get_mastery_estimate", run)

    async def calculate_zpd(
        self, tenant_id: str, learner_id: str, domain: str
    ) -> ServiceResult[ZPDRange]:
        """Compute the Zone of Proximal Development for a domain."""

        async def run() -> ZPDRange:
            profile = await self._find_profile(tenant_id, learner_id)
            if profile is None:
                raise NoDomainDataError(learner_id, domain)
            return zpd.calculate_zpd(learner_id, profile.competency_states, domain)

        return await self._execute("calculate_zpd", run)

    async def get_optimal_difficulty(
        self, tenant_id: str, learner_id: str
    ) -> ServiceResult[float]:
        """Preview the difficulty rule against current state. Nothing is saved."""

        async def run() -> float:
            profile = await self._load_profile(tenant_id, learner_id)
            return adjust_difficulty(profile.current_difficulty, profile.ema_state.accuracy)

        return await self._execute("get_optimal_difficulty", run)

    async def assess_fatigue(
        self, tenant_id: str, learner_id: str, session_id: str
    ) -> ServiceResult[FatigueAssessment]:
        """Assess fatigue from the session's recorded signals."""

        async def run() -> FatigueAssessment:
            # Tenant check only; a learner with no profile has no signals
            await self._find_profile(tenant_id, learner_id)
            events = await self._events.query_events(
                tenant_id, learner_id, session_id=session_id
            )
            signals = fatigue.session_signals(events, session_id)
            assessment = fatigue.assess_fatigue(learner_id, session_id, signals)
            logger.debug(
                f"Fatigue for learner {learner_id} session {session_id}: "
                f"{assessment.overall_score} ({assessment.recommendation.value}, "
                f"{len(signals)} signals)"
            )
            return assessment

        return await self._execute("assess_fatigue", run)

    # ===================
    # Decisions
    # ===================

    async def evaluate_decision_gate(
        self,
        tenant_id: str,
        learner_id: str,
        gate_input: DecisionGateInput,
    ) -> ServiceResult[DecisionGateResult]:
        """Return the action of the first satisfied rule, if any.

        A triggered rule is recorded as exactly one adaptation event.
        """

        async def run() -> DecisionGateResult:
            profile = await self._load_profile(tenant_id, learner_id)
            rules = await self._rules.list_active_rules(tenant_id)

            rule = first_triggered_rule(rules, profile, gate_input)
            if rule is None:
                return DecisionGateResult()

            await self._events.append_event(
                AdaptationEvent(
                    tenant_id=tenant_id,
                    learner_id=learner_id,
                    profile_id=profile.id,
                    rule_id=rule.id,
                    action=rule.action,
                    trigger_signals=list(gate_input.signals),
                )
            )
            logger.info(
                f"Rule '{rule.name}' triggered for learner {learner_id}: "
                f"{rule.action.type.value}"
            )
            return DecisionGateResult(triggered_rule=rule, action=rule.action)

        return await self._execute("evaluate_decision_gate", run)

    async def score_next_steps(
        self,
        tenant_id: str,
        learner_id: str,
        candidates: Sequence[CandidateStep],
    ) -> ServiceResult[list[ScoredStep]]:
        """Rank candidate steps by composite score, best first."""

        async def run() -> list[ScoredStep]:
            if not candidates:
                return []
            profile = await self._load_profile(tenant_id, learner_id)
            return next_step.score_next_steps(profile, candidates)

        return await self._execute("score_next_steps", run)

    # ===================
    # Rules
    # ===================

    async def get_rules(
        self,
        tenant_id: str,
        scope: RuleScope | None = None,
        is_active: bool | None = None,
    ) -> ServiceResult[list[AdaptationRule]]:
        """List the tenant's rules ascending by priority."""
        return await self._execute(
            "get_rules",
            lambda: self._rules.list_rules(tenant_id, scope=scope, is_active=is_active),
        )

    async def create_rule(
        self, tenant_id: str, definition: RuleDefinition
    ) -> ServiceResult[AdaptationRule]:
        """Validate and store a new rule."""

        async def run() -> AdaptationRule:
            if not definition.name or not definition.name.strip():
                raise ValidationError("name", "Rule name must not be empty")
            validate_conditions(definition.conditions)

            rule = await self._rules.create_rule(
                AdaptationRule(
                    tenant_id=tenant_id,
                    name=definition.name,
                    description=definition.description,
                    scope=definition.scope,
                    scope_id=definition.scope_id,
                    priority=definition.priority,
                    conditions=list(definition.conditions),
                    condition_logic=definition.condition_logic,
                    action=definition.action,
                    is_active=definition.is_active,
                )
            )
            logger.info(f"Created adaptation rule '{rule.name}' ({rule.id}) for tenant {tenant_id}")
            return rule

        return await self._execute("create_rule", run)

    async def update_rule(
        self, tenant_id: str, rule_id: UUID, **updates: Any
    ) -> ServiceResult[AdaptationRule]:
        """Validate and apply field updates to a rule the tenant owns."""

        async def run() -> AdaptationRule:
            unknown = sorted(set(updates) - UPDATABLE_RULE_FIELDS)
            if unknown:
                raise UnknownRuleFieldError(unknown)

            rule = await self._rules.get_rule(tenant_id, rule_id)
            if rule is None:
                raise RuleNotFoundError(rule_id)

            updated = replace(rule, **_coerce_rule_updates(updates))
            if not updated.name or not updated.name.strip():
                raise ValidationError("name", "Rule name must not be empty")
            validate_conditions(updated.conditions)

            saved = await self._rules.update_rule(updated)
            logger.info(
                f"Updated adaptation rule {rule_id} for tenant {tenant_id}: "
                f"{', '.join(sorted(updates))}"
            )
            return saved

        return await self._execute("update_rule", run)

    # ===================
    # History
    # ===================

    async def get_adaptation_history(
        self,
        tenant_id: str,
        learner_id: str,
        limit: int | None = None,
        since: datetime | None = None,
    ) -> ServiceResult[list[AdaptationEvent]]:
        """Get the learner's adaptation events, newest first."""

        async def run() -> list[AdaptationEvent]:
            effective_limit = self._settings.default_history_limit if limit is None else limit
            if effective_limit < 0:
                raise ValidationError("limit", "limit must not be negative")
            events = await self._events.query_events(
                tenant_id, learner_id, since=since, limit=effective_limit
            )
            return list(reversed(events))

        return await self._execute("get_adaptation_history", run)


def _coerce_rule_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Convert raw update values to the rule's field types.

    Raises:
        ValidationError: If a value cannot be converted
    """
    coerced = dict(updates)
    try:
        if "scope" in coerced:
            coerced["scope"] = RuleScope(coerced["scope"])
        if "condition_logic" in coerced:
            coerced["condition_logic"] = ConditionLogic(coerced["condition_logic"])
        if "conditions" in coerced:
            coerced["conditions"] = [
                c if isinstance(c, RuleCondition) else RuleCondition.from_dict(c)
                for c in coerced["conditions"]
            ]
        if "action" in coerced and not isinstance(coerced["action"], RuleAction):
            coerced["action"] = RuleAction.from_dict(coerced["action"])
        if "priority" in coerced:
            coerced["priority"] = int(coerced["priority"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError("updates", f"Invalid rule update: {e}") from e
    return coerced
