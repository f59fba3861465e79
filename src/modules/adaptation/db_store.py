"""Adaptation stores - Database-backed implementation."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from src.modules.adaptation.bkt import truncate_history
from src.modules.adaptation.interface import (
    AdaptationEvent,
    AdaptationProfile,
    AdaptationRule,
    AdaptationSignal,
    BKTCompetencyState,
    BKTParameters,
    EMAState,
    MasterySnapshot,
    RuleAction,
    RuleCondition,
)
from src.modules.adaptation.models import (
    AdaptationEventModel,
    AdaptationProfileModel,
    AdaptationRuleModel,
    BKTCompetencyStateModel,
)
from src.modules.adaptation.repository import (
    AdaptationEventRepository,
    AdaptationProfileRepository,
    AdaptationRuleRepository,
)
from src.shared.constants import MAX_MASTERY_HISTORY
from src.shared.database import get_db_session
from src.shared.datetime_utils import ensure_utc, utc_now
from src.shared.exceptions import ProfileNotFoundError, RuleNotFoundError
from src.shared.models import ConditionLogic, RuleScope

logger = logging.getLogger(__name__)


# ===================
# Model Conversions
# ===================

def _competency_model_to_state(model: BKTCompetencyStateModel) -> BKTCompetencyState:
    """Convert BKTCompetencyStateModel to BKTCompetencyState."""
    return BKTCompetencyState(
        competency_id=model.competency_id,
        domain=model.domain,
        params=BKTParameters(
            p_learn=model.p_learn,
            p_guess=model.p_guess,
            p_slip=model.p_slip,
            p_known=model.p_known,
        ),
        observations=model.observations,
        last_observation_at=ensure_utc(model.last_observation_at) or utc_now(),
        mastery_history=tuple(
            MasterySnapshot.from_dict(entry) for entry in (model.mastery_history or [])
        ),
    )


def _profile_model_to_profile(
    model: AdaptationProfileModel,
    competency_states: list[BKTCompetencyState],
) -> AdaptationProfile:
    """Convert AdaptationProfileModel to AdaptationProfile."""
    return AdaptationProfile(
        id=model.id,
        tenant_id=model.tenant_id,
        learner_id=model.learner_id,
        ema_state=EMAState(
            accuracy=model.ema_accuracy,
            response_time=model.ema_response_time,
            engagement=model.ema_engagement,
            hint_usage=model.ema_hint_usage,
            skip_rate=model.ema_skip_rate,
            last_updated=ensure_utc(model.ema_last_updated) or utc_now(),
        ),
        current_difficulty=model.current_difficulty,
        target_success_rate=model.target_success_rate,
        session_count=model.session_count,
        total_time_minutes=model.total_time_minutes,
        last_session_id=model.last_session_id,
        last_session_at=ensure_utc(model.last_session_at),
        competency_states=competency_states,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


def _rule_model_to_rule(model: AdaptationRuleModel) -> AdaptationRule:
    """Convert AdaptationRuleModel to AdaptationRule."""
    return AdaptationRule(
        id=model.id,
        tenant_id=model.tenant_id,
        name=model.name,
        description=model.description,
        scope=RuleScope(model.scope),
        scope_id=model.scope_id,
        priority=model.priority,
        conditions=[RuleCondition.from_dict(c) for c in (model.conditions or [])],
        condition_logic=ConditionLogic(model.condition_logic),
        action=RuleAction.from_dict(model.action),
        is_active=model.is_active,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


def _event_model_to_event(model: AdaptationEventModel) -> AdaptationEvent:
    """Convert AdaptationEventModel to AdaptationEvent."""
    return AdaptationEvent(
        id=model.id,
        tenant_id=model.tenant_id,
        learner_id=model.learner_id,
        profile_id=model.profile_id,
        rule_id=model.rule_id,
        trigger_signals=[
            AdaptationSignal.from_dict(s) for s in (model.trigger_signals or [])
        ],
        action=RuleAction.from_dict(model.action),
        outcome=model.outcome,
        timestamp=ensure_utc(model.timestamp),
    )


def _event_to_model(event: AdaptationEvent) -> AdaptationEventModel:
    """Convert AdaptationEvent to AdaptationEventModel."""
    session_ids = sorted(
        {s.context.session_id for s in event.trigger_signals if s.context.session_id}
    )
    return AdaptationEventModel(
        id=event.id,
        tenant_id=event.tenant_id,
        learner_id=event.learner_id,
        profile_id=event.profile_id,
        rule_id=event.rule_id,
        trigger_signals=[s.to_dict() for s in event.trigger_signals],
        session_ids=session_ids,
        action=event.action.to_dict(),
        outcome=event.outcome,
        timestamp=event.timestamp,
    )


def _apply_rule_fields(model: AdaptationRuleModel, rule: AdaptationRule) -> None:
    model.name = rule.name
    model.description = rule.description
    model.scope = rule.scope.value
    model.scope_id = rule.scope_id
    model.priority = rule.priority
    model.conditions = [c.to_dict() for c in rule.conditions]
    model.condition_logic = rule.condition_logic.value
    model.action = rule.action.to_dict()
    model.is_active = rule.is_active


# ===================
# Stores
# ===================

class DatabaseProfileStore:
    """PostgreSQL-backed profile store.

    A profile, all its competency states and the event recorded with them
    are written in one transaction, so a failed save leaves no partial
    state behind.
    """

    def __init__(self, history_limit: int = MAX_MASTERY_HISTORY) -> None:
        self._history_limit = history_limit

    async def find_profile(self, learner_id: str) -> AdaptationProfile | None:
        async with get_db_session() as db:
            repo = AdaptationProfileRepository(db)
            model = await repo.get_by_learner(learner_id)
            if model is None:
                return None
            states = [_competency_model_to_state(cs) for cs in model.competency_states]
            return _profile_model_to_profile(model, states)

    async def create_profile(self, tenant_id: str, learner_id: str) -> AdaptationProfile:
        try:
            async with get_db_session() as db:
                repo = AdaptationProfileRepository(db)
                model = await repo.create(
                    AdaptationProfileModel(tenant_id=tenant_id, learner_id=learner_id)
                )
                return _profile_model_to_profile(model, [])
        except IntegrityError:
            # learner_id is unique; another writer created the row first
            existing = await self.find_profile(learner_id)
            if existing is None:
                raise
            logger.debug(f"Profile for learner {learner_id} already existed, reusing it")
            return existing

    async def save_profile(
        self, profile: AdaptationProfile, event: AdaptationEvent | None = None
    ) -> None:
        async with get_db_session() as db:
            repo = AdaptationProfileRepository(db)
            model = await repo.get_by_learner(profile.learner_id)
            if model is None:
                raise ProfileNotFoundError(profile.learner_id)

            ema = profile.ema_state
            model.ema_accuracy = ema.accuracy
            model.ema_response_time = ema.response_time
            model.ema_engagement = ema.engagement
            model.ema_hint_usage = ema.hint_usage
            model.ema_skip_rate = ema.skip_rate
            model.ema_last_updated = ema.last_updated
            model.current_difficulty = profile.current_difficulty
            model.target_success_rate = profile.target_success_rate
            model.session_count = profile.session_count
            model.total_time_minutes = profile.total_time_minutes
            model.last_session_id = profile.last_session_id
            model.last_session_at = profile.last_session_at
            model.updated_at = utc_now()

            existing = {cs.competency_id: cs for cs in model.competency_states}
            for state in profile.competency_states:
                state = truncate_history(state, self._history_limit)
                row = existing.get(state.competency_id)
                if row is None:
                    row = BKTCompetencyStateModel(
                        competency_id=state.competency_id,
                        domain=state.domain,
                    )
                    model.competency_states.append(row)
                row.domain = state.domain
                row.p_learn = state.params.p_learn
                row.p_guess = state.params.p_guess
                row.p_slip = state.params.p_slip
                row.p_known = state.params.p_known
                row.observations = state.observations
                row.last_observation_at = state.last_observation_at
                row.mastery_history = [s.to_dict() for s in state.mastery_history]

            if event is not None:
                db.add(_event_to_model(event))

            await db.flush()


class DatabaseRuleStore:
    """PostgreSQL-backed rule store."""

    async def list_rules(
        self,
        tenant_id: str,
        scope: RuleScope | None = None,
        is_active: bool | None = None,
    ) -> list[AdaptationRule]:
        async with get_db_session() as db:
            repo = AdaptationRuleRepository(db)
            models = await repo.list_for_tenant(
                tenant_id,
                scope=scope.value if scope is not None else None,
                is_active=is_active,
            )
            return [_rule_model_to_rule(m) for m in models]

    async def list_active_rules(self, tenant_id: str) -> list[AdaptationRule]:
        return await self.list_rules(tenant_id, is_active=True)

    async def get_rule(self, tenant_id: str, rule_id: UUID) -> AdaptationRule | None:
        async with get_db_session() as db:
            repo = AdaptationRuleRepository(db)
            model = await repo.get_for_tenant(tenant_id, rule_id)
            return _rule_model_to_rule(model) if model is not None else None

    async def create_rule(self, rule: AdaptationRule) -> AdaptationRule:
        async with get_db_session() as db:
            repo = AdaptationRuleRepository(db)
            model = AdaptationRuleModel(id=rule.id, tenant_id=rule.tenant_id)
            _apply_rule_fields(model, rule)
            model = await repo.create(model)
            return _rule_model_to_rule(model)

    async def update_rule(self, rule: AdaptationRule) -> AdaptationRule:
        async with get_db_session() as db:
            repo = AdaptationRuleRepository(db)
            model = await repo.get_for_tenant(rule.tenant_id, rule.id)
            if model is None:
                raise RuleNotFoundError(rule.id)
            _apply_rule_fields(model, rule)
            model.updated_at = utc_now()
            model = await repo.update(model)
            return _rule_model_to_rule(model)


class DatabaseEventStore:
    """PostgreSQL-backed append-only event log."""

    async def append_event(self, event: AdaptationEvent) -> None:
        async with get_db_session() as db:
            repo = AdaptationEventRepository(db)
            await repo.create(_event_to_model(event))

    async def query_events(
        self,
        tenant_id: str,
        learner_id: str,
        session_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[AdaptationEvent]:
        if limit is not None and limit <= 0:
            return []
        async with get_db_session() as db:
            repo = AdaptationEventRepository(db)
            models = await repo.get_learner_events(
                tenant_id,
                learner_id,
                session_id=session_id,
                since=ensure_utc(since),
                limit=limit,
            )
            # Repository returns newest first
            return [_event_model_to_event(m) for m in reversed(models)]
