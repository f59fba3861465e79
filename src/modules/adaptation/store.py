"""In-memory adaptation stores.

Dict-backed implementations of the store interfaces, used by default and in
tests. Profiles and rules are deep-copied on the way in and out so callers
always work on a private snapshot and never see a half-applied batch.
"""

import copy
from datetime import datetime
from uuid import UUID

from src.modules.adaptation.bkt import truncate_history
from src.modules.adaptation.interface import (
    AdaptationEvent,
    AdaptationProfile,
    AdaptationRule,
)
from src.shared.constants import MAX_MASTERY_HISTORY
from src.shared.datetime_utils import ensure_utc, utc_now
from src.shared.exceptions import ProfileNotFoundError, RuleNotFoundError
from src.shared.models import RuleScope


class InMemoryProfileStore:
    """Profiles keyed by learner id.

    Events passed to ``save_profile`` are written to ``event_store`` in the
    same step as the profile: if the append fails the profile is untouched.
    """

    def __init__(
        self,
        history_limit: int = MAX_MASTERY_HISTORY,
        event_store: "InMemoryEventStore | None" = None,
    ) -> None:
        self._history_limit = history_limit
        self._event_store = event_store
        self._profiles: dict[str, AdaptationProfile] = {}

    async def find_profile(self, learner_id: str) -> AdaptationProfile | None:
        profile = self._profiles.get(learner_id)
        return copy.deepcopy(profile) if profile is not None else None

    async def create_profile(self, tenant_id: str, learner_id: str) -> AdaptationProfile:
        existing = self._profiles.get(learner_id)
        if existing is not None:
            # Created concurrently, possibly under another tenant
            return copy.deepcopy(existing)
        profile = AdaptationProfile(tenant_id=tenant_id, learner_id=learner_id)
        self._profiles[learner_id] = profile
        return copy.deepcopy(profile)

    async def save_profile(
        self, profile: AdaptationProfile, event: AdaptationEvent | None = None
    ) -> None:
        if profile.learner_id not in self._profiles:
            raise ProfileNotFoundError(profile.learner_id)
        if event is not None and self._event_store is None:
            raise RuntimeError("InMemoryProfileStore has no event store to record events")

        stored = copy.deepcopy(profile)
        stored.competency_states = [
            truncate_history(cs, self._history_limit) for cs in stored.competency_states
        ]
        stored.updated_at = utc_now()
        if event is not None:
            await self._event_store.append_event(event)
        self._profiles[profile.learner_id] = stored


class InMemoryRuleStore:
    """Rules keyed by id."""

    def __init__(self) -> None:
        self._rules: dict[UUID, AdaptationRule] = {}

    async def list_rules(
        self,
        tenant_id: str,
        scope: RuleScope | None = None,
        is_active: bool | None = None,
    ) -> list[AdaptationRule]:
        rules = [
            rule
            for rule in self._rules.values()
            if rule.tenant_id == tenant_id
            and (scope is None or rule.scope == scope)
            and (is_active is None or rule.is_active == is_active)
        ]
        rules.sort(key=lambda r: r.priority)
        return copy.deepcopy(rules)

    async def list_active_rules(self, tenant_id: str) -> list[AdaptationRule]:
        return await self.list_rules(tenant_id, is_active=True)

    async def get_rule(self, tenant_id: str, rule_id: UUID) -> AdaptationRule | None:
        rule = self._rules.get(rule_id)
        if rule is None or rule.tenant_id != tenant_id:
            return None
        return copy.deepcopy(rule)

    async def create_rule(self, rule: AdaptationRule) -> AdaptationRule:
        self._rules[rule.id] = copy.deepcopy(rule)
        return copy.deepcopy(rule)

    async def update_rule(self, rule: AdaptationRule) -> AdaptationRule:
        if rule.id not in self._rules:
            raise RuleNotFoundError(rule.id)
        rule.updated_at = utc_now()
        self._rules[rule.id] = copy.deepcopy(rule)
        return copy.deepcopy(rule)


class InMemoryEventStore:
    """Append-only event log."""

    def __init__(self) -> None:
        self._events: list[AdaptationEvent] = []

    async def append_event(self, event: AdaptationEvent) -> None:
        self._events.append(copy.deepcopy(event))

    async def query_events(
        self,
        tenant_id: str,
        learner_id: str,
        session_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[AdaptationEvent]:
        since = ensure_utc(since)
        events = [
            event
            for event in self._events
            if event.tenant_id == tenant_id
            and event.learner_id == learner_id
            and (since is None or ensure_utc(event.timestamp) >= since)
            and (
                session_id is None
                or any(s.context.session_id == session_id for s in event.trigger_signals)
            )
        ]
        events.sort(key=lambda e: ensure_utc(e.timestamp))
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return copy.deepcopy(events)
