"""Adaptation repository for data access operations.

This module implements the repository pattern for Adaptation-related entities,
separating data access logic from business logic.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import and_, desc, select
from sqlalchemy.orm import selectinload

from src.modules.adaptation.models import (
    AdaptationEventModel,
    AdaptationProfileModel,
    AdaptationRuleModel,
)
from src.shared.repository import BaseRepository


class AdaptationProfileRepository(BaseRepository[AdaptationProfileModel]):
    """Repository for AdaptationProfile entities."""

    @property
    def _model_class(self) -> type[AdaptationProfileModel]:
        return AdaptationProfileModel

    async def get_by_learner(self, learner_id: str) -> AdaptationProfileModel | None:
        """Get a learner's profile with its competency states loaded.

        Args:
            learner_id: Learner identifier

        Returns:
            Profile if found, None otherwise
        """
        result = await self._session.execute(
            select(AdaptationProfileModel)
            .options(selectinload(AdaptationProfileModel.competency_states))
            .where(AdaptationProfileModel.learner_id == learner_id)
        )
        return result.scalar_one_or_none()


class AdaptationRuleRepository(BaseRepository[AdaptationRuleModel]):
    """Repository for AdaptationRule entities."""

    @property
    def _model_class(self) -> type[AdaptationRuleModel]:
        return AdaptationRuleModel

    async def list_for_tenant(
        self,
        tenant_id: str,
        scope: str | None = None,
        is_active: bool | None = None,
    ) -> Sequence[AdaptationRuleModel]:
        """Get a tenant's rules, lowest priority value first.

        Args:
            tenant_id: Tenant identifier
            scope: Optional scope filter
            is_active: Optional active filter

        Returns:
            Sequence of rules
        """
        filters = [AdaptationRuleModel.tenant_id == tenant_id]
        if scope is not None:
            filters.append(AdaptationRuleModel.scope == scope)
        if is_active is not None:
            filters.append(AdaptationRuleModel.is_active == is_active)

        result = await self._session.execute(
            select(AdaptationRuleModel)
            .where(and_(*filters))
            .order_by(AdaptationRuleModel.priority, AdaptationRuleModel.created_at)
        )
        return result.scalars().all()

    async def get_for_tenant(
        self,
        tenant_id: str,
        rule_id: UUID,
    ) -> AdaptationRuleModel | None:
        """Get a rule only if the tenant owns it."""
        result = await self._session.execute(
            select(AdaptationRuleModel).where(
                and_(
                    AdaptationRuleModel.id == rule_id,
                    AdaptationRuleModel.tenant_id == tenant_id,
                )
            )
        )
        return result.scalar_one_or_none()


class AdaptationEventRepository(BaseRepository[AdaptationEventModel]):
    """Repository for AdaptationEvent entities."""

    @property
    def _model_class(self) -> type[AdaptationEventModel]:
        return AdaptationEventModel

    async def get_learner_events(
        self,
        tenant_id: str,
        learner_id: str,
        session_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[AdaptationEventModel]:
        """Get adaptation events for a learner.

        Args:
            tenant_id: Tenant identifier
            learner_id: Learner identifier
            session_id: Only events carrying a signal from this session
            since: Only events at or after this instant
            limit: Maximum events

        Returns:
            Sequence of events, newest first
        """
        filters = [
            AdaptationEventModel.tenant_id == tenant_id,
            AdaptationEventModel.learner_id == learner_id,
        ]
        if since is not None:
            filters.append(AdaptationEventModel.timestamp >= since)
        if session_id is not None:
            filters.append(AdaptationEventModel.session_ids.contains([session_id]))

        query = (
            select(AdaptationEventModel)
            .where(and_(*filters))
            .order_by(desc(AdaptationEventModel.timestamp))
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self._session.execute(query)
        return result.scalars().all()
