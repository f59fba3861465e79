"""Adaptation Module - Mastery estimation, difficulty targeting and decision gates.

Usage:
    # Recommended: Use service registry (respects feature flags)
    from src.modules.adaptation import get_adaptation_engine
    engine = get_adaptation_engine()
    result = await engine.apply_signals(tenant_id, learner_id, signals)

    # Direct construction (bypasses feature flags)
    from src.modules.adaptation import (
        AdaptationEngineService, InMemoryEventStore, InMemoryProfileStore, InMemoryRuleStore,
    )
    events = InMemoryEventStore()
    engine = AdaptationEngineService(
        InMemoryProfileStore(event_store=events), InMemoryRuleStore(), events,
    )
"""

from src.modules.adaptation.interface import (
    AdaptationEvent,
    AdaptationProfile,
    AdaptationRule,
    AdaptationSignal,
    BKTCompetencyState,
    BKTParameters,
    CandidateStep,
    DecisionGateInput,
    DecisionGateResult,
    EMAState,
    FatigueAssessment,
    FatigueComponents,
    IAdaptationEngine,
    IEventStore,
    IProfileStore,
    IRuleStore,
    MasteryEstimate,
    MasterySnapshot,
    RuleAction,
    RuleCondition,
    RuleDefinition,
    ScoredStep,
    SignalContext,
    StepScoreComponents,
    ZPDCompetency,
    ZPDRange,
)
from src.modules.adaptation.locks import InProcessLearnerLock, RedisLearnerLock
from src.modules.adaptation.service import AdaptationEngineService
from src.modules.adaptation.store import (
    InMemoryEventStore,
    InMemoryProfileStore,
    InMemoryRuleStore,
)

# Registry-based engine getter (recommended)
from src.shared.service_registry import get_adaptation_engine

__all__ = [
    # Interface types
    "AdaptationEvent",
    "AdaptationProfile",
    "AdaptationRule",
    "AdaptationSignal",
    "BKTCompetencyState",
    "BKTParameters",
    "CandidateStep",
    "DecisionGateInput",
    "DecisionGateResult",
    "EMAState",
    "FatigueAssessment",
    "FatigueComponents",
    "IAdaptationEngine",
    "IEventStore",
    "IProfileStore",
    "IRuleStore",
    "MasteryEstimate",
    "MasterySnapshot",
    "RuleAction",
    "RuleCondition",
    "RuleDefinition",
    "ScoredStep",
    "SignalContext",
    "StepScoreComponents",
    "ZPDCompetency",
    "ZPDRange",
    # Implementations
    "AdaptationEngineService",
    "InMemoryProfileStore",
    "InMemoryRuleStore",
    "InMemoryEventStore",
    "InProcessLearnerLock",
    "RedisLearnerLock",
    # Factory (respects feature flags)
    "get_adaptation_engine",
]
