"""
Multi-strategy entity resolution.

- Models: Query, candidates, fused results and strategy outcomes
- Strategies: Independent matchers (exact, fuzzy, phonetic, pattern, ...)
- Orchestrator: Parallel fan-out with per-strategy timeouts
- Fusion: Reliability-weighted merge with corroboration bonuses
- Cache: Bounded, time-expiring cache of resolutions
- Engine: Main resolution and search entry point
"""

from counsel.resolution.models import (
    Query,
    MatchCandidate,
    StrategyContribution,
    FusedResult,
    StrategyOutcome,
    StrategyStatus,
    ResolutionReport,
)
from counsel.resolution.strategies import MatchingStrategy, default_strategies
from counsel.resolution.orchestrator import ParallelOrchestrator
from counsel.resolution.fusion import FusionScorer, FusionWeights
from counsel.resolution.cache import ResolutionCache, CacheStats
from counsel.resolution.engine import ResolutionEngine, ResolutionConfig

__all__ = [
    # Models
    "Query",
    "MatchCandidate",
    "StrategyContribution",
    "FusedResult",
    "StrategyOutcome",
    "StrategyStatus",
    "ResolutionReport",
    # Strategies
    "MatchingStrategy",
    "default_strategies",
    # Pipeline
    "ParallelOrchestrator",
    "FusionScorer",
    "FusionWeights",
    "ResolutionCache",
    "CacheStats",
    # Main engine
    "ResolutionEngine",
    "ResolutionConfig",
]
