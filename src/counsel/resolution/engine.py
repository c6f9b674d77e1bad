"""
Resolution engine.

The single entry point used by the import pipeline and the search
layer. Owns the active reference store snapshot, the domain tables,
the strategies and the cache; everything is injected at construction.

Flow:
1. Parse: normalize the raw text and derive query forms and flags
2. Cache: return a fresh cached answer for the same query and store
3. Fan-out: run all applicable strategies in parallel
4. Fusion: merge the outcomes into one ranked list
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Collection, Iterable, Optional, Sequence, Union

from counsel.exceptions import ReferenceDataError
from counsel.reference.models import EntityType, Location
from counsel.reference.store import ReferenceStore, load_reference_file
from counsel.reference.tables import DomainTables, load_domain_tables
from counsel.resolution.cache import CacheStats, ResolutionCache
from counsel.resolution.fusion import FusionScorer
from counsel.resolution.models import (
    FusedResult,
    Query,
    ResolutionReport,
    SearchFilters,
    StrategyStatus,
)
from counsel.resolution.orchestrator import ParallelOrchestrator
from counsel.resolution.strategies import MatchingStrategy, default_strategies
from counsel.text.normalizer import TextNormalizer
from counsel.text.variations import VariationGenerator

logger = logging.getLogger(__name__)


@dataclass
class ResolutionConfig:
    """Configuration for entity resolution."""

    strategy_timeout_ms: int = 200
    resolve_deadline_ms: int = 1000
    fuzzy_threshold: int = 3
    similarity_threshold: float = 0.3
    regex_timeout_ms: int = 50
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 100
    default_search_limit: int = 10

    @classmethod
    def from_settings(cls, settings=None) -> "ResolutionConfig":
        """Build from application settings (the global instance by default)."""
        if settings is None:
            from counsel.config import settings

        return cls(
            strategy_timeout_ms=settings.strategy_timeout_ms,
            resolve_deadline_ms=settings.resolve_deadline_ms,
            fuzzy_threshold=settings.fuzzy_threshold,
            similarity_threshold=settings.similarity_threshold,
            regex_timeout_ms=settings.regex_timeout_ms,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            cache_max_entries=settings.cache_max_entries,
            default_search_limit=settings.default_search_limit,
        )


LocationHint = Union[Location, str, None]


class ResolutionEngine:
    """
    Resolves noisy text to canonical entities.

    Concurrent calls never block each other: each call captures the
    store snapshot active when it starts, and reload() swaps in a new
    snapshot without touching the old one.
    """

    def __init__(
        self,
        store: Optional[ReferenceStore] = None,
        tables: Optional[DomainTables] = None,
        config: Optional[ResolutionConfig] = None,
        strategies: Optional[Sequence[MatchingStrategy]] = None,
    ):
        self.config = config or ResolutionConfig()
        self.tables = tables or DomainTables()
        self.normalizer = TextNormalizer(self.tables.ocr_rules)
        self.generator = VariationGenerator(self.tables.word_forms, self.normalizer)

        if strategies is None:
            strategies = default_strategies(
                self.tables,
                fuzzy_threshold=self.config.fuzzy_threshold,
                similarity_threshold=self.config.similarity_threshold,
            )
        self.orchestrator = ParallelOrchestrator(
            strategies,
            strategy_timeout=self.config.strategy_timeout_ms / 1000,
        )
        self.fusion = FusionScorer()
        self._strategies = {s.name: s for s in strategies}
        self._cache = ResolutionCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )
        self._place_words = self.tables.place_words

        self._store = store or ReferenceStore.empty()
        self._swap_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings=None) -> "ResolutionEngine":
        """
        Build an engine from application settings, loading the configured
        domain tables and reference data files.
        """
        if settings is None:
            from counsel.config import settings

        tables = (
            load_domain_tables(settings.domain_tables_path)
            if settings.domain_tables_path else DomainTables()
        )
        engine = cls(tables=tables, config=ResolutionConfig.from_settings(settings))
        if settings.reference_data_path:
            engine.reload_from_file(settings.reference_data_path)
        return engine

    @property
    def store(self) -> ReferenceStore:
        """The currently active reference snapshot."""
        return self._store

    @property
    def strategies(self) -> list[MatchingStrategy]:
        return list(self.orchestrator.strategies)

    def parse_query(
        self,
        raw_text: str,
        entity_type: EntityType,
        location_hint: LocationHint = None,
    ) -> Query:
        return Query.parse(
            raw_text,
            EntityType(entity_type),
            location_hint=self._resolve_hint(location_hint),
            normalizer=self.normalizer,
            generator=self.generator,
            regex_timeout=self.config.regex_timeout_ms / 1000,
            known_words=self._place_words,
        )

    def _resolve_hint(self, hint: LocationHint) -> Optional[Location]:
        """Turn a caller hint into a complete Location."""
        if hint is None:
            return None
        if isinstance(hint, Location):
            return self.tables.complete_location(hint) if hint else None

        text = self.normalizer.normalize(hint)
        if not text:
            return None
        location = self.tables.resolve_location(text)
        if location is None:
            logger.debug(f"Unknown location hint '{hint}', matching as city name")
            location = Location(city=text)
        return location

    async def resolve_entity(
        self,
        raw_text: str,
        entity_type: EntityType,
        location_hint: LocationHint = None,
        deadline_ms: Optional[float] = None,
    ) -> list[FusedResult]:
        """
        Resolve a noisy field to ranked canonical entities.

        Args:
            raw_text: Field value as extracted (e.g. "PGIMER,,")
            entity_type: Entity type to resolve against
            location_hint: Location or place name narrowing colleges
            deadline_ms: Overall time budget; defaults to the configured
                resolve deadline

        Returns:
            Ranked results; empty when nothing matched. Acceptance
            thresholds are the caller's decision.
        """
        report = await self.resolve_entity_report(
            raw_text, entity_type, location_hint=location_hint, deadline_ms=deadline_ms
        )
        return report.results

    async def resolve_entity_report(
        self,
        raw_text: str,
        entity_type: EntityType,
        location_hint: LocationHint = None,
        deadline_ms: Optional[float] = None,
        strategies: Optional[Collection[str]] = None,
    ) -> ResolutionReport:
        """
        Like resolve_entity, with per-strategy timing and status.

        strategies limits the run to the named strategies; the others
        are reported as skipped.

        Raises:
            ValueError: If strategies names an unknown strategy
        """
        started = time.perf_counter()
        only = self._strategy_subset(strategies)
        store = self._store
        query = self.parse_query(raw_text, entity_type, location_hint)

        if query.is_empty:
            return ResolutionReport(query=query, results=[])

        cache_key = self._cache_key(query, store, only)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return ResolutionReport(
                query=query,
                results=list(cached),
                duration_ms=(time.perf_counter() - started) * 1000,
                cached=True,
            )

        candidates = store.entities(query.entity_type)
        if not candidates:
            return ResolutionReport(query=query, results=[])

        budget = (
            deadline_ms if deadline_ms is not None else self.config.resolve_deadline_ms
        ) / 1000
        # Parsing and the cache lookup count against the deadline
        remaining = budget - (time.perf_counter() - started)
        outcomes = await self.orchestrator.run(
            query, candidates, deadline=remaining, only=only
        )
        results = self.fusion.fuse(query, outcomes, self._strategies)

        # Degraded answers are not cached
        if all(o.status in (StrategyStatus.OK, StrategyStatus.SKIPPED) for o in outcomes):
            self._cache.put(cache_key, tuple(results))

        duration_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            f"Resolved '{raw_text}' ({query.entity_type.value}) to {len(results)} "
            f"results in {duration_ms:.1f}ms"
        )
        return ResolutionReport(
            query=query, results=results, outcomes=outcomes, duration_ms=duration_ms
        )

    async def search(
        self,
        query: str,
        entity_type: EntityType,
        limit: Optional[int] = None,
        filters: Optional[SearchFilters] = None,
        strategies: Optional[Collection[str]] = None,
    ) -> list[FusedResult]:
        """
        Ranked suggestions for free-text search.

        Pagination and cross-type merging are left to the caller.

        Args:
            query: Search text
            entity_type: Entity type to search
            limit: Maximum number of results; defaults to the configured limit
            filters: Location and score restrictions, applied before the limit
            strategies: Names of the strategies to run (all when omitted)

        Raises:
            ValueError: If strategies names an unknown strategy
        """
        if limit is None:
            limit = self.config.default_search_limit
        if limit <= 0:
            return []
        report = await self.resolve_entity_report(query, entity_type, strategies=strategies)
        results = report.results
        if filters is not None:
            accept = filters.predicate(self.tables)
            results = [r for r in results if accept(r)]
        return results[:limit]

    async def search_all(
        self,
        query: str,
        limit: Optional[int] = None,
        filters: Optional[SearchFilters] = None,
        strategies: Optional[Collection[str]] = None,
    ) -> dict[EntityType, list[FusedResult]]:
        """Search every entity type, one resolution per type."""
        types = list(EntityType)
        results = await asyncio.gather(
            *(
                self.search(query, entity_type, limit, filters=filters, strategies=strategies)
                for entity_type in types
            )
        )
        return dict(zip(types, results))

    def _strategy_subset(self, names: Optional[Collection[str]]) -> Optional[frozenset[str]]:
        if names is None:
            return None
        subset = frozenset(names)
        unknown = subset - set(self._strategies)
        if unknown:
            raise ValueError(
                f"Unknown strategies {sorted(unknown)}; expected some of {self.orchestrator.names}"
            )
        return subset

    @staticmethod
    def _cache_key(
        query: Query, store: ReferenceStore, only: Optional[frozenset[str]] = None
    ) -> tuple:
        hint = query.location_hint
        return (
            store.version,
            query.entity_type.value,
            query.normalized,
            query.wildcard_text,
            query.pattern,
            (hint.state, hint.city, hint.region) if hint else None,
            tuple(sorted(only)) if only is not None else None,
        )

    def reload(self, records: Iterable[Union[dict[str, Any], Any]]) -> ReferenceStore:
        """
        Replace the reference store with one built from new records.

        The new store is built completely before it is swapped in; if the
        records are invalid the current store stays active.

        Raises:
            ReferenceDataError: If the records cannot be loaded
        """
        version = self._store.version + 1
        try:
            new_store = ReferenceStore.from_records(records, self.tables, version=version)
        except ReferenceDataError as e:
            logger.error(
                f"Reference reload rejected, keeping version {self._store.version}: {e}"
            )
            raise

        with self._swap_lock:
            new_store.version = max(version, self._store.version + 1)
            self._store = new_store
            self._cache.clear()

        counts = ", ".join(f"{t}={n}" for t, n in new_store.counts().items() if n)
        logger.info(f"Loaded reference store version {new_store.version} ({counts})")
        return new_store

    def reload_from_file(self, path: Union[str, Path]) -> ReferenceStore:
        """Reload from a JSON reference file (see load_reference_file)."""
        try:
            records = load_reference_file(path)
        except ReferenceDataError as e:
            logger.error(
                f"Reference reload rejected, keeping version {self._store.version}: {e}"
            )
            raise
        return self.reload(records)

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()

    def close(self) -> None:
        """Drop cached results; the engine holds no other resources."""
        self._cache.clear()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        self.close()
