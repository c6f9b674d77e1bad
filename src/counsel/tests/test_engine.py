"""
Tests for the resolution engine.

Tests end-to-end resolution of noisy counselling fields:
- OCR noise and location hints
- Abbreviations and initials
- Exact-match symmetry over every stored variation
- Partial failure and deadlines
- Caching and reference reloads
"""

import asyncio
import time
from collections import defaultdict

import pytest

from counsel.exceptions import ReferenceDataError
from counsel.reference.models import EntityType, Location
from counsel.resolution.engine import ResolutionConfig, ResolutionEngine
from counsel.resolution.models import SearchFilters, StrategyStatus
from counsel.resolution.strategies import MatchingStrategy, default_strategies


class ExplodingStrategy(MatchingStrategy):
    """Strategy that always raises."""

    @property
    def name(self) -> str:
        return "exploding"

    def match(self, query, candidates):
        raise RuntimeError("strategy crashed")


class SleepingStrategy(MatchingStrategy):
    """Strategy that blocks far beyond any timeout."""

    def __init__(self, seconds: float = 1.0):
        self.seconds = seconds

    @property
    def name(self) -> str:
        return "sleeping"

    def match(self, query, candidates):
        time.sleep(self.seconds)
        return [self.candidate(c, 100, "sleeping") for c in candidates]


def top_id(results) -> str:
    assert results, "expected at least one result"
    return results[0].entity.id


class TestResolveEntity:
    """Tests for resolving noisy fields."""

    @pytest.mark.asyncio
    async def test_ocr_noise_with_location_hint(self, engine):
        """Stray commas and a city hint resolve to the right college."""
        results = await engine.resolve_entity("PGIMER,,", EntityType.COLLEGE, location_hint="CHANDIGARH")

        assert top_id(results) == "c1"
        assert results[0].final_score >= 80
        assert results[0].accepted()

    @pytest.mark.asyncio
    async def test_abbreviation_matches_initials(self, engine):
        """SKS finds S.K.S. and never a name that only shares letters."""
        results = await engine.resolve_entity("SKS", EntityType.COLLEGE)

        assert top_id(results) == "c3"
        assert results[0].final_score >= 60
        assert "c4" not in {r.entity.id for r in results}

    @pytest.mark.parametrize("text", ["A J", "AJ", "A.J.", "a.j."])
    @pytest.mark.asyncio
    async def test_initials_round_trip(self, engine, text):
        """Dotted, spaced and joined initials all find the same college."""
        results = await engine.resolve_entity(text, EntityType.COLLEGE)

        assert top_id(results) == "c2"
        assert results[0].final_score >= 70

    @pytest.mark.asyncio
    async def test_exact_match_symmetry(self, engine):
        """Every stored variation resolves back to its own entity with a perfect score."""
        owners = defaultdict(set)
        for entity_type in EntityType:
            for entity in engine.store.entities(entity_type):
                for name in entity.variations | {entity.canonical_name}:
                    owners[(entity_type, name)].add(entity.id)

        checked = 0
        for entity_type in EntityType:
            for entity in engine.store.entities(entity_type):
                for name in sorted(entity.variations):
                    if len(owners[(entity_type, name)]) > 1:
                        continue
                    results = await engine.resolve_entity(name, entity_type)

                    assert top_id(results) == entity.id, name
                    assert results[0].final_score == 100, name
                    checked += 1

        assert checked > 50

    @pytest.mark.asyncio
    async def test_ocr_corrected_program(self, engine):
        """OCR-split specialties resolve after correction."""
        results = await engine.resolve_entity("MD Radio- Diagnosis", EntityType.PROGRAM)

        assert top_id(results) == "p3"
        assert results[0].final_score == 100

    @pytest.mark.asyncio
    async def test_misspelling(self, engine):
        """Spelling errors still find the college."""
        results = await engine.resolve_entity("MAULANA AZAD MEDICEL COLEGE", EntityType.COLLEGE)

        assert top_id(results) == "c5"

    @pytest.mark.asyncio
    async def test_word_abbreviation(self, engine):
        """A well-known acronym finds its institute."""
        results = await engine.resolve_entity("AIIMS", EntityType.COLLEGE)

        assert top_id(results) == "c8"
        assert results[0].final_score >= 70

    @pytest.mark.asyncio
    async def test_location_hint_disambiguates(self, engine):
        """Colleges sharing a name are separated by the hint."""
        nagpur = await engine.resolve_entity("GOVT MEDICAL COLLEGE", EntityType.COLLEGE, location_hint="NAGPUR")
        kota = await engine.resolve_entity("GOVT MEDICAL COLLEGE", EntityType.COLLEGE, location_hint="Kota")

        assert top_id(nagpur) == "c7"
        assert top_id(kota) == "c6"

    @pytest.mark.asyncio
    async def test_location_in_query(self, engine):
        """A trailing city in the query picks that college."""
        results = await engine.resolve_entity("GOVT MEDICAL COLLEGE, NAGPUR", EntityType.COLLEGE)

        assert top_id(results) == "c7"
        assert "c6" in {r.entity.id for r in results}

    @pytest.mark.asyncio
    async def test_location_object_hint(self, engine):
        """A Location can be passed instead of a place name."""
        results = await engine.resolve_entity(
            "GOVT MEDICAL COLLEGE", EntityType.COLLEGE, location_hint=Location(state="RAJASTHAN")
        )

        assert top_id(results) == "c6"

    @pytest.mark.asyncio
    async def test_unknown_hint(self, engine):
        """Unknown places do not prevent resolution."""
        results = await engine.resolve_entity("MAULANA AZAD", EntityType.COLLEGE, location_hint="ATLANTIS")

        assert top_id(results) == "c5"

    @pytest.mark.asyncio
    async def test_wildcard(self, engine):
        """Wildcards reach every matching college."""
        results = await engine.resolve_entity("GOVERNMENT MEDICAL COLLEGE, *", EntityType.COLLEGE)

        assert {"c6", "c7"} <= {r.entity.id for r in results}

    @pytest.mark.asyncio
    async def test_regex(self, engine):
        """Delimited patterns are evaluated against canonical names."""
        report = await engine.resolve_entity_report("/NURSING$/", EntityType.COLLEGE)
        statuses = {o.name: o.status for o in report.outcomes}

        assert statuses["regex"] == StrategyStatus.OK
        assert {"c3", "c4"} <= {r.entity.id for r in report.results}

    @pytest.mark.asyncio
    async def test_regex_is_not_read_as_text(self, engine):
        """A pattern reaches only the pattern strategy, so its exclusions hold."""
        report = await engine.resolve_entity_report("/^(?!SUPER)/", EntityType.COLLEGE)
        statuses = {o.name: o.status for o in report.outcomes}
        found = {r.entity.id for r in report.results}

        assert report.query.normalized == ""
        assert statuses["regex"] == StrategyStatus.OK
        assert all(
            status == StrategyStatus.SKIPPED
            for name, status in statuses.items()
            if name != "regex"
        )
        assert found == {"c1", "c2", "c3", "c5", "c6", "c7", "c8", "c9"}

    @pytest.mark.asyncio
    async def test_entity_type_string(self, engine):
        """Entity types may be given by value."""
        results = await engine.resolve_entity("sc", "category")

        assert top_id(results) == "k3"

    @pytest.mark.parametrize("text", ["", "   ", ",,,", "!!!", None])
    @pytest.mark.asyncio
    async def test_empty_query(self, engine, text):
        """Queries that normalize to nothing resolve to nothing."""
        assert await engine.resolve_entity(text, EntityType.COLLEGE) == []

    @pytest.mark.asyncio
    async def test_no_match(self, engine):
        """Unrelated text returns an empty list."""
        assert await engine.resolve_entity("XQZW", EntityType.QUOTA) == []

    @pytest.mark.asyncio
    async def test_empty_store(self, tables):
        """An engine without reference data returns nothing."""
        with ResolutionEngine(tables=tables) as engine:
            assert await engine.resolve_entity("MAULANA AZAD", EntityType.COLLEGE) == []

    @pytest.mark.asyncio
    async def test_scores_sorted_and_bounded(self, engine):
        """Results are sorted and scores lie within 30-100."""
        results = await engine.resolve_entity("MEDICAL", EntityType.COLLEGE)
        scores = [r.final_score for r in results]

        assert scores == sorted(scores, reverse=True)
        assert all(30 <= s <= 100 for s in scores)


class TestPartialFailure:
    """Tests for failing and slow strategies."""

    @pytest.fixture
    def degraded_engine(self, reference_store, tables):
        strategies = default_strategies(tables) + [ExplodingStrategy(), SleepingStrategy(1.0)]
        engine = ResolutionEngine(store=reference_store, tables=tables, strategies=strategies)
        yield engine
        engine.close()

    @pytest.mark.asyncio
    async def test_failures_isolated(self, degraded_engine):
        """Crashing and hanging strategies do not affect the others."""
        started = time.perf_counter()
        report = await degraded_engine.resolve_entity_report(
            "MAULANA AZAD MEDICAL COLLEGE", EntityType.COLLEGE
        )
        elapsed = time.perf_counter() - started
        statuses = {o.name: o.status for o in report.outcomes}

        assert statuses["exploding"] == StrategyStatus.FAILED
        assert statuses["sleeping"] == StrategyStatus.TIMEOUT
        assert statuses["exact"] == StrategyStatus.OK
        assert top_id(report.results) == "c5"
        assert report.results[0].final_score == 100
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_timed_out_matches_discarded(self, degraded_engine):
        """A timed-out strategy contributes nothing."""
        results = await degraded_engine.resolve_entity("MAULANA AZAD MEDICAL COLLEGE", EntityType.COLLEGE)

        for result in results:
            assert "sleeping" not in {c.strategy_name for c in result.contributing_strategies}

    @pytest.mark.asyncio
    async def test_deadline(self, degraded_engine):
        """The call returns within its deadline."""
        started = time.perf_counter()
        await degraded_engine.resolve_entity("MAULANA AZAD", EntityType.COLLEGE, deadline_ms=100)

        assert time.perf_counter() - started < 0.5

    @pytest.mark.asyncio
    async def test_repeated_timeouts_do_not_starve_strategies(self, reference_store, tables):
        """Strategies abandoned by earlier calls never hold back later ones."""
        config = ResolutionConfig(strategy_timeout_ms=100, resolve_deadline_ms=500)
        strategies = default_strategies(tables) + [SleepingStrategy(3.0)]
        with ResolutionEngine(
            store=reference_store, tables=tables, config=config, strategies=strategies
        ) as engine:
            for _ in range(20):
                report = await engine.resolve_entity_report(
                    "MAULANA AZAD MEDICAL COLLEGE", EntityType.COLLEGE
                )
                statuses = {o.name: o.status for o in report.outcomes}

                assert statuses["exact"] == StrategyStatus.OK
                assert statuses["sleeping"] == StrategyStatus.TIMEOUT
                assert top_id(report.results) == "c5"

    @pytest.mark.asyncio
    async def test_deadline_includes_query_parsing(self, reference_store, tables, monkeypatch):
        """Time spent before the fan-out is taken out of the deadline."""
        config = ResolutionConfig(strategy_timeout_ms=400, resolve_deadline_ms=400)
        engine = ResolutionEngine(
            store=reference_store, tables=tables, config=config, strategies=[SleepingStrategy(2.0)]
        )
        parse_query = engine.parse_query

        def slow_parse(*args, **kwargs):
            time.sleep(0.3)
            return parse_query(*args, **kwargs)

        monkeypatch.setattr(engine, "parse_query", slow_parse)
        started = time.perf_counter()
        report = await engine.resolve_entity_report("MAULANA AZAD", EntityType.COLLEGE)
        elapsed = time.perf_counter() - started

        assert report.outcomes[0].status == StrategyStatus.TIMEOUT
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_degraded_results_not_cached(self, degraded_engine):
        """Answers missing a strategy are recomputed next time."""
        await degraded_engine.resolve_entity_report("MAULANA AZAD", EntityType.COLLEGE)
        report = await degraded_engine.resolve_entity_report("MAULANA AZAD", EntityType.COLLEGE)

        assert not report.cached


class TestCacheAndReload:
    """Tests for caching and reference reloads."""

    @pytest.mark.asyncio
    async def test_cache_hit(self, engine):
        """A repeated query is answered from cache."""
        first = await engine.resolve_entity_report("MAULANA AZAD", EntityType.COLLEGE)
        second = await engine.resolve_entity_report("maulana  azad", EntityType.COLLEGE)

        assert not first.cached
        assert second.cached
        assert [r.entity.id for r in second.results] == [r.entity.id for r in first.results]
        assert engine.cache_stats().hits == 1

    @pytest.mark.asyncio
    async def test_hint_is_part_of_cache_key(self, engine):
        """Different hints are cached separately."""
        await engine.resolve_entity_report("GOVT MEDICAL COLLEGE", EntityType.COLLEGE, location_hint="KOTA")
        report = await engine.resolve_entity_report(
            "GOVT MEDICAL COLLEGE", EntityType.COLLEGE, location_hint="NAGPUR"
        )

        assert not report.cached
        assert top_id(report.results) == "c7"

    @pytest.mark.asyncio
    async def test_reload_invalidates_cache(self, engine, reference_records):
        """Results reflect new reference data immediately after a reload."""
        assert await engine.resolve_entity("KASTURBA HOSPITAL MANIPAL", EntityType.COLLEGE) == []

        records = reference_records + [
            {"id": "c10", "entity_type": "college", "name": "KASTURBA HOSPITAL MANIPAL", "city": "MANGALORE"},
        ]
        store = engine.reload(records)
        report = await engine.resolve_entity_report("KASTURBA HOSPITAL MANIPAL", EntityType.COLLEGE)

        assert store.version == 2
        assert engine.store is store
        assert not report.cached
        assert top_id(report.results) == "c10"

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_store(self, engine, reference_records):
        """Invalid reference data leaves the active store untouched."""
        before = engine.store
        records = reference_records + [{"id": "c1", "entity_type": "college", "name": "DUPLICATE"}]

        with pytest.raises(ReferenceDataError):
            engine.reload(records)

        assert engine.store is before
        assert engine.store.version == 1
        assert top_id(await engine.resolve_entity("PGIMER", EntityType.COLLEGE)) == "c1"

    @pytest.mark.asyncio
    async def test_invalid_record_rejected(self, engine, reference_records):
        """A record without a name is rejected as a whole reload."""
        with pytest.raises(ReferenceDataError):
            engine.reload(reference_records + [{"id": "x", "entity_type": "college"}])

        assert len(engine.store) == len(reference_records)

    @pytest.mark.asyncio
    async def test_reload_from_file(self, tables, reference_file):
        """Reference data can be loaded from JSON."""
        with ResolutionEngine(tables=tables) as engine:
            engine.reload_from_file(reference_file)

            assert engine.store.version == 1
            assert top_id(await engine.resolve_entity("OBC", EntityType.CATEGORY)) == "k2"

    @pytest.mark.asyncio
    async def test_concurrent_resolution_during_reload(self, engine, reference_records):
        """Concurrent calls each see one consistent store."""
        queries = ["PGIMER", "SKS", "A J", "MAULANA AZAD", "AIIMS"] * 4

        async def reload_midway():
            await asyncio.sleep(0)
            engine.reload(reference_records)

        results = await asyncio.gather(
            *(engine.resolve_entity(q, EntityType.COLLEGE) for q in queries),
            reload_midway(),
        )

        for query, result in zip(queries, results[:-1]):
            assert result, query
        assert engine.store.version == 2

    def test_clear_cache(self, engine):
        """clear_cache() empties the cache."""
        asyncio.run(engine.resolve_entity("PGIMER", EntityType.COLLEGE))
        engine.clear_cache()

        assert engine.cache_stats().size == 0


class TestSearch:
    """Tests for free-text search."""

    @pytest.mark.asyncio
    async def test_limit(self, engine):
        """Results are truncated to the limit."""
        results = await engine.search("MEDICAL", EntityType.COLLEGE, limit=2)

        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_non_positive_limit(self, engine):
        """A zero or negative limit returns nothing."""
        assert await engine.search("MEDICAL", EntityType.COLLEGE, limit=0) == []
        assert await engine.search("MEDICAL", EntityType.COLLEGE, limit=-3) == []

    @pytest.mark.asyncio
    async def test_default_limit(self, reference_store, tables):
        """The configured default limit applies when none is given."""
        config = ResolutionConfig(default_search_limit=1)
        with ResolutionEngine(store=reference_store, tables=tables, config=config) as engine:
            assert len(await engine.search("MEDICAL", EntityType.COLLEGE)) == 1

    @pytest.mark.asyncio
    async def test_same_ranking_as_resolve(self, engine):
        """Search is resolution truncated to the limit."""
        resolved = await engine.resolve_entity("GOVT MEDICAL", EntityType.COLLEGE)
        searched = await engine.search("GOVT MEDICAL", EntityType.COLLEGE, limit=3)

        assert [r.entity.id for r in searched] == [r.entity.id for r in resolved[:3]]

    @pytest.mark.asyncio
    async def test_search_all(self, engine):
        """Every entity type is searched."""
        grouped = await engine.search_all("DELHI", limit=5)

        assert set(grouped) == set(EntityType)
        assert top_id(grouped[EntityType.STATE]) == "s1"
        assert "c5" in {r.entity.id for r in grouped[EntityType.COLLEGE]}

    @pytest.mark.asyncio
    async def test_state_filter(self, engine):
        """Only colleges in the requested state are returned."""
        results = await engine.search(
            "MEDICAL", EntityType.COLLEGE, filters=SearchFilters(state="maharashtra")
        )

        assert "c7" in {r.entity.id for r in results}
        assert all(r.entity.location.state == "MAHARASHTRA" for r in results)

    @pytest.mark.asyncio
    async def test_city_filter_accepts_aliases(self, engine):
        """City filters are matched by canonical city, so aliases work."""
        results = await engine.search(
            "MEDICAL", EntityType.COLLEGE, filters=SearchFilters(city=["NEW DELHI"])
        )

        assert {r.entity.id for r in results} == {"c5", "c8"}

    @pytest.mark.asyncio
    async def test_region_filter(self, engine):
        """Region filters accept a list of regions."""
        results = await engine.search(
            "INSTITUTE", EntityType.COLLEGE, filters=SearchFilters(region=["SOUTH", "WEST"])
        )

        assert results
        assert all(r.entity.location.region in ("SOUTH", "WEST") for r in results)

    @pytest.mark.asyncio
    async def test_location_filter_without_locations(self, engine):
        """Entities without a location never pass a location filter."""
        assert await engine.search("MD", EntityType.PROGRAM, filters=SearchFilters(state="DELHI")) == []

    @pytest.mark.asyncio
    async def test_score_filter(self, engine):
        """Score bounds are inclusive."""
        unfiltered = await engine.search("MEDICAL", EntityType.COLLEGE, limit=100)
        low, high = unfiltered[-1].final_score, unfiltered[0].final_score - 1
        results = await engine.search(
            "MEDICAL", EntityType.COLLEGE, limit=100,
            filters=SearchFilters(min_score=low, max_score=high),
        )

        assert results == [r for r in unfiltered if low <= r.final_score <= high]

    @pytest.mark.asyncio
    async def test_filters_apply_before_limit(self, engine):
        """The limit counts filtered results."""
        results = await engine.search(
            "MEDICAL", EntityType.COLLEGE, limit=1, filters=SearchFilters(city="AHMEDABAD")
        )

        assert [r.entity.id for r in results] == ["c9"]

    def test_invalid_score_range(self):
        """The lower score bound cannot exceed the upper one."""
        with pytest.raises(ValueError):
            SearchFilters(min_score=80, max_score=50)

    @pytest.mark.asyncio
    async def test_strategy_subset(self, engine):
        """Only the chosen strategies contribute."""
        results = await engine.search(
            "MAULANA AZAD MEDICAL COLLEGE", EntityType.COLLEGE, strategies=["levenshtein"]
        )

        assert top_id(results) == "c5"
        for result in results:
            assert {c.strategy_name for c in result.contributing_strategies} == {"levenshtein"}

    @pytest.mark.asyncio
    async def test_strategy_subset_reports_skipped(self, engine):
        """Strategies left out of the subset are reported as skipped."""
        report = await engine.resolve_entity_report(
            "MAULANA AZAD MEDICAL COLLEGE", EntityType.COLLEGE, strategies={"exact", "cosine"}
        )
        ran = {o.name for o in report.outcomes if o.status != StrategyStatus.SKIPPED}

        assert ran == {"exact", "cosine"}

    @pytest.mark.asyncio
    async def test_strategy_subset_cached_separately(self, engine):
        """A subset run is not answered from a full run's cache entry."""
        await engine.resolve_entity_report("MAULANA AZAD", EntityType.COLLEGE)
        report = await engine.resolve_entity_report(
            "MAULANA AZAD", EntityType.COLLEGE, strategies=["exact"]
        )

        assert not report.cached

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, engine):
        """Unknown strategy names are rejected."""
        with pytest.raises(ValueError):
            await engine.search("MEDICAL", EntityType.COLLEGE, strategies=["neural"])
