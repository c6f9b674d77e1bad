"""
Command-line access to the resolution engine.

Examples:
    counsel --reference data/reference.json resolve college "PGIMER,," --location CHANDIGARH
    counsel --reference data/reference.json search "SKS" --type program --limit 5
    counsel --reference data/reference.json search "GOVT MEDICAL"
    counsel --reference data/reference.json search "MEDICAL" --type college --state MAHARASHTRA
    counsel --reference data/reference.json stats
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from counsel.config import settings
from counsel.exceptions import CounselError
from counsel.reference.models import EntityType
from counsel.reference.tables import DomainTables, load_domain_tables
from counsel.resolution.engine import ResolutionConfig, ResolutionEngine
from counsel.resolution.models import SearchFilters

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="counsel",
        description="Resolve OCR-extracted counselling fields to canonical entities",
    )
    parser.add_argument(
        "--reference",
        type=Path,
        default=settings.reference_data_path,
        help="Reference data JSON (default: COUNSEL_REFERENCE_DATA_PATH)",
    )
    parser.add_argument(
        "--tables",
        type=Path,
        default=settings.domain_tables_path,
        help="Domain tables JSON overriding the built-in tables",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Logging level",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")

    types = [t.value for t in EntityType]
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Resolve one field value")
    resolve.add_argument("entity_type", choices=types)
    resolve.add_argument("text")
    resolve.add_argument("--location", help="City, state or region hint")
    resolve.add_argument("--deadline-ms", type=float, help="Overall time budget")
    resolve.add_argument(
        "--threshold", type=float, default=70.0, help="Acceptance threshold for the top result"
    )

    search = sub.add_parser("search", help="Search canonical entities")
    search.add_argument("text")
    search.add_argument("--type", dest="entity_type", choices=types, help="Entity type (all if omitted)")
    search.add_argument("--limit", type=int, default=settings.default_search_limit)
    search.add_argument("--state", action="append", help="Only colleges in this state (repeatable)")
    search.add_argument("--city", action="append", help="Only colleges in this city (repeatable)")
    search.add_argument("--region", action="append", help="Only colleges in this region (repeatable)")
    search.add_argument("--min-score", type=float, help="Lowest score to show")
    search.add_argument(
        "--strategy", dest="strategies", action="append", help="Run only this strategy (repeatable)"
    )

    sub.add_parser("stats", help="Show reference store statistics")
    return parser


def print_results(results, as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return
    if not results:
        print("  No results")
        return
    for i, result in enumerate(results, 1):
        strategies = ", ".join(c.strategy_name for c in result.contributing_strategies)
        print(
            f"  {i:2}. [{result.final_score:5.1f}] {result.entity.canonical_name} "
            f"(id={result.entity.id}; {strategies})"
        )


async def run(args: argparse.Namespace) -> int:
    tables = load_domain_tables(args.tables) if args.tables else DomainTables()
    config = ResolutionConfig.from_settings(settings)

    async with ResolutionEngine(tables=tables, config=config) as engine:
        if not args.reference:
            print("Error: no reference data (use --reference or COUNSEL_REFERENCE_DATA_PATH)")
            return 2
        engine.reload_from_file(args.reference)

        if args.command == "stats":
            store = engine.store
            if args.json:
                print(json.dumps({"version": store.version, "counts": store.counts()}, indent=2))
            else:
                print(f"Reference store version {store.version} loaded {store.loaded_at.isoformat()}")
                for entity_type, count in store.counts().items():
                    print(f"  {entity_type:10} {count}")
            return 0

        if args.command == "resolve":
            report = await engine.resolve_entity_report(
                args.text,
                EntityType(args.entity_type),
                location_hint=args.location,
                deadline_ms=args.deadline_ms,
            )
            if args.json:
                print(json.dumps(report.to_dict(), indent=2))
            else:
                print(f"'{args.text}' -> '{report.query.normalized}' ({args.entity_type})")
                print_results(report.results, as_json=False)
                top = report.results[0] if report.results else None
                if top and top.accepted(args.threshold):
                    print(f"Accepted: {top.entity.id}")
                else:
                    print("Needs manual review")
            return 0

        filters = None
        if args.state or args.city or args.region or args.min_score is not None:
            filters = SearchFilters(
                state=args.state, city=args.city, region=args.region, min_score=args.min_score
            )

        if args.entity_type:
            results = await engine.search(
                args.text,
                EntityType(args.entity_type),
                args.limit,
                filters=filters,
                strategies=args.strategies,
            )
            print_results(results, args.json)
            return 0

        grouped = await engine.search_all(
            args.text, args.limit, filters=filters, strategies=args.strategies
        )
        if args.json:
            print(json.dumps(
                {t.value: [r.to_dict() for r in rs] for t, rs in grouped.items()},
                indent=2,
            ))
            return 0
        for entity_type, results in grouped.items():
            if results:
                print(f"{entity_type.value.upper()}:")
                print_results(results, as_json=False)
        return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except (CounselError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
