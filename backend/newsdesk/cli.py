#!/usr/bin/env python3
"""
CLI tool for news ingestion and maintenance.

Usage:
    # Run one ingestion pass now
    newsdesk fetch

    # Fetch selected categories only
    newsdesk fetch --category business --category world

    # Run the scheduler (one pass now, then on the cron trigger)
    newsdesk serve

    # Build a search collection / read it back
    newsdesk search "climate"
    newsdesk results "climate"

    # Maintenance
    newsdesk purge-bad
    newsdesk purge-similar --threshold 0.9
    newsdesk purge-all --yes

    # Summary statistics and upstream health
    newsdesk stats
    newsdesk health
"""

import argparse
import asyncio
import json
import sys

import structlog

from newsdesk.config import Settings, get_settings
from newsdesk.core.categories import all_categories
from newsdesk.core.log_config import configure_logging
from newsdesk.services.data_ingestion import (
    IngestionPipeline,
    IngestionScheduler,
    NewsDataClient,
    PassReport,
)
from newsdesk.services.maintenance import MaintenanceService, PurgeReport
from newsdesk.services.search import SearchCollectionBuilder
from newsdesk.storage import DocumentStore, MemoryDocumentStore, SQLDocumentStore, SummaryRepository

logger = structlog.get_logger(__name__)


async def open_store(args, settings: Settings) -> DocumentStore:
    """Open the configured document store."""
    if args.memory:
        return MemoryDocumentStore()
    return await SQLDocumentStore.connect(args.database_url or settings.database_url)


def print_pass_report(report: PassReport):
    print("\n" + "=" * 60)
    print("INGESTION RESULTS")
    print("=" * 60)

    for category in report.categories:
        print(category)
        for skip in category.skipped:
            print(f"    - {skip.reason.value}: {(skip.title or '<untitled>')[:60]} {skip.detail}")

    print("-" * 60)
    print(f"Total articles added: {report.articles_new}")
    print(f"Successful categories: {report.successful_categories}/{len(report.categories)}")
    print(f"API requests made: {report.requests_made}")
    if report.aborted:
        print(f"Stopped on rate limit; deferred: {', '.join(report.deferred) or '-'}")


def print_purge_report(report: PurgeReport):
    print("\n" + "=" * 40)
    print(f"PURGE: {report.name}")
    print("=" * 40)
    for category, deleted in sorted(report.deleted.items()):
        print(f"  {category}: {deleted}")
    for category, error in sorted(report.errors.items()):
        print(f"  {category}: ✗ {error}")
    print(f"Total deleted: {report.total}")


async def cmd_fetch(args, settings: Settings) -> int:
    """Run one ingestion pass."""
    store = await open_store(args, settings)
    try:
        async with NewsDataClient(settings) as client:
            pipeline = IngestionPipeline(
                store,
                client,
                settings,
                categories=args.category or None,
            )
            report = await pipeline.run_pass()
    finally:
        await store.close()

    print_pass_report(report)
    return 1 if report.aborted else 0


async def cmd_serve(args, settings: Settings) -> int:
    """Run continuous scheduler."""
    store = await open_store(args, settings)
    client = NewsDataClient(settings)
    scheduler = IngestionScheduler(
        IngestionPipeline(store, client, settings),
        cron=args.cron or settings.fetch_cron,
    )

    print(f"Starting scheduler (cron: {scheduler.cron})")
    print("Press Ctrl+C to stop")

    try:
        await scheduler.start(run_immediately=not args.no_initial)

        # Keep running until interrupted
        while scheduler.is_running:
            await asyncio.sleep(60)
            logger.debug("Scheduler status", **scheduler.get_status())
    finally:
        await scheduler.stop()
        await client.aclose()
        await store.close()

    return 0


async def cmd_search(args, settings: Settings) -> int:
    """Build a search collection for a keyword."""
    store = await open_store(args, settings)
    try:
        outcome = await SearchCollectionBuilder(store, settings).build(args.keyword)
    finally:
        await store.close()

    if outcome.collection_name is None:
        print(f"No results found for: {args.keyword!r}")
        return 0

    print(f"Created search collection '{outcome.collection_name}' with {outcome.count} results")
    if args.verbose:
        for hit in outcome.results[:10]:
            print(f"  [{hit['relevanceScore']:>3}] {hit['title'][:70]}")
    return 0


async def cmd_results(args, settings: Settings) -> int:
    """Show a stored search collection."""
    store = await open_store(args, settings)
    try:
        hits = await SearchCollectionBuilder(store, settings).results(args.keyword)
    finally:
        await store.close()

    for hit in hits[:args.limit]:
        print(f"[{hit.get('relevanceScore', 0):>3}] {hit.get('title', '')[:70]}")
    print(f"{len(hits)} stored results for {args.keyword!r}")
    return 0


def purge_threshold(args, settings: Settings) -> float:
    """Threshold from ``--threshold`` when given (zero included), else settings."""
    threshold = getattr(args, "threshold", None)
    return threshold if threshold is not None else settings.near_duplicate_threshold


async def cmd_purge(args, settings: Settings) -> int:
    """Run one of the maintenance purges."""
    if args.command == "purge-all" and not args.yes:
        print("Refusing to delete every article without --yes")
        return 1

    store = await open_store(args, settings)
    try:
        service = MaintenanceService(
            store,
            threshold=purge_threshold(args, settings),
        )
        if args.command == "purge-all":
            report = await service.purge_all()
        elif args.command == "purge-bad":
            report = await service.purge_bad()
        else:
            report = await service.purge_near_duplicates()
    finally:
        await store.close()

    print_purge_report(report)
    return 1 if report.errors else 0


async def cmd_stats(args, settings: Settings) -> int:
    """Show summary statistics."""
    store = await open_store(args, settings)
    try:
        stats = await SummaryRepository(store).stats()
    finally:
        await store.close()

    if stats is None:
        print("No summary yet - run a fetch first")
        return 1

    if args.json:
        print(json.dumps(stats, indent=2, default=str))
        return 0

    print("\n" + "=" * 50)
    print("NEWS STATISTICS")
    print("=" * 50)
    print(f"Total articles: {stats['totalArticles']}")
    print(f"Categories: {stats['categoriesCount']}")
    print(f"Search collections: {stats['searchCollectionsCount']}")
    print(f"Last updated: {stats['lastUpdated']}")
    print()
    for entry in stats["categoryBreakdown"]:
        print(f"  {entry['name']:<15} {entry['count']:>6}  (updated {entry['lastUpdated']})")
    return 0


async def cmd_health(args, settings: Settings) -> int:
    """Check the upstream API."""
    print("Checking upstream API...")
    async with NewsDataClient(settings) as client:
        healthy = await client.health_check()

    status = "✓ OK" if healthy else "✗ FAILED"
    print(f"  {client.name}: {status}")
    return 0 if healthy else 1


COMMANDS = {
    "fetch": cmd_fetch,
    "serve": cmd_serve,
    "search": cmd_search,
    "results": cmd_results,
    "purge-all": cmd_purge,
    "purge-bad": cmd_purge,
    "purge-similar": cmd_purge,
    "stats": cmd_stats,
    "health": cmd_health,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Newsdesk - news ingestion and maintenance CLI"
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use a throwaway in-memory store (dry run)"
    )
    parser.add_argument(
        "--database-url",
        help="Override DATABASE_URL"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Run one ingestion pass")
    fetch_parser.add_argument(
        "--category", "-c",
        action="append",
        choices=all_categories(),
        help="Category to fetch (repeatable, default: configured categories)"
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run continuous scheduler")
    serve_parser.add_argument(
        "--cron",
        help="Crontab expression (default: FETCH_CRON)"
    )
    serve_parser.add_argument(
        "--no-initial",
        action="store_true",
        help="Skip the pass at startup"
    )

    # Search commands
    search_parser = subparsers.add_parser("search", help="Build a search collection")
    search_parser.add_argument("keyword")
    search_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show top results"
    )

    results_parser = subparsers.add_parser("results", help="Show a stored search collection")
    results_parser.add_argument("keyword")
    results_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=20,
        help="Max results to show (default: 20)"
    )

    # Maintenance commands
    purge_all_parser = subparsers.add_parser("purge-all", help="Delete every article")
    purge_all_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the bulk deletion"
    )
    subparsers.add_parser("purge-bad", help="Delete articles without an image")
    similar_parser = subparsers.add_parser("purge-similar", help="Delete near-duplicate articles")
    similar_parser.add_argument(
        "--threshold", "-t",
        type=float,
        help="Similarity threshold (default: NEAR_DUPLICATE_THRESHOLD)"
    )

    # Stats / health
    stats_parser = subparsers.add_parser("stats", help="Show summary statistics")
    stats_parser.add_argument("--json", action="store_true", help="Print raw JSON")
    subparsers.add_parser("health", help="Check upstream API health")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except KeyboardInterrupt:
        print("\nProcess interrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
