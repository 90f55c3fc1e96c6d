import argparse
import asyncio
import json
import logging
import sys

from app.exceptions import AppError
from app.marketplaces.adapter_factory import get_supported_sources
from app.services.product_search_service import ProductSearchService, SearchQuery
from app.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    stream=sys.stderr,
)
logger = logging.getLogger("app.cli")


def run_search_command(args) -> int:
    """Marketplace search without HTTP, quotas or persistence. JSON goes to stdout."""
    query = SearchQuery(
        q=args.query,
        source=args.source,
        min_price=args.min_price,
        max_price=args.max_price,
        min_rating=args.min_rating,
        category=args.category,
        page=args.page,
        limit=args.limit,
    )
    service = ProductSearchService()
    logger.info(f"[CLI] Searching '{args.query}' on {args.source}")
    data = asyncio.run(service.search_marketplaces(query))
    json.dump(data, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="DropScout CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search marketplaces and print the merged result")
    search.add_argument("query")
    search.add_argument("--source", default="all", choices=["all", *get_supported_sources()])
    search.add_argument("--min-price", type=float, default=None)
    search.add_argument("--max-price", type=float, default=None)
    search.add_argument("--min-rating", type=float, default=None)
    search.add_argument("--category", default=None)
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--limit", type=int, default=20)

    args = parser.parse_args(argv)
    if args.command == "search":
        try:
            return run_search_command(args)
        except AppError as e:
            logger.error(f"[CLI] Invalid arguments: {e}")
            return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
