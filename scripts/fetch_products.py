"""Manual fetch runner for testing retailer adapters against live sites.

Runs one query fan-out or one product URL through the full pipeline
(extract -> reconcile -> ledger) and prints the result as JSON.

Usage:
    python scripts/fetch_products.py --query "iphone 15"
    python scripts/fetch_products.py --query "iphone 15" --country SA
    python scripts/fetch_products.py --query "airpods" --retailers amazon-ae noon-ae
    python scripts/fetch_products.py --url "https://www.amazon.sa/dp/B0CHX1W1XY"
"""

import argparse
import asyncio
import os
import sys

# Add backend to path so we can import pricehunter modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from pricehunter.main import lifespan


async def run_fetch(args: argparse.Namespace) -> int:
    """Run the requested fetch and print its result.

    Returns:
        Process exit code: 0 when anything was saved, 1 otherwise
    """
    async with lifespan() as container:
        service = container.fetch_service
        if args.url:
            result = await service.fetch_one_from_url(args.url, timeout_ms=args.timeout_ms)
            print(result.model_dump_json(indent=2))
            return 0 if result.product_id else 1

        result = await service.fetch_and_save(
            args.query,
            country=args.country,
            retailers=args.retailers,
            timeout_ms=args.timeout_ms,
        )
        print(result.model_dump_json(indent=2))
        return 0 if result.total_scraped else 1


def main():
    """Parse arguments and run the fetch."""
    parser = argparse.ArgumentParser(
        description="Fetch retailer prices into the catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/fetch_products.py --query "iphone 15" --country SA
  python scripts/fetch_products.py --url "https://www.noon.com/egypt-ar/p/N123/"
        """,
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--query", help="Free-text product search")
    target.add_argument("--url", help="Single product page URL")

    parser.add_argument(
        "--country",
        choices=["SA", "EG", "AE", "KW"],
        help="Limit the search to active retailers in one country",
    )
    parser.add_argument(
        "--retailers",
        nargs="+",
        help="Explicit retailer slugs (e.g., 'amazon-sa noon-sa')",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-retailer deadline in milliseconds (default: FETCH_TIMEOUT_MS)",
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(run_fetch(args)))


if __name__ == "__main__":
    main()
