"""Seed the retailers table from the built-in retailer profiles.

Creates missing tables first. Retailers without an adapter yet
(UNSUPPORTED_RETAILERS) are seeded inactive so URL lookups still find them.

Usage:
    python scripts/seed_retailers.py
"""

import asyncio
import os
import sys

# Add backend to path so we can import pricehunter modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from sqlalchemy import select

from pricehunter.config import settings
from pricehunter.db.session import create_engine, create_session_factory
from pricehunter.main import create_tables
from pricehunter.models.retailer import Retailer
from pricehunter.scrapers.profiles import RETAILER_PROFILES, UNSUPPORTED_RETAILERS

UNSUPPORTED_COUNTRIES = {
    "2b": ("SA", "SAR"),
    "sharaf-dg": ("AE", "AED"),
    "carrefour-ae": ("AE", "AED"),
    "lulu-sa": ("SA", "SAR"),
}


def retailer_rows():
    """Build one row dict per known retailer."""
    rows = []
    for profile in RETAILER_PROFILES.values():
        rows.append(
            {
                "name": profile.name,
                "name_ar": profile.name_ar,
                "slug": profile.slug,
                "domain": profile.domain,
                "country": profile.country,
                "currency": profile.currency,
                "is_active": True,
                "scrape_config": {},
            }
        )
    for domain, slug in UNSUPPORTED_RETAILERS.items():
        country, currency = UNSUPPORTED_COUNTRIES.get(slug, ("SA", "SAR"))
        rows.append(
            {
                "name": slug,
                "slug": slug,
                "domain": domain,
                "country": country,
                "currency": currency,
                "is_active": False,
                "scrape_config": {"adapter": "unavailable"},
            }
        )
    return rows


async def seed_retailers():
    """Insert retailers that are not in the table yet.

    Idempotent: retailers are identified by their unique slug.
    """
    print(f"\n{'='*60}")
    print("  Seeding Retailers")
    print(f"{'='*60}\n")

    engine = create_engine(settings.DATABASE_URL)
    await create_tables(engine)
    session_factory = create_session_factory(engine)

    rows = retailer_rows()
    added_count = 0
    skipped_count = 0

    async with session_factory() as session:
        for data in rows:
            result = await session.execute(select(Retailer).where(Retailer.slug == data["slug"]))
            if result.scalar_one_or_none():
                print(f"  skip   {data['slug']} (already exists)")
                skipped_count += 1
                continue

            session.add(Retailer(**data))
            print(f"  added  {data['slug']} ({data['country']}, {data['currency']})")
            added_count += 1

        await session.commit()

    await engine.dispose()

    print(f"\n{'='*60}")
    print(f"  Added: {added_count}  Skipped: {skipped_count}  Total: {len(rows)}\n")


if __name__ == "__main__":
    asyncio.run(seed_retailers())
