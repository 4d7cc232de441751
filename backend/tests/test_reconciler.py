"""Tests for product reconciliation."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import make_record
from pricehunter.core.exceptions import ReconciliationConflict
from pricehunter.models.product import Product
from pricehunter.services.reconciler import ProductReconciler


async def _product_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Product))).scalar_one()


class TestResolve:
    """Tests for ProductReconciler.resolve."""

    async def test_creates_new_product(self, db):
        reconciler = ProductReconciler(db)

        product, is_new = await reconciler.resolve(make_record())
        await db.commit()

        assert is_new is True
        assert product.barcode == "B0CHX1W1XY"
        assert product.brand == "Apple"
        assert product.slug.startswith("apple-iphone-15-pro-256gb-")
        assert await _product_count(db) == 1

    async def test_barcode_match_wins(self, db):
        reconciler = ProductReconciler(db)
        original, _ = await reconciler.resolve(make_record())
        await db.commit()

        # Different wording, same ASIN
        product, is_new = await reconciler.resolve(
            make_record(name="iPhone 15 Pro 256 GB Natural Titanium", price=Decimal("4499"))
        )

        assert is_new is False
        assert product.id == original.id
        assert await _product_count(db) == 1

    async def test_name_match_ignores_case(self, db):
        reconciler = ProductReconciler(db)
        original, _ = await reconciler.resolve(make_record(barcode=None))
        await db.commit()

        product, is_new = await reconciler.resolve(
            make_record(
                name="APPLE IPHONE 15 PRO 256GB",
                barcode=None,
                url="https://www.noon.com/saudi-ar/p/N1",
            )
        )

        assert is_new is False
        assert product.id == original.id

    async def test_arabic_name_matches(self, db):
        reconciler = ProductReconciler(db)
        original, _ = await reconciler.resolve(make_record(barcode=None, name_ar="ايفون 15 برو"))
        await db.commit()

        product, is_new = await reconciler.resolve(
            make_record(name="ايفون 15 برو", barcode=None, url="https://www.noon.com/saudi-ar/p/N2")
        )

        assert is_new is False
        assert product.id == original.id

    async def test_different_names_create_separate_products(self, db):
        reconciler = ProductReconciler(db)
        first, _ = await reconciler.resolve(make_record(barcode=None))
        second, is_new = await reconciler.resolve(make_record(name="Samsung Galaxy S24", barcode=None))
        await db.commit()

        assert is_new is True
        assert first.id != second.id
        assert first.slug != second.slug
        assert await _product_count(db) == 2

    async def test_backfills_missing_fields_only(self, db):
        reconciler = ProductReconciler(db)
        original, _ = await reconciler.resolve(make_record(barcode=None, brand=None, image_url=None))
        await db.commit()

        product, _ = await reconciler.resolve(
            make_record(
                barcode="B0CHX1W1XY",
                brand="Apple Inc",
                image_url="https://m.media-amazon.com/i.jpg",
            )
        )
        await db.commit()

        assert product.id == original.id
        assert product.barcode == "B0CHX1W1XY"
        assert product.brand == "Apple Inc"
        assert product.image_url == "https://m.media-amazon.com/i.jpg"

        # Populated fields are not overwritten
        product, _ = await reconciler.resolve(make_record(brand="Someone Else"))
        assert product.brand == "Apple Inc"

    def test_lock_keys(self):
        keys = ProductReconciler.lock_keys(make_record(name=" iPhone 15 ", name_ar="ايفون"))
        assert keys == ["name:iphone 15", "barcode:B0CHX1W1XY", "name:ايفون"]


class TestCreateConflict:
    """Tests for recovery when another writer creates the product first."""

    async def test_integrity_error_reads_back_winner(self, db, session_factory, monkeypatch):
        reconciler = ProductReconciler(db)
        real_find = reconciler.find_existing
        calls = {"n": 0}

        async def find_existing_missing_once(record):
            calls["n"] += 1
            if calls["n"] == 1:
                # A concurrent writer commits the same barcode after our lookup
                async with session_factory() as other:
                    other.add(Product(name="Winner", slug="winner-abc123", barcode=record.barcode))
                    await other.commit()
                return None
            return await real_find(record)

        monkeypatch.setattr(reconciler, "find_existing", find_existing_missing_once)

        product, is_new = await reconciler.resolve(make_record())

        assert is_new is False
        assert product.name == "Winner"
        assert await _product_count(db) == 1

    async def test_persistent_conflict_raises(self, db, monkeypatch):
        reconciler = ProductReconciler(db)

        async def never_found(record):
            return None

        async def always_conflict():
            raise IntegrityError("INSERT INTO products", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(reconciler, "find_existing", never_found)
        monkeypatch.setattr(db, "flush", always_conflict)

        with pytest.raises(ReconciliationConflict):
            await reconciler.resolve(make_record())
