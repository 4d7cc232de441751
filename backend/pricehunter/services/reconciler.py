"""Product reconciliation: map an extracted record to a canonical product.

Resolution order:
1. Exact barcode match (authoritative)
2. Case-insensitive exact match on name or Arabic name
3. Create a new product with a slug derived from the name

Name matching is a heuristic. It will not merge the same product listed
under different wording at two retailers, and it will merge unrelated
products that happen to share a name. Both are accepted.
"""

import secrets
import string
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.core.exceptions import ReconciliationConflict
from pricehunter.models.product import Product
from pricehunter.scrapers.base import ExtractedRecord
from pricehunter.scrapers.utils.normalizer import slugify

logger = structlog.get_logger(__name__)

SLUG_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SLUG_SUFFIX_LENGTH = 6
MAX_CREATE_ATTEMPTS = 3

# Fields copied onto an existing product only while they are still empty
BACKFILL_FIELDS = ("name_ar", "brand", "category", "image_url", "description")


def generate_product_slug(name: str) -> str:
    """Slugified name plus a random base36 suffix, e.g. ``iphone-15-pro-k3x9qa``."""
    suffix = "".join(secrets.choice(SLUG_SUFFIX_ALPHABET) for _ in range(SLUG_SUFFIX_LENGTH))
    return f"{slugify(name)}-{suffix}"


class ProductReconciler:
    """Resolves ExtractedRecords to Product rows within one session.

    The caller owns the transaction. Creation relies on the unique
    constraints on ``barcode`` and ``slug``; callers also serialise
    records with overlapping ``lock_keys`` through a KeyedLock.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="reconciler")

    @staticmethod
    def lock_keys(record: ExtractedRecord) -> List[str]:
        """Keys under which two records could resolve to the same product."""
        keys = [f"name:{record.name.strip().lower()}"]
        if record.barcode:
            keys.append(f"barcode:{record.barcode}")
        if record.name_ar:
            keys.append(f"name:{record.name_ar.strip().lower()}")
        return keys

    async def resolve(self, record: ExtractedRecord) -> Tuple[Product, bool]:
        """Find or create the canonical product for a record.

        Args:
            record: Adapter output

        Returns:
            Tuple of (product, is_new)

        Raises:
            ReconciliationConflict: If creation keeps colliding and the
                winning row cannot be read back
        """
        product = await self.find_existing(record)
        if product is not None:
            self._backfill(product, record)
            return product, False

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            product = Product(
                name=record.name,
                name_ar=record.name_ar,
                slug=generate_product_slug(record.name),
                barcode=record.barcode,
                brand=record.brand,
                category=record.category,
                image_url=record.image_url,
                description=record.description,
            )
            self.db.add(product)
            try:
                await self.db.flush()
            except IntegrityError:
                # Another writer created the barcode first, or the slug collided.
                # Nothing else has been written in this transaction yet.
                await self.db.rollback()
                self.logger.info(
                    "product_create_conflict",
                    barcode=record.barcode,
                    attempt=attempt,
                )
                existing = await self.find_existing(record)
                if existing is not None:
                    self._backfill(existing, record)
                    return existing, False
                continue

            self.logger.info(
                "product_created",
                product_id=str(product.id),
                barcode=record.barcode,
                name=record.name[:50],
            )
            return product, True

        raise ReconciliationConflict(record.barcode or record.name)

    async def find_existing(self, record: ExtractedRecord) -> Optional[Product]:
        if record.barcode:
            product = await self.find_by_barcode(record.barcode)
            if product is not None:
                return product
        return await self.find_by_name(record.name, record.name_ar)

    async def find_by_barcode(self, barcode: str) -> Optional[Product]:
        result = await self.db.execute(select(Product).where(Product.barcode == barcode))
        return result.scalar_one_or_none()

    async def find_by_name(self, name: str, name_ar: Optional[str] = None) -> Optional[Product]:
        """Oldest product whose name or Arabic name equals either given name, ignoring case."""
        candidates = sorted({n.strip().lower() for n in (name, name_ar) if n and n.strip()})
        if not candidates:
            return None

        result = await self.db.execute(
            select(Product)
            .where(
                or_(
                    func.lower(Product.name).in_(candidates),
                    func.lower(Product.name_ar).in_(candidates),
                )
            )
            .order_by(Product.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _backfill(self, product: Product, record: ExtractedRecord) -> None:
        for field_name in BACKFILL_FIELDS:
            value = getattr(record, field_name)
            if value and not getattr(product, field_name):
                setattr(product, field_name, value)
        # A barcode lookup already missed, so no other product holds this one
        if record.barcode and not product.barcode:
            product.barcode = record.barcode
