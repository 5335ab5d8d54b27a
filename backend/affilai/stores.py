"""
Catalog and credential stores — the only code that talks to the database on behalf
of the services. Every call runs in its own session and commits or rolls back as a
unit, so callers never observe a half-written link or ad copy.

SQLAlchemy errors are wrapped in PersistenceFailure. An IntegrityError raised by the
active-link unique index means another writer won the race for that
(product, platform) pair and surfaces as ConcurrentGenerationInProgress.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from affilai.crypto import encrypt_secrets
from affilai.database import async_session
from affilai.errors import ConcurrentGenerationInProgress, PersistenceFailure
from affilai.models import (
    AffiliateCredential, AffiliateLink, GeneratedAdCopy, LinkStatus, Product,
)
from affilai.utils import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _transaction(
    factory: async_sessionmaker[AsyncSession],
    action: str,
    product_id: Optional[int] = None,
    platform: Optional[str] = None,
):
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            if platform is not None:
                raise ConcurrentGenerationInProgress(
                    f"another active link for product {product_id} on {platform} was written concurrently",
                    product_id=product_id, platform=platform, policy="single_active_link",
                ) from e
            raise PersistenceFailure(
                f"failed to {action}: integrity violation",
                product_id=product_id, policy="persistence",
            ) from e
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Store failed to {action}: {e}")
            raise PersistenceFailure(
                f"failed to {action}", product_id=product_id, platform=platform, policy="persistence",
            ) from e


class CatalogStore:
    """Products, affiliate links and ad copy history."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._factory = session_factory or async_session

    # ── Products ─────────────────────────────────────────────────────
    async def get_product(self, product_id: int) -> Optional[Product]:
        async with _transaction(self._factory, "load product", product_id) as db:
            return await db.get(Product, product_id)

    async def list_products(self, category: Optional[str] = None) -> list[Product]:
        async with _transaction(self._factory, "list products") as db:
            query = select(Product).order_by(Product.id)
            if category:
                query = query.where(Product.category.ilike(f"%{category}%"))
            result = await db.execute(query)
            return list(result.scalars().all())

    async def create_product(self, **fields) -> Product:
        async with _transaction(self._factory, "create product") as db:
            product = Product(**fields)
            db.add(product)
            await db.flush()
            await db.refresh(product)
            return product

    # ── Affiliate links ──────────────────────────────────────────────
    async def get_link(self, link_id: int) -> Optional[AffiliateLink]:
        async with _transaction(self._factory, "load link") as db:
            return await db.get(AffiliateLink, link_id)

    async def list_links(
        self,
        status: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> list[AffiliateLink]:
        async with _transaction(self._factory, "list links") as db:
            query = select(AffiliateLink).order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc())
            if status:
                query = query.where(AffiliateLink.status == status)
            if platform:
                query = query.where(AffiliateLink.platform == platform)
            result = await db.execute(query)
            return list(result.scalars().all())

    async def list_links_for_product(self, product_id: int) -> list[AffiliateLink]:
        """Every row for the product, superseded ones included, newest first."""
        async with _transaction(self._factory, "list product links", product_id) as db:
            result = await db.execute(
                select(AffiliateLink)
                .where(AffiliateLink.product_id == product_id)
                .order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc())
            )
            return list(result.scalars().all())

    async def active_pairs(self) -> set[tuple[int, str]]:
        """(product_id, platform) pairs that already have an active link."""
        async with _transaction(self._factory, "list active pairs") as db:
            result = await db.execute(
                select(AffiliateLink.product_id, AffiliateLink.platform)
                .where(AffiliateLink.status == LinkStatus.ACTIVE.value)
            )
            return {(row[0], row[1]) for row in result.all()}

    async def update_link_if_status(self, link_id: int, expected_status: str, **values) -> Optional[AffiliateLink]:
        """
        Compare-and-set: write `values` only while the row is still in
        `expected_status`. Returns the updated row, or None when it has moved on
        (or is gone) and nothing was written.
        """
        async with _transaction(self._factory, "update link") as db:
            result = await db.execute(
                update(AffiliateLink)
                .where(AffiliateLink.id == link_id, AffiliateLink.status == expected_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            return await db.get(AffiliateLink, link_id)

    async def supersede_and_insert_link(self, **fields) -> tuple[AffiliateLink, list[AffiliateLink]]:
        """
        Insert a new active link for (product_id, platform) and, in the same
        transaction, mark every active/expired row for the pair invalid with
        superseded_by_id pointing at the new row.

        Returns (new_link, superseded_rows).
        """
        product_id = fields["product_id"]
        platform = fields["platform"]
        async with _transaction(self._factory, "save link", product_id, platform) as db:
            result = await db.execute(
                select(AffiliateLink)
                .where(
                    AffiliateLink.product_id == product_id,
                    AffiliateLink.platform == platform,
                    AffiliateLink.status.in_([LinkStatus.ACTIVE.value, LinkStatus.EXPIRED.value]),
                )
                .with_for_update()
            )
            previous = list(result.scalars().all())
            now = utcnow()
            for old in previous:
                old.status = LinkStatus.INVALID.value
                old.updated_at = now
            # Old rows must leave 'active' before the new one enters it
            await db.flush()

            link = AffiliateLink(status=LinkStatus.ACTIVE.value, created_at=now, updated_at=now, **fields)
            db.add(link)
            await db.flush()
            for old in previous:
                old.superseded_by_id = link.id
            await db.flush()
            return link, previous

    async def delete_link(self, link_id: int) -> bool:
        async with _transaction(self._factory, "delete link") as db:
            link = await db.get(AffiliateLink, link_id)
            if link is None:
                return False
            await db.delete(link)
            return True

    # ── Ad copy ──────────────────────────────────────────────────────
    async def upsert_ad_copy(self, **fields) -> GeneratedAdCopy:
        """Always inserts. Ad copy history is append-only."""
        async with _transaction(self._factory, "save ad copy", fields.get("product_id")) as db:
            now = utcnow()
            copy = GeneratedAdCopy(created_at=now, updated_at=now, **fields)
            db.add(copy)
            await db.flush()
            await db.refresh(copy)
            return copy

    async def list_ad_copies_for_product(self, product_id: int) -> list[GeneratedAdCopy]:
        async with _transaction(self._factory, "list ad copies", product_id) as db:
            result = await db.execute(
                select(GeneratedAdCopy)
                .where(GeneratedAdCopy.product_id == product_id)
                .order_by(GeneratedAdCopy.created_at.desc(), GeneratedAdCopy.id.desc())
            )
            return list(result.scalars().all())


@dataclass(frozen=True)
class CredentialInfo:
    """What the link synthesizer needs to know about an affiliate account. Never carries secrets."""
    platform: str
    affiliate_id: Optional[str]
    shop_id: Optional[str]
    verified: bool
    active: bool

    @property
    def usable(self) -> bool:
        return self.active and bool(self.affiliate_id or self.shop_id)


class CredentialStore:
    """One affiliate account per platform. Read-only from the services."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._factory = session_factory or async_session

    async def get_credential(self, platform: str) -> Optional[CredentialInfo]:
        async with _transaction(self._factory, "load credential") as db:
            result = await db.execute(
                select(AffiliateCredential).where(AffiliateCredential.platform == platform)
            )
            cred = result.scalar_one_or_none()
            if cred is None:
                return None
            return CredentialInfo(
                platform=cred.platform,
                affiliate_id=cred.affiliate_id,
                shop_id=cred.shop_id,
                verified=bool(cred.verified),
                active=bool(cred.active),
            )

    async def list_credentials(self) -> list[AffiliateCredential]:
        async with _transaction(self._factory, "list credentials") as db:
            result = await db.execute(select(AffiliateCredential).order_by(AffiliateCredential.platform))
            return list(result.scalars().all())

    async def save_credential(self, platform: str, **fields) -> AffiliateCredential:
        """Create or update the platform's credential. Secrets are encrypted at rest."""
        fields = encrypt_secrets(fields)
        async with _transaction(self._factory, "save credential") as db:
            result = await db.execute(
                select(AffiliateCredential).where(AffiliateCredential.platform == platform)
            )
            cred = result.scalar_one_or_none()
            if cred is None:
                cred = AffiliateCredential(platform=platform)
                db.add(cred)
            for key, value in fields.items():
                if value is not None:
                    setattr(cred, key, value)
            cred.updated_at = utcnow()
            await db.flush()
            await db.refresh(cred)
            return cred

    async def delete_credential(self, platform: str) -> bool:
        async with _transaction(self._factory, "delete credential") as db:
            result = await db.execute(
                delete(AffiliateCredential).where(AffiliateCredential.platform == platform)
            )
            return result.rowcount > 0
