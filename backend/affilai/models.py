"""
AffilAI — Database Models
Products and credentials are maintained by the catalog UI; affiliate links and
generated ad copy are written by the discovery/generation services.
"""

import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Boolean, DateTime,
    JSON, ForeignKey, Index, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from affilai.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class LinkStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    INVALID = "invalid"


# Only these moves are legal. Anything else is refused with a warning.
ALLOWED_LINK_TRANSITIONS = frozenset({
    (LinkStatus.ACTIVE, LinkStatus.EXPIRED),
    (LinkStatus.ACTIVE, LinkStatus.INVALID),
    (LinkStatus.EXPIRED, LinkStatus.INVALID),
})


class AdType(str, enum.Enum):
    SOCIAL_POST = "social_post"
    STORY = "story"
    VIDEO_SCRIPT = "video_script"
    CAROUSEL = "carousel"
    EMAIL = "email"
    SMS = "sms"


# ══════════════════════════════════════════════════════════════════════
#  PRODUCTS
# ══════════════════════════════════════════════════════════════════════

class Product(Base):
    """Catalog product with optional per-platform identifiers."""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    category: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    price_range: Mapped[str] = mapped_column(String(100), nullable=True)
    target_audience: Mapped[str] = mapped_column(String(255), nullable=True)
    trending_score: Mapped[int] = mapped_column(Integer, nullable=True, default=0)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    image_url: Mapped[str] = mapped_column(Text, nullable=True)

    # Affiliate platform identifiers
    amazon_asin: Mapped[str] = mapped_column(String(32), nullable=True)
    tiktok_product_id: Mapped[str] = mapped_column(String(128), nullable=True)
    instagram_product_id: Mapped[str] = mapped_column(String(128), nullable=True)
    youtube_video_id: Mapped[str] = mapped_column(String(64), nullable=True)
    pinterest_pin_id: Mapped[str] = mapped_column(String(128), nullable=True)
    product_url: Mapped[str] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    links: Mapped[list["AffiliateLink"]] = relationship("AffiliateLink", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)
    ad_copies: Mapped[list["GeneratedAdCopy"]] = relationship("GeneratedAdCopy", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_products_category", "category"),
    )


# ══════════════════════════════════════════════════════════════════════
#  AFFILIATE CREDENTIALS — one row per platform
# ══════════════════════════════════════════════════════════════════════

class AffiliateCredential(Base):
    """Per-platform affiliate account (Associate tag, creator id, shop id)."""
    __tablename__ = "affiliate_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    platform: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    affiliate_id: Mapped[str] = mapped_column(String(255), nullable=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=True)
    account_name: Mapped[str] = mapped_column(String(255), nullable=True)
    api_key: Mapped[str] = mapped_column(Text, nullable=True)  # encrypted
    api_secret: Mapped[str] = mapped_column(Text, nullable=True)  # encrypted
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


# ══════════════════════════════════════════════════════════════════════
#  AFFILIATE LINKS — synthesized tracking links with lifecycle status
# ══════════════════════════════════════════════════════════════════════

class AffiliateLink(Base):
    """Tracking link bound to a product/platform pair. Superseded rows are kept for audit."""
    __tablename__ = "affiliate_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(512), nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    program_name: Mapped[str] = mapped_column(String(255), nullable=False)
    commission_rate: Mapped[float] = mapped_column(Float, nullable=True)
    cookie_duration: Mapped[int] = mapped_column(Integer, nullable=True)
    tracking_url: Mapped[str] = mapped_column(Text, nullable=False)
    destination_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=LinkStatus.ACTIVE.value, nullable=False)
    superseded_by_id: Mapped[int] = mapped_column(Integer, ForeignKey("affiliate_links.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="links")

    __table_args__ = (
        Index("ix_affiliate_links_product_id", "product_id"),
        Index("ix_affiliate_links_status", "status"),
        # At most one active link per (product, platform)
        Index(
            "uq_affiliate_links_active_pair",
            "product_id", "platform",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


# ══════════════════════════════════════════════════════════════════════
#  AD COPIES — append-only generation history
# ══════════════════════════════════════════════════════════════════════

class GeneratedAdCopy(Base):
    """One row per generation. Regenerating never overwrites earlier rows."""
    __tablename__ = "ad_copies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variation_name: Mapped[str] = mapped_column(String(512), nullable=True)
    ad_type: Mapped[str] = mapped_column(String(32), nullable=False)
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    body_text: Mapped[str] = mapped_column(Text, nullable=True)
    cta: Mapped[str] = mapped_column(String(255), nullable=True)
    platform_specific_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    performance_score: Mapped[float] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="ad_copies")

    __table_args__ = (
        Index("ix_ad_copies_product_id", "product_id"),
        Index("ix_ad_copies_created_at", "created_at"),
    )
