"""SQLAlchemy models for the ingredient and supplier catalog.

Natural keys are enforced by unique constraints; SupplierPrice keeps a
versioned history (SCD Type-2 style) with at most one active row per
supplier product, enforced by a partial unique index on both PostgreSQL and
SQLite.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from config.schema import (
    DEFAULT_AREA,
    DEFAULT_CATEGORY,
    DEFAULT_DISCOUNT_PCT,
    DEFAULT_LEAD_TIME_DAYS,
)

_WHITESPACE = re.compile(r"\s+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def name_key(name: str | None) -> str:
    """Case-insensitive, whitespace-insensitive identity of a catalog name."""
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name.strip()).casefold()


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Ingredient(Base):
    """Catalog ingredient, unique per organization by normalized name."""

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    name_key: Mapped[str] = mapped_column(Text, nullable=False)

    category: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_CATEGORY)
    family: Mapped[str | None] = mapped_column(Text)
    unit_base: Mapped[str] = mapped_column(String(8), nullable=False, default="ud")
    area: Mapped[str] = mapped_column(String(16), nullable=False, default=DEFAULT_AREA)
    allergens: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    yield_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    # Denormalized price statistics, refreshed from active prices
    avg_price: Mapped[float | None] = mapped_column(Float)
    best_price: Mapped[float | None] = mapped_column(Float)
    supplier_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_price_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    supplier_products: Mapped[list[SupplierProduct]] = relationship(back_populates="ingredient")

    __table_args__ = (
        UniqueConstraint("organization_id", "name_key", name="uq_ingredient_org_name"),
    )


class Supplier(Base):
    """Supplier, unique per organization by normalized name."""

    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    name_key: Mapped[str] = mapped_column(Text, nullable=False)
    contact: Mapped[str | None] = mapped_column(Text)
    lead_time_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_LEAD_TIME_DAYS
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    supplier_products: Mapped[list[SupplierProduct]] = relationship(back_populates="supplier")

    __table_args__ = (
        UniqueConstraint("organization_id", "name_key", name="uq_supplier_org_name"),
    )


class SupplierProduct(Base):
    """A supplier's offer of one ingredient."""

    __tablename__ = "supplier_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id"), nullable=False)
    area: Mapped[str] = mapped_column(String(16), nullable=False, default=DEFAULT_AREA)
    family: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    supplier: Mapped[Supplier] = relationship(back_populates="supplier_products")
    ingredient: Mapped[Ingredient] = relationship(back_populates="supplier_products")
    prices: Mapped[list[SupplierPrice]] = relationship(back_populates="supplier_product")

    __table_args__ = (
        UniqueConstraint("supplier_id", "ingredient_id", name="uq_supplier_product"),
        Index("idx_supplier_product_ingredient", "ingredient_id"),
    )


class SupplierPrice(Base):
    """One price observation.  Never deleted; superseded rows are deactivated."""

    __tablename__ = "supplier_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_product_id: Mapped[int] = mapped_column(
        ForeignKey("supplier_products.id"), nullable=False
    )
    pack_description: Mapped[str] = mapped_column(Text, nullable=False)
    pack_unit: Mapped[str] = mapped_column(String(8), nullable=False)
    pack_net_qty: Mapped[float] = mapped_column(Float, nullable=False)
    pack_price: Mapped[float] = mapped_column(Float, nullable=False)
    discount_pct: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_DISCOUNT_PCT
    )
    # Fraction, e.g. 0.07 for 7 %
    tax_pct: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    effective_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    supplier_product: Mapped[SupplierProduct] = relationship(back_populates="prices")

    __table_args__ = (
        CheckConstraint("pack_net_qty > 0", name="check_pack_net_qty_positive"),
        CheckConstraint("pack_price > 0", name="check_pack_price_positive"),
        CheckConstraint(
            "discount_pct >= 0 AND discount_pct < 1", name="check_discount_range"
        ),
        CheckConstraint("tax_pct >= 0", name="check_tax_non_negative"),

        # At most one active price per supplier product
        Index(
            "idx_supplier_price_active_unique",
            "supplier_product_id",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_supplier_price_history", "supplier_product_id", "effective_from"),
    )
