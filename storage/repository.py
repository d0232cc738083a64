"""
Catalog repository — create-or-fetch by natural key and price versioning.

Ingredients and suppliers are identified per organization by their
normalized name; supplier products by (supplier, ingredient).  Each resolve
is an idempotent create-or-fetch: a concurrent create of the same natural
key surfaces as an IntegrityError, after which the winner's row is
re-fetched.

Price versioning is the one atomic operation.  replace_active_price()
deactivates every active price of a supplier product and inserts the new
one in a single transaction, serialized per supplier product by an
in-process lock plus a SELECT … FOR UPDATE on the product row.  The
partial unique index on active prices backs this up at the database level.

Public API:
    PriceObservation
    CatalogRepository(session_factory)
        .resolve_ingredient(organization_id, name, category, unit_base, area)
        .resolve_supplier(organization_id, name, contact)
        .resolve_supplier_product(supplier_id, ingredient_id, area, family)
        .replace_active_price(supplier_product_id, observation, now)
        .active_prices(supplier_product_id)
        .price_history(supplier_product_id)
        .active_price_frame(organization_id)
        .refresh_ingredient_stats(organization_id)
"""

import logging
from dataclasses import dataclass
from datetime import datetime

import pandas as pd
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config.schema import DEFAULT_AREA, DEFAULT_CATEGORY, DEFAULT_DISCOUNT_PCT
from config.settings import DUPLICATE_NAME_THRESHOLD
from processing.errors import InvariantViolationError, ResolutionError
from processing.price_calculator import flag_best_prices, summarize_ingredient_prices
from storage.models import (
    Ingredient,
    Supplier,
    SupplierPrice,
    SupplierProduct,
    name_key,
    utcnow,
)
from utils.fuzzy_match import find_similar_names
from utils.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

# Columns of active_price_frame(), in order.
ACTIVE_PRICE_COLUMNS: list[str] = [
    "price_id",
    "supplier_product_id",
    "ingredient_id",
    "ingredient_name",
    "supplier_id",
    "supplier_name",
    "pack_description",
    "pack_unit",
    "pack_net_qty",
    "pack_price",
    "discount_pct",
    "tax_pct",
    "effective_from",
]


@dataclass(frozen=True)
class PriceObservation:
    """A new price for one supplier product, already in catalog units."""

    pack_description: str
    pack_unit: str
    pack_net_qty: float
    pack_price: float
    tax_pct: float
    discount_pct: float = DEFAULT_DISCOUNT_PCT


class CatalogRepository:
    """Persistence operations the importer needs, over a SQLAlchemy sessionmaker."""

    def __init__(
        self,
        session_factory: sessionmaker,
        duplicate_threshold: int = DUPLICATE_NAME_THRESHOLD,
    ):
        self._session_factory = session_factory
        self._duplicate_threshold = duplicate_threshold
        self._price_locks = KeyedLock()

    # ═══════════════════════════════════════════════════════════════════
    # Entity resolution
    # ═══════════════════════════════════════════════════════════════════

    def resolve_ingredient(
        self,
        organization_id: str,
        name: str,
        category: str | None = None,
        unit_base: str | None = None,
        area: str | None = None,
    ) -> Ingredient:
        """
        Fetch the organization's ingredient by name, or create it.

        An existing ingredient takes the given category, base unit and area
        (last writer wins; None leaves a value unchanged).  A new ingredient
        whose name closely resembles an existing one is created anyway and
        a possible duplicate is logged.

        Raises:
            ResolutionError: Blank name or a database failure.
        """
        key = name_key(name)
        if not key:
            raise ResolutionError("ingredient name is required")

        ingredient, created = self._get_or_create(
            Ingredient,
            lookup={"organization_id": organization_id, "name_key": key},
            defaults={
                "name": name.strip(),
                "category": DEFAULT_CATEGORY,
                "unit_base": "ud",
                "area": DEFAULT_AREA,
                "allergens": [],
            },
            updates={"category": category, "unit_base": unit_base, "area": area},
            label=f"ingredient '{name.strip()}'",
        )
        if created:
            self._warn_possible_duplicates(organization_id, ingredient)
        return ingredient

    def resolve_supplier(
        self,
        organization_id: str,
        name: str,
        contact: str | None = None,
    ) -> Supplier:
        """
        Fetch the organization's supplier by name, or create it with the
        default lead time.

        Raises:
            ResolutionError: Blank name or a database failure.
        """
        key = name_key(name)
        if not key:
            raise ResolutionError("supplier name is required")

        supplier, _ = self._get_or_create(
            Supplier,
            lookup={"organization_id": organization_id, "name_key": key},
            defaults={"name": name.strip()},
            updates={"contact": contact},
            label=f"supplier '{name.strip()}'",
        )
        return supplier

    def resolve_supplier_product(
        self,
        supplier_id: int,
        ingredient_id: int,
        area: str | None = None,
        family: str | None = None,
    ) -> SupplierProduct:
        """
        Fetch the supplier's offer of an ingredient, or create it.

        The offer is created once and reused thereafter: *area* and *family*
        only apply on creation.

        Raises:
            ResolutionError: A database failure (e.g. unknown supplier id).
        """
        product, _ = self._get_or_create(
            SupplierProduct,
            lookup={"supplier_id": supplier_id, "ingredient_id": ingredient_id},
            defaults={"area": area or DEFAULT_AREA, "family": family},
            updates={},
            label=f"supplier product ({supplier_id}, {ingredient_id})",
        )
        return product

    # ═══════════════════════════════════════════════════════════════════
    # Price versioning
    # ═══════════════════════════════════════════════════════════════════

    def replace_active_price(
        self,
        supplier_product_id: int,
        observation: PriceObservation,
        now: datetime | None = None,
    ) -> SupplierPrice:
        """
        Make *observation* the single active price of a supplier product.

        Deactivates every active price (effective_to = now) and inserts the
        new active row, in one transaction.

        Returns:
            The inserted SupplierPrice.

        Raises:
            InvariantViolationError: The transaction failed and was rolled
                back; the prior active price is unchanged.
        """
        now = now or utcnow()

        with self._price_locks.hold(supplier_product_id):
            try:
                with self._session_factory() as session, session.begin():
                    product = session.scalars(
                        select(SupplierProduct)
                        .where(SupplierProduct.id == supplier_product_id)
                        .with_for_update()
                    ).one_or_none()
                    if product is None:
                        raise LookupError(
                            f"supplier product {supplier_product_id} does not exist"
                        )

                    deactivated = session.execute(
                        update(SupplierPrice)
                        .where(
                            SupplierPrice.supplier_product_id == supplier_product_id,
                            SupplierPrice.is_active.is_(True),
                        )
                        .values(is_active=False, effective_to=now)
                        .execution_options(synchronize_session=False)
                    ).rowcount

                    price = SupplierPrice(
                        supplier_product_id=supplier_product_id,
                        pack_description=observation.pack_description,
                        pack_unit=observation.pack_unit,
                        pack_net_qty=observation.pack_net_qty,
                        pack_price=observation.pack_price,
                        discount_pct=observation.discount_pct,
                        tax_pct=observation.tax_pct,
                        is_active=True,
                        effective_from=now,
                        effective_to=None,
                    )
                    session.add(price)
            except (SQLAlchemyError, LookupError) as exc:
                logger.error(
                    f"Price switch for supplier product {supplier_product_id} "
                    f"rolled back: {exc}"
                )
                raise InvariantViolationError(supplier_product_id, exc) from exc

        logger.debug(
            f"Supplier product {supplier_product_id}: {deactivated} price(s) "
            f"deactivated, new active price {price.id}"
        )
        return price

    # ═══════════════════════════════════════════════════════════════════
    # Reads
    # ═══════════════════════════════════════════════════════════════════

    def active_prices(self, supplier_product_id: int) -> list[SupplierPrice]:
        """Active prices of a supplier product (at most one when consistent)."""
        with self._session_factory() as session:
            return list(session.scalars(
                select(SupplierPrice).where(
                    SupplierPrice.supplier_product_id == supplier_product_id,
                    SupplierPrice.is_active.is_(True),
                )
            ))

    def price_history(self, supplier_product_id: int) -> list[SupplierPrice]:
        """Every price of a supplier product, newest first."""
        with self._session_factory() as session:
            return list(session.scalars(
                select(SupplierPrice)
                .where(SupplierPrice.supplier_product_id == supplier_product_id)
                .order_by(SupplierPrice.effective_from.desc(), SupplierPrice.id.desc())
            ))

    def active_price_frame(self, organization_id: str) -> pd.DataFrame:
        """
        One row per active price in the organization, for best-price
        comparison.  Columns: ACTIVE_PRICE_COLUMNS.
        """
        statement = (
            select(
                SupplierPrice.id,
                SupplierPrice.supplier_product_id,
                Ingredient.id,
                Ingredient.name,
                Supplier.id,
                Supplier.name,
                SupplierPrice.pack_description,
                SupplierPrice.pack_unit,
                SupplierPrice.pack_net_qty,
                SupplierPrice.pack_price,
                SupplierPrice.discount_pct,
                SupplierPrice.tax_pct,
                SupplierPrice.effective_from,
            )
            .join(SupplierProduct, SupplierPrice.supplier_product_id == SupplierProduct.id)
            .join(Ingredient, SupplierProduct.ingredient_id == Ingredient.id)
            .join(Supplier, SupplierProduct.supplier_id == Supplier.id)
            .where(
                Ingredient.organization_id == organization_id,
                SupplierPrice.is_active.is_(True),
            )
            .order_by(Ingredient.id, SupplierPrice.id)
        )
        with self._session_factory() as session:
            rows = [tuple(row) for row in session.execute(statement)]
        return pd.DataFrame(rows, columns=ACTIVE_PRICE_COLUMNS)

    def refresh_ingredient_stats(self, organization_id: str) -> int:
        """
        Recompute avg/best price, supplier count and last price update of
        every ingredient in the organization from its active prices.

        Returns:
            Number of ingredients updated.
        """
        frame = self.active_price_frame(organization_id)
        summary = summarize_ingredient_prices(flag_best_prices(frame))
        last_update = (
            frame.groupby("ingredient_id")["effective_from"].max()
            if not frame.empty
            else pd.Series(dtype=object)
        )

        with self._session_factory() as session, session.begin():
            ingredients = session.scalars(
                select(Ingredient).where(Ingredient.organization_id == organization_id)
            ).all()
            for ingredient in ingredients:
                if ingredient.id in summary.index:
                    stats = summary.loc[ingredient.id]
                    ingredient.avg_price = float(stats["avg_price"])
                    ingredient.best_price = float(stats["best_price"])
                    ingredient.supplier_count = int(stats["supplier_count"])
                    ingredient.last_price_update = _as_datetime(last_update.get(ingredient.id))
                else:
                    ingredient.avg_price = None
                    ingredient.best_price = None
                    ingredient.supplier_count = 0
                    ingredient.last_price_update = None

        logger.info(f"Refreshed price stats of {len(ingredients)} ingredients")
        return len(ingredients)

    # ═══════════════════════════════════════════════════════════════════
    # Internal helpers
    # ═══════════════════════════════════════════════════════════════════

    def _get_or_create(
        self,
        model: type,
        lookup: dict,
        defaults: dict,
        updates: dict,
        label: str,
    ) -> tuple:
        """
        Fetch *model* by *lookup*, or insert it.

        Non-None *updates* are applied to an existing row and used as
        initial values of a new one.  A unique-key race is resolved by
        re-fetching the row that won.

        Returns:
            (instance, created)
        """
        changes = {key: value for key, value in updates.items() if value is not None}

        try:
            with self._session_factory() as session:
                instance = _find(session, model, lookup)
                if instance is None:
                    instance = model(**lookup, **{**defaults, **changes})
                    session.add(instance)
                    try:
                        session.commit()
                        logger.info(f"Created {label}")
                        return instance, True
                    except IntegrityError:
                        session.rollback()
                        logger.debug(f"{label} created concurrently; re-fetching")
                        instance = _find(session, model, lookup)
                        if instance is None:
                            raise ResolutionError(f"could not create {label}")

                changed = [
                    key for key, value in changes.items()
                    if getattr(instance, key) != value
                ]
                for key in changed:
                    setattr(instance, key, changes[key])
                if changed:
                    session.commit()
                    logger.debug(f"Updated {label}: {changed}")
                return instance, False
        except SQLAlchemyError as exc:
            raise ResolutionError(f"could not resolve {label}: {exc}") from exc

    def _warn_possible_duplicates(self, organization_id: str, ingredient: Ingredient) -> None:
        with self._session_factory() as session:
            names = session.scalars(
                select(Ingredient.name).where(
                    Ingredient.organization_id == organization_id,
                    Ingredient.name_key != ingredient.name_key,
                )
            ).all()

        similar = find_similar_names(ingredient.name, names, self._duplicate_threshold)
        if similar:
            logger.warning(
                f"New ingredient '{ingredient.name}' may duplicate: "
                + ", ".join(f"'{name}' ({score})" for name, score in similar)
            )


def _find(session: Session, model: type, lookup: dict):
    statement = select(model)
    for column, value in lookup.items():
        statement = statement.where(getattr(model, column) == value)
    return session.scalars(statement).one_or_none()


def _as_datetime(value) -> datetime | None:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value
