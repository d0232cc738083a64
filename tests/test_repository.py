"""
Tests for storage/repository.py

Covers: create-or-fetch by natural key (case and whitespace insensitive,
per organization), last-writer-wins updates, supplier defaults, price
versioning (one active price, history kept, rollback on failure), the
partial unique index, possible-duplicate warnings, and the read helpers.
Uses an in-memory SQLite catalog.
"""

import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from processing.errors import InvariantViolationError, ResolutionError
from storage.database import create_catalog_engine, init_db, make_session_factory
from storage.models import Ingredient, SupplierPrice, name_key
from storage.repository import ACTIVE_PRICE_COLUMNS, CatalogRepository, PriceObservation

ORG = "rest-01"


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    engine = create_catalog_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def repository(session_factory):
    return CatalogRepository(session_factory)


def _observation(pack_price: float = 12.5, **overrides) -> PriceObservation:
    values = {
        "pack_description": "6x1 L",
        "pack_unit": "L",
        "pack_net_qty": 6.0,
        "pack_price": pack_price,
        "tax_pct": 0.07,
    }
    values.update(overrides)
    return PriceObservation(**values)


def _supplier_product(repository: CatalogRepository, product: str = "Aceite de oliva",
                      supplier: str = "Proveedor A") -> int:
    ingredient = repository.resolve_ingredient(ORG, product)
    supplier_row = repository.resolve_supplier(ORG, supplier)
    return repository.resolve_supplier_product(supplier_row.id, ingredient.id).id


# ═══════════════════════════════════════════════════════════════════════════
# Natural keys
# ═══════════════════════════════════════════════════════════════════════════

class TestNameKey:
    def test_case_and_whitespace_insensitive(self):
        assert name_key("  Aceite   de OLIVA ") == "aceite de oliva"

    def test_blank(self):
        assert name_key("   ") == ""
        assert name_key(None) == ""


# ═══════════════════════════════════════════════════════════════════════════
# Ingredients
# ═══════════════════════════════════════════════════════════════════════════

class TestResolveIngredient:
    def test_created_with_defaults(self, repository):
        ingredient = repository.resolve_ingredient(ORG, "Aceite de oliva")
        assert ingredient.id is not None
        assert ingredient.name == "Aceite de oliva"
        assert ingredient.category == "General"
        assert ingredient.unit_base == "ud"
        assert ingredient.area == "both"
        assert ingredient.allergens == []

    def test_same_name_reused(self, repository):
        first = repository.resolve_ingredient(ORG, "Aceite de Oliva")
        second = repository.resolve_ingredient(ORG, "  aceite  de oliva ")
        assert first.id == second.id

    def test_scoped_by_organization(self, repository):
        first = repository.resolve_ingredient(ORG, "Sal")
        other = repository.resolve_ingredient("rest-02", "Sal")
        assert first.id != other.id

    def test_last_writer_wins(self, repository):
        repository.resolve_ingredient(ORG, "Leche", category="Lácteos", unit_base="L", area="kitchen")
        updated = repository.resolve_ingredient(ORG, "Leche", category="Bebidas", area="dining")
        assert updated.category == "Bebidas"
        assert updated.area == "dining"
        assert updated.unit_base == "L"

    def test_blank_name(self, repository):
        with pytest.raises(ResolutionError):
            repository.resolve_ingredient(ORG, "   ")

    def test_possible_duplicate_logged(self, repository, caplog):
        repository.resolve_ingredient(ORG, "Tomate pera")
        with caplog.at_level(logging.WARNING, logger="storage.repository"):
            created = repository.resolve_ingredient(ORG, "Tomate peras")
        assert "may duplicate" in caplog.text
        assert created.name == "Tomate peras"

    def test_no_warning_for_distinct_names(self, repository, caplog):
        repository.resolve_ingredient(ORG, "Tomate pera")
        with caplog.at_level(logging.WARNING, logger="storage.repository"):
            repository.resolve_ingredient(ORG, "Harina de trigo")
        assert "may duplicate" not in caplog.text


# ═══════════════════════════════════════════════════════════════════════════
# Suppliers and supplier products
# ═══════════════════════════════════════════════════════════════════════════

class TestResolveSupplier:
    def test_default_lead_time(self, repository):
        supplier = repository.resolve_supplier(ORG, "Proveedor A")
        assert supplier.lead_time_days == 1

    def test_same_name_reused(self, repository):
        first = repository.resolve_supplier(ORG, "Proveedor A")
        assert repository.resolve_supplier(ORG, "PROVEEDOR a").id == first.id

    def test_blank_name(self, repository):
        with pytest.raises(ResolutionError):
            repository.resolve_supplier(ORG, "")


class TestResolveSupplierProduct:
    def test_idempotent(self, repository):
        assert _supplier_product(repository) == _supplier_product(repository)

    def test_area_carried(self, repository):
        ingredient = repository.resolve_ingredient(ORG, "Vino tinto")
        supplier = repository.resolve_supplier(ORG, "Bodegas Norte")
        product = repository.resolve_supplier_product(supplier.id, ingredient.id, area="dining")
        assert product.area == "dining"

    def test_attributes_fixed_after_creation(self, repository):
        ingredient = repository.resolve_ingredient(ORG, "Vino tinto")
        supplier = repository.resolve_supplier(ORG, "Bodegas Norte")
        first = repository.resolve_supplier_product(
            supplier.id, ingredient.id, area="dining", family="Vinos"
        )
        again = repository.resolve_supplier_product(
            supplier.id, ingredient.id, area="kitchen", family="Cocina"
        )
        assert again.id == first.id
        assert again.area == "dining"
        assert again.family == "Vinos"


# ═══════════════════════════════════════════════════════════════════════════
# Price versioning
# ═══════════════════════════════════════════════════════════════════════════

class TestReplaceActivePrice:
    def test_first_price_active(self, repository):
        product_id = _supplier_product(repository)
        price = repository.replace_active_price(product_id, _observation())
        assert price.is_active is True
        assert price.effective_to is None
        assert [p.id for p in repository.active_prices(product_id)] == [price.id]

    def test_second_price_supersedes_first(self, repository):
        product_id = _supplier_product(repository)
        first = repository.replace_active_price(product_id, _observation(12.5))
        second = repository.replace_active_price(product_id, _observation(11.0))

        active = repository.active_prices(product_id)
        history = repository.price_history(product_id)

        assert [p.id for p in active] == [second.id]
        assert len(history) == 2
        old = next(p for p in history if p.id == first.id)
        assert old.is_active is False
        assert old.effective_to is not None

    def test_effective_timestamps(self, repository):
        product_id = _supplier_product(repository)
        t1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
        t2 = datetime(2024, 2, 1, tzinfo=timezone.utc)
        repository.replace_active_price(product_id, _observation(12.5), now=t1)
        repository.replace_active_price(product_id, _observation(11.0), now=t2)

        newest, oldest = repository.price_history(product_id)
        assert newest.pack_price == 11.0
        assert oldest.effective_to.replace(tzinfo=None) == t2.replace(tzinfo=None)

    def test_failed_switch_keeps_prior_price(self, repository):
        product_id = _supplier_product(repository)
        prior = repository.replace_active_price(product_id, _observation(12.5))

        with pytest.raises(InvariantViolationError):
            repository.replace_active_price(product_id, _observation(11.0, pack_net_qty=0.0))

        active = repository.active_prices(product_id)
        assert [p.id for p in active] == [prior.id]
        assert len(repository.price_history(product_id)) == 1

    def test_unknown_supplier_product(self, repository):
        with pytest.raises(InvariantViolationError) as exc_info:
            repository.replace_active_price(9999, _observation())
        assert exc_info.value.supplier_product_id == 9999


class TestActivePriceIndex:
    def test_database_rejects_second_active_price(self, repository, session_factory):
        product_id = _supplier_product(repository)
        with session_factory() as session:
            for price in (12.5, 11.0):
                session.add(SupplierPrice(
                    supplier_product_id=product_id,
                    pack_description="6x1 L",
                    pack_unit="L",
                    pack_net_qty=6.0,
                    pack_price=price,
                    tax_pct=0.07,
                    is_active=True,
                ))
            with pytest.raises(IntegrityError):
                session.commit()

    def test_inactive_prices_unrestricted(self, repository, session_factory):
        product_id = _supplier_product(repository)
        with session_factory() as session:
            for price in (12.5, 11.0):
                session.add(SupplierPrice(
                    supplier_product_id=product_id,
                    pack_description="6x1 L",
                    pack_unit="L",
                    pack_net_qty=6.0,
                    pack_price=price,
                    tax_pct=0.07,
                    is_active=False,
                ))
            session.commit()
        assert len(repository.price_history(product_id)) == 2


# ═══════════════════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════════════════

class TestActivePriceFrame:
    def test_one_row_per_active_price(self, repository):
        product_a = _supplier_product(repository, supplier="Proveedor A")
        product_b = _supplier_product(repository, supplier="Proveedor B")
        repository.replace_active_price(product_a, _observation(12.5))
        repository.replace_active_price(product_a, _observation(12.0))
        repository.replace_active_price(product_b, _observation(10.0))

        frame = repository.active_price_frame(ORG)

        assert list(frame.columns) == ACTIVE_PRICE_COLUMNS
        assert sorted(frame["pack_price"].tolist()) == [10.0, 12.0]
        assert set(frame["supplier_name"]) == {"Proveedor A", "Proveedor B"}

    def test_other_organizations_excluded(self, repository):
        product_id = _supplier_product(repository)
        repository.replace_active_price(product_id, _observation())
        assert repository.active_price_frame("rest-02").empty


class TestRefreshIngredientStats:
    def test_stats_from_active_prices(self, repository, session_factory):
        product_a = _supplier_product(repository, supplier="Proveedor A")
        product_b = _supplier_product(repository, supplier="Proveedor B")
        repository.replace_active_price(product_a, _observation(12.0, tax_pct=0.0))
        repository.replace_active_price(product_b, _observation(6.0, tax_pct=0.0))
        repository.resolve_ingredient(ORG, "Sal")

        assert repository.refresh_ingredient_stats(ORG) == 2

        with session_factory() as session:
            oil = session.scalars(select(Ingredient).where(Ingredient.name == "Aceite de oliva")).one()
            salt = session.scalars(select(Ingredient).where(Ingredient.name == "Sal")).one()

        assert oil.best_price == pytest.approx(1.0)
        assert oil.avg_price == pytest.approx(1.5)
        assert oil.supplier_count == 2
        assert oil.last_price_update is not None
        assert salt.best_price is None
        assert salt.supplier_count == 0

    def test_stats_cleared_when_prices_gone(self, repository, session_factory):
        product_id = _supplier_product(repository)
        repository.replace_active_price(product_id, _observation(12.0))
        repository.refresh_ingredient_stats(ORG)

        with session_factory() as session, session.begin():
            for price in session.scalars(select(SupplierPrice)):
                price.is_active = False
        repository.refresh_ingredient_stats(ORG)

        with session_factory() as session:
            oil = session.scalars(select(Ingredient)).one()
        assert oil.best_price is None
        assert oil.avg_price is None
        assert oil.supplier_count == 0
        assert oil.last_price_update is None
