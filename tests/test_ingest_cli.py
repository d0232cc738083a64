"""
Tests for ingest.py

Covers: --map parsing, dry runs, a full import into a SQLite file, the
--supplier column for sources without one, and the exit codes for input
errors and failed rows.
"""

from unittest.mock import patch

import pytest

import ingest
from processing.errors import MappingError
from storage.database import create_catalog_engine, make_session_factory
from storage.repository import CatalogRepository


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

PRICE_LIST = (
    "Producto;Proveedor;Precio;Formato\n"
    "Aceite de oliva;Proveedor A;12,50;6x1 L\n"
    "Harina de trigo;Molinos del Sur;18,90;25 kg\n"
    "Sal;Proveedor A;;1 kg\n"
)

MAP_ARGS = [
    "--map", "product=Producto",
    "--map", "supplier=Proveedor",
    "--map", "price=Precio",
    "--map", "pack_description=Formato",
]


@pytest.fixture(autouse=True)
def _no_logging_setup():
    # setup_logging would detach app loggers from pytest's capture
    with patch("ingest.setup_logging"):
        yield


@pytest.fixture
def price_list(tmp_path):
    path = tmp_path / "lista.csv"
    path.write_text(PRICE_LIST, encoding="utf-8")
    return path


def _run(price_list, tmp_path, *extra) -> tuple[int, str]:
    database_url = f"sqlite:///{tmp_path / 'catalog.db'}"
    argv = [str(price_list), "--org", "rest-01", "--database-url", database_url,
            *MAP_ARGS, *extra]
    return ingest.main(argv), database_url


# ═══════════════════════════════════════════════════════════════════════════
# Argument parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParseMapping:
    def test_pairs(self):
        mapping = ingest.parse_mapping(["product=Producto", "price = Precio €"])
        assert mapping.source_for("product") == "Producto"
        assert mapping.source_for("price") == "Precio €"

    def test_missing_separator(self):
        with pytest.raises(MappingError):
            ingest.parse_mapping(["product"])


# ═══════════════════════════════════════════════════════════════════════════
# main()
# ═══════════════════════════════════════════════════════════════════════════

class TestMain:
    def test_dry_run(self, price_list, tmp_path, capsys):
        code, _ = _run(price_list, tmp_path, "--dry-run")
        output = capsys.readouterr().out
        assert code == ingest.EXIT_OK
        assert "VALIDATION REPORT" in output
        assert "Rows: 3 total, 2 valid, 1 invalid" in output
        assert "Dry run" in output
        assert not (tmp_path / "catalog.db").exists()

    def test_import(self, price_list, tmp_path, capsys):
        code, database_url = _run(price_list, tmp_path)
        output = capsys.readouterr().out

        assert code == ingest.EXIT_OK
        assert "Processed: 2" in output
        assert "Skipped:   1" in output

        engine = create_catalog_engine(database_url)
        try:
            frame = CatalogRepository(make_session_factory(engine)).active_price_frame("rest-01")
        finally:
            engine.dispose()
        assert sorted(frame["ingredient_name"]) == ["Aceite de oliva", "Harina de trigo"]
        assert sorted(frame["pack_price"]) == [12.5, 18.9]

    def test_reimport_keeps_one_active_price(self, price_list, tmp_path):
        _run(price_list, tmp_path)
        code, database_url = _run(price_list, tmp_path)
        assert code == ingest.EXIT_OK

        engine = create_catalog_engine(database_url)
        try:
            frame = CatalogRepository(make_session_factory(engine)).active_price_frame("rest-01")
        finally:
            engine.dispose()
        assert len(frame) == 2

    def test_incomplete_mapping(self, price_list, tmp_path, capsys):
        argv = [str(price_list), "--org", "rest-01", "--map", "product=Producto", "--dry-run"]
        assert ingest.main(argv) == ingest.EXIT_INPUT_ERROR
        assert "Error:" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        code, _ = _run(tmp_path / "missing.csv", tmp_path)
        assert code == ingest.EXIT_INPUT_ERROR
        assert "File not found" in capsys.readouterr().out

    def test_failed_rows_exit_code(self, price_list, tmp_path):
        with patch("ingest.import_rows") as mock_import:
            mock_import.return_value = ingest.ImportResult(processed_count=1, failed_count=1,
                                                           errors=["Row 2 (Aceite de oliva): boom"])
            code, _ = _run(price_list, tmp_path)
        assert code == ingest.EXIT_ROW_FAILURES

    def test_supplier_option_fills_missing_column(self, tmp_path, capsys):
        path = tmp_path / "factura.csv"
        path.write_text("Producto;Precio;Formato\nHarina de trigo;0,89;1 kg\n", encoding="utf-8")
        database_url = f"sqlite:///{tmp_path / 'catalog.db'}"
        argv = [str(path), "--org", "rest-01", "--database-url", database_url,
                "--supplier", "Mercado Central",
                "--map", "product=Producto", "--map", "price=Precio",
                "--map", "pack_description=Formato"]

        assert ingest.main(argv) == ingest.EXIT_OK

        engine = create_catalog_engine(database_url)
        try:
            frame = CatalogRepository(make_session_factory(engine)).active_price_frame("rest-01")
        finally:
            engine.dispose()
        assert frame["supplier_name"].tolist() == ["Mercado Central"]
