import importlib.util
from datetime import date
from pathlib import Path

import pytest

from models import Tag, Transaction

SCRIPT = Path(__file__).resolve().parent.parent / "data-migration" / "script.py"
SEED_DIR = SCRIPT.parent / "seed"


@pytest.fixture
def seed_script(session_factory, monkeypatch):
    spec = importlib.util.spec_from_file_location("seed_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    monkeypatch.setattr(module, "SessionLocal", session_factory)
    monkeypatch.setattr(module, "engine", session_factory.kw["bind"])
    return module


def test_imports_example_seed(seed_script, db_session):
    inserted = seed_script.import_seed_csvs_to_db(SEED_DIR)

    assert inserted == 4
    rows = {tx.description: tx for tx in db_session.query(Transaction).all()}

    assert rows["Rent"].is_fixed is True
    assert rows["Rent"].day_of_month == 5
    assert rows["Laptop"].installments == 12
    assert rows["Laptop"].end_date == date(2024, 12, 31)
    assert sorted(t.name for t in rows["Laptop"].tags) == ["tech", "work"]
    assert rows["Salary"].paid_date is not None
    assert rows["Dentist"].is_fixed is False
    assert rows["Dentist"].installments is None
    assert db_session.query(Tag).count() == 3


def test_bad_row_stops_the_import(seed_script, db_session, tmp_path):
    (tmp_path / "bad.csv").write_text(
        "owner,type,description,amount,due_date,installments\n"
        "demo,EXPENSE,Phone,10,2024-01-01,1\n"
    )

    with pytest.raises(ValueError, match="bad.csv, row 2"):
        seed_script.import_seed_csvs_to_db(tmp_path)

    assert db_session.query(Transaction).count() == 0


def test_missing_columns_and_empty_folder(seed_script, tmp_path):
    with pytest.raises(FileNotFoundError):
        seed_script.import_seed_csvs_to_db(tmp_path)

    (tmp_path / "partial.csv").write_text("owner,type\ndemo,EXPENSE\n")
    with pytest.raises(ValueError, match="missing required columns"):
        seed_script.import_seed_csvs_to_db(tmp_path)
