"""
This script seeds the finance hub database with root transactions from CSV
files (single purchases, fixed monthly bills, installment purchases).

Only root rows are inserted; monthly occurrences are computed when listing.
Each row goes through the same validation as the API, so a bad row stops the
import with the file name and row number.

Expected columns (case-insensitive):
- required: owner, type, description, amount, due_date (YYYY-MM-DD)
- optional: status, paid_date, account, category, notes, is_fixed,
  installments, tags (separated by "|")

Usage:
    python data-migration/script.py [folder]
"""


from __future__ import annotations

import logging
import sys
from pathlib import Path

import pandas as pd

from config import configure_logging
from db import Base, SessionLocal, engine
from app.services.transaction_rules import TransactionValidationError, build_root_transaction_from_dict
from models import Tag

logger = logging.getLogger(__name__)

SEED_DIR = Path("data-migration/seed")

TRUTHY = {"1", "true", "yes", "y", "x"}


def _none_if_nan(x):
    if pd.isna(x):
        return None
    s = str(x).strip()
    return None if s == "" or s.lower() == "nan" else s


def _row_to_payload(row) -> dict:
    installments = _none_if_nan(getattr(row, "installments"))
    return {
        "type": _none_if_nan(getattr(row, "type")),
        "description": _none_if_nan(getattr(row, "description")),
        "amount": _none_if_nan(getattr(row, "amount")),
        "due_date": _none_if_nan(getattr(row, "due_date")),
        "status": _none_if_nan(getattr(row, "status")),
        "paid_date": _none_if_nan(getattr(row, "paid_date")),
        "account_name": _none_if_nan(getattr(row, "account")),
        "category": _none_if_nan(getattr(row, "category")),
        "notes": _none_if_nan(getattr(row, "notes")),
        "is_fixed": str(_none_if_nan(getattr(row, "is_fixed")) or "").lower() in TRUTHY,
        # pandas reads integer columns with blanks as floats ("12.0")
        "installments": int(float(installments)) if installments else None,
    }


def _tags_for(session, owner_id: str, raw, cache: dict) -> list:
    names = [n.strip() for n in str(_none_if_nan(raw) or "").split("|") if n.strip()]
    tags = []
    for name in names:
        key = (owner_id, name)
        if key not in cache:
            tag = session.query(Tag).filter(Tag.owner_id == owner_id, Tag.name == name).first()
            if tag is None:
                tag = Tag(owner_id=owner_id, name=name)
                session.add(tag)
            cache[key] = tag
        tags.append(cache[key])
    return tags


def import_seed_csvs_to_db(
    folder: Path = SEED_DIR,
    batch_size: int = 1000,
) -> int:
    folder = Path(folder)
    csv_files = sorted(folder.glob("*.csv"))
    if not csv_files:
        raise FileNotFoundError(f"No CSV files found in: {folder.resolve()}")

    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    total_inserted = 0
    tag_cache: dict = {}

    try:
        for f in csv_files:
            df = pd.read_csv(f, dtype=str)

            # normalize headers
            df.columns = df.columns.str.strip().str.lower()

            required = {"owner", "type", "description", "amount", "due_date"}
            missing = required - set(df.columns)
            if missing:
                raise ValueError(f"{f.name}: missing required columns: {sorted(missing)}")

            for col in ("status", "paid_date", "account", "category", "notes", "is_fixed", "installments", "tags"):
                if col not in df.columns:
                    df[col] = None

            # drop fully empty rows
            df = df.dropna(how="all").copy()

            objs = []
            for i, row in enumerate(df.itertuples(index=False), start=2):
                owner_id = _none_if_nan(getattr(row, "owner"))
                if owner_id is None:
                    raise ValueError(f"{f.name}, row {i}: owner is required")
                try:
                    tx = build_root_transaction_from_dict(_row_to_payload(row), owner_id)
                except TransactionValidationError as e:
                    raise ValueError(f"{f.name}, row {i}: {e}") from e

                tx.tags = _tags_for(session, owner_id, getattr(row, "tags"), tag_cache)
                objs.append(tx)

            # insert in batches
            for start in range(0, len(objs), batch_size):
                session.add_all(objs[start : start + batch_size])
                session.commit()

            total_inserted += len(objs)
            logger.info(f"Imported {len(objs)} root transactions from {f.name}")

        logger.info(f"Seeding done. Total inserted: {total_inserted}")
        return total_inserted

    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    configure_logging()
    import_seed_csvs_to_db(Path(sys.argv[1]) if len(sys.argv) > 1 else SEED_DIR)
