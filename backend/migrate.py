#!/usr/bin/env python3
"""
Create the ATS tables and backfill schema pieces that create_all() cannot add
to an existing database.
"""

import sys
from pathlib import Path

from sqlalchemy import inspect, text

# Add repo root to path so `backend.app` resolves when run as a script.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.app.database import engine, init_db


def migrate():
    print("Initializing database with all models...")
    init_db()
    print("✓ Database initialized successfully")

    inspector = inspect(engine)
    existing = {c["name"] for c in inspector.get_columns("candidates")}

    columns_to_add = {
        "phone": "VARCHAR(20)",
        "address": "VARCHAR(200)",
        "cv_file_path": "VARCHAR(500)",
        "updated_at": "TIMESTAMP",
    }

    added = []
    for col, col_type in columns_to_add.items():
        if col in existing:
            continue
        try:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE candidates ADD COLUMN {col} {col_type}"))
            added.append(col)
        except Exception as e:
            print(f"✗ Failed to add column {col}: {e}")

    if added:
        print(f"✓ Added candidate columns: {', '.join(added)}")
    else:
        print("✓ Candidate columns already up to date")

    # Email uniqueness is what makes concurrent creates with the same email fail cleanly.
    try:
        uniq_name = "uq_candidates_email"
        indexes = inspector.get_indexes("candidates")
        has_unique_email = any(i.get("unique") and i.get("column_names") == ["email"] for i in indexes) or any(
            u.get("column_names") == ["email"] for u in inspector.get_unique_constraints("candidates")
        )
        if not has_unique_email:
            with engine.begin() as conn:
                conn.execute(text(f"CREATE UNIQUE INDEX {uniq_name} ON candidates (email)"))
            print(f"✓ Added unique index: {uniq_name}")
        else:
            print("✓ Unique email index already exists")
    except Exception as e:
        print(f"⚠ Could not add unique index on candidates.email: {e}")
        return False

    return True


if __name__ == "__main__":
    success = migrate()
    sys.exit(0 if success else 1)
