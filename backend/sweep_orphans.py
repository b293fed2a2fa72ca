#!/usr/bin/env python3
"""
Delete CV files that no candidate references, and abandoned temp uploads.

    python backend/sweep_orphans.py [--older-than SECONDS]
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.app import config
from backend.app.database import SessionLocal
from backend.app.services.candidate_service import referenced_cv_paths
from backend.app.services.cv_storage import default_upload_policy, sweep_orphaned_files


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--older-than", type=int, default=config.ORPHAN_MAX_AGE_S,
                        help="only remove files older than this many seconds")
    args = parser.parse_args(argv)

    policy = default_upload_policy()
    db = SessionLocal()
    try:
        referenced = referenced_cv_paths(db)
    finally:
        db.close()

    removed = sweep_orphaned_files(referenced, policy, older_than_s=args.older_than)
    for path in removed:
        print(f"✓ removed {path}")
    print(f"✓ {len(removed)} file(s) removed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
