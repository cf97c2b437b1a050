"""Re-derive teacher assignments on exams and mark records from the subject list.

Run from the repo root after a teacher change reported a propagation failure,
or periodically as a consistency check:

    python scripts/sync_assignments.py 12 15
    python scripts/sync_assignments.py --all

Uses the same DB configuration as the app (.env / ENVIRONMENT).
"""

import argparse
import logging
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

# Ensure we can import app and utils from the parent directory
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import create_app  # noqa: E402
from models import SubjectAssignment  # noqa: E402
from utils.propagation import sync_assignments  # noqa: E402

logger = logging.getLogger("sync_assignments")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("class_ids", nargs="*", type=int, metavar="CLASS_ID")
    parser.add_argument(
        "--all", action="store_true", help="sync every class that has subjects"
    )
    args = parser.parse_args(argv)
    if not args.all and not args.class_ids:
        parser.error("give at least one CLASS_ID or --all")
    return args


def main(argv=None, app=None) -> int:
    args = parse_args(argv)
    app = app or create_app()

    with app.app_context():
        if args.all:
            class_ids = [
                row.class_id
                for row in SubjectAssignment.query.order_by(SubjectAssignment.class_id)
            ]
        else:
            class_ids = args.class_ids

        if not class_ids:
            print("No classes with subjects found.")
            return 0

        failed = 0
        for class_id in class_ids:
            try:
                report = sync_assignments(class_id)
            except SQLAlchemyError as e:
                logger.error(f"Sync failed for class {class_id}: {str(e)}")
                failed += 1
                continue
            status = "repaired" if report["notices"] else "ok"
            print(
                f"class {class_id}: {status} "
                f"({report['updated_records']}/{report['total_records']} records, "
                f"{report['updated_subjects']} mark subjects, "
                f"{report['exam_subjects_updated']} exam subjects)"
            )

    print("\nDone.")
    return 2 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
