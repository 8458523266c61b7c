"""
OData Shop - Schema Check
===========================
Creates any missing tables, then reports every entity set with its
row count and column list. Point it at another database with --url.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --url sqlite:///./copy.db
    python scripts/init_db.py --drop   # Drop and recreate all tables
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import Base, create_db_engine, make_session_factory
from modules.odata.routes import ENTITY_SETS
from modules.repository.unit_of_work import UnitOfWork


def report(session_factory) -> None:
    with UnitOfWork(session_factory) as uow:
        for entity_set, model in ENTITY_SETS.items():
            columns = ", ".join(c.name for c in model.__table__.columns)
            print(f"  {entity_set:<12} {uow.repository(model).count():>6} rows  ({model.__tablename__}: {columns})")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the OData Shop schema and report row counts")
    parser.add_argument("--url", help="database URL (defaults to DATABASE_URL)")
    parser.add_argument("--drop", action="store_true", help="drop every table first")
    args = parser.parse_args(argv)

    db_engine = create_db_engine(args.url)
    try:
        if args.drop:
            confirm = input(f"This will DROP all tables in {db_engine.url!r}. Type 'yes': ")
            if confirm.strip().lower() != "yes":
                print("Aborted.")
                return 1
            Base.metadata.drop_all(bind=db_engine)

        Base.metadata.create_all(bind=db_engine)
        print(f"Schema ready on {db_engine.url!r}:")
        report(make_session_factory(db_engine))
    finally:
        db_engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
