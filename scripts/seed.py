"""
OData Shop - Database Seeder
==============================
Seeds products, customers and orders into an empty database.

Usage:
    python scripts/seed.py          # Seed (skipped if products exist)
    python scripts/seed.py --reset  # Drop all tables, recreate, and reseed
"""

import sys
import os
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from config.database import Base, engine, SessionLocal
from modules.repository.unit_of_work import UnitOfWork
from modules.seed.service import seed_database


def seed():
    Base.metadata.create_all(bind=engine)
    with UnitOfWork(SessionLocal) as uow:
        if seed_database(uow):
            print("Seeding complete.")
        else:
            print("Database already seeded; nothing to do.")


def reset_and_seed():
    """Drop all tables and recreate + seed."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    print("All tables recreated")
    seed()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if "--reset" in sys.argv:
        confirm = input("This will DELETE ALL DATA. Type 'yes' to confirm: ")
        if confirm.strip().lower() == "yes":
            reset_and_seed()
        else:
            print("Aborted.")
    else:
        seed()
