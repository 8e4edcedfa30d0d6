#!/usr/bin/env python3
# backend/init_db.py
"""
Create the comptable tables directly from the models.

Meant for local SQLite databases; PostgreSQL deployments use
`alembic upgrade head` instead.

    python backend/init_db.py
    python backend/init_db.py --drop   # recreate from scratch
"""
import argparse
import logging
import sys
from pathlib import Path

# Make the 'repfi' package importable from any working directory
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from repfi.database import engine
from repfi.models import Base

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_db(drop: bool = False) -> None:
    if drop:
        logger.info("Dropping comptable tables...")
        Base.metadata.drop_all(bind=engine)

    logger.info(f"Creating tables: {', '.join(Base.metadata.tables)}")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    init_db(drop=parser.parse_args().drop)
