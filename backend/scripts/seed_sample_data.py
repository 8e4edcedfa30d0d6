#!/usr/bin/env python3
# backend/scripts/seed_sample_data.py
"""
Seed a demo company, member and client, and print an access token.

    python backend/scripts/seed_sample_data.py

The token can be used against the upload endpoint:

    curl -H "Authorization: Bearer <token>" \\
         -F clientId=<client id> -F periodStart=2024-01-01 -F periodEnd=2024-12-31 \\
         -F GRAND_LIVRE=@grand_livre.xlsx ... \\
         http://localhost:8000/files/comptable/upload
"""
import logging
import sys
from pathlib import Path

# Setup path to import repfi modules
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import select

from repfi.database import SessionLocal
from repfi.models import Client, Company, User
from repfi.services.auth import JWTHandler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_COMPANY = "Cabinet Demo"
DEMO_EMAIL = "demo@example.com"
DEMO_CLIENT = "Boulangerie Martin"


def seed() -> None:
    db = SessionLocal()
    try:
        user = db.scalar(select(User).where(User.email == DEMO_EMAIL))
        if user is None:
            company = Company(name=DEMO_COMPANY)
            db.add(company)
            db.flush()

            user = User(email=DEMO_EMAIL, name="Demo", company_id=company.id)
            db.add(user)
            db.commit()
            logger.info(f"Created company {company.name} and user {user.email}")
        else:
            logger.info(f"User exists: {user.email}")

        client = db.scalar(
            select(Client).where(Client.company_id == user.company_id, Client.name == DEMO_CLIENT)
        )
        if client is None:
            client = Client(name=DEMO_CLIENT, company_id=user.company_id)
            db.add(client)
            db.commit()
            logger.info(f"Created client {client.name}")

        token = JWTHandler.create_access_token(user.id, user.email)
        logger.info(f"Client id: {client.id}")
        logger.info(f"Access token: {token}")

    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
