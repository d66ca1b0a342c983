# reset_db.py
"""
Database reset utility - drops the ledger tables, recreates them and
initializes an empty asset registry.

Usage:
    python reset_db.py                                    # Reset only
    python reset_db.py --seed                             # Reset + one demo participant per affiliation
    python reset_db.py --participant alice:miner:s3cretpass --participant bob:distributor:s3cretpass
"""
import argparse
import sys

from sqlalchemy import create_engine, inspect, select
from sqlalchemy.orm import Session

from config import settings
from db_base import Base
from db_models.ledger_record import LedgerRecord
from db_models.participant import Affiliation, Participant
from core.security import get_password_hash
from api.diamonds.models import REGISTRY_KEY, AssetRegistry

DEMO_PASSWORD = "changeme123"


def get_sync_url(async_url: str) -> str:
    """Convert an async database URL to its synchronous driver."""
    return (
        async_url
        .replace("postgresql+asyncpg://", "postgresql+psycopg2://")
        .replace("sqlite+aiosqlite://", "sqlite://")
    )


def parse_participant(value: str) -> tuple[str, Affiliation, str]:
    """Parse `username:affiliation[:password]`."""
    parts = value.split(":")
    if len(parts) not in (2, 3) or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected username:affiliation[:password], got {value!r}")
    try:
        affiliation = Affiliation(parts[1])
    except ValueError:
        choices = ", ".join(a.value for a in Affiliation)
        raise argparse.ArgumentTypeError(f"unknown affiliation {parts[1]!r} (choose from {choices})")
    password = parts[2] if len(parts) == 3 else DEMO_PASSWORD
    return parts[0], affiliation, password


def reset_database(engine) -> None:
    """Drop all tables and recreate them."""
    existing = inspect(engine).get_table_names()
    if existing:
        print(f"Dropping {len(existing)} tables: {', '.join(existing)}")
    Base.metadata.drop_all(bind=engine)

    print("Creating fresh tables from SQLAlchemy models...")
    Base.metadata.create_all(bind=engine)

    for table in inspect(engine).get_table_names():
        columns = inspect(engine).get_columns(table)
        print(f"  {table}:")
        for column in columns:
            print(f"    - {column['name']}: {column['type']}")


def initialize_registry(session: Session) -> None:
    if session.get(LedgerRecord, REGISTRY_KEY) is None:
        session.add(LedgerRecord(key=REGISTRY_KEY, value=AssetRegistry().to_bytes(), version=1))
        session.commit()
        print(f"Initialized empty asset registry under '{REGISTRY_KEY}'")


def enrol(session: Session, participants: list[tuple[str, Affiliation, str]]) -> None:
    for username, affiliation, password in participants:
        exists = session.execute(
            select(Participant).where(Participant.username == username)
        ).scalar_one_or_none()
        if exists is not None:
            print(f"  - {username} already enrolled, skipping")
            continue
        session.add(Participant(
            username=username,
            hashed_password=get_password_hash(password),
            affiliation=affiliation.value,
            is_active=True,
        ))
        print(f"  - enrolled {username} ({affiliation.value})")
    session.commit()


def main():
    parser = argparse.ArgumentParser(
        description="Reset the ledger database and enrol participants"
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help=f"Enrol one demo participant per affiliation (password: {DEMO_PASSWORD})",
    )
    parser.add_argument(
        "--participant",
        action="append",
        type=parse_participant,
        default=[],
        metavar="USERNAME:AFFILIATION[:PASSWORD]",
        help="Enrol a participant (repeatable)",
    )
    parser.add_argument(
        "--keep-data",
        action="store_true",
        help="Skip the drop/recreate step (only initialize and enrol)",
    )
    args = parser.parse_args()

    engine = create_engine(get_sync_url(settings.DATABASE_URL))
    print(f"Connecting to: {engine.url.render_as_string(hide_password=True)}")

    if args.keep_data:
        Base.metadata.create_all(bind=engine)
    else:
        reset_database(engine)

    participants = list(args.participant)
    if args.seed:
        participants.extend((a.value, a, DEMO_PASSWORD) for a in Affiliation)

    with Session(engine) as session:
        initialize_registry(session)
        if participants:
            print("Enrolling participants...")
            enrol(session, participants)

    print("DATABASE RESET COMPLETE!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
