from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for the ledger's ORM models.

    Kept free of engine/session imports so Alembic and the schema reset
    script can import the metadata without pulling in async drivers.
    """
    pass
