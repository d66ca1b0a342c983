# db_models/ledger_record.py
"""
Key/value rows backing the ledger's world state.

Each row holds the serialized bytes of one ledger key (a diamond's asset ID,
or the reserved registry key) together with a version counter used for
conditional writes.
"""
from datetime import datetime

from sqlalchemy import String, Integer, LargeBinary, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class LedgerRecord(Base):
    __tablename__ = "ledger_records"

    key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    value: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    # Bumped on every successful compare-and-swap
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )
