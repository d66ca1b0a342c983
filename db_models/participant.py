# db_models/participant.py
"""
Enrolled supply-chain participants.

Every principal that may invoke the ledger is enrolled here with exactly one
affiliation. The affiliation gates which custody transfers, attribute updates
and reads the principal may perform:

- MINER: creates diamonds and may read every diamond
- DISTRIBUTOR: describes diamonds (clarity, weight, cut, ...) and ships them on
- DEALERSHIP, BUYER, TRADER, CUTTER, JEWELLERY_MAKER, CUSTOMER: intermediate custodians
- SCRAP_MERCHANT: final custodian, the only role able to scrap a diamond
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class Affiliation(str, Enum):
    """Supply-chain roles. Values are the wire format used in tokens and commands."""
    MINER = "miner"
    DISTRIBUTOR = "distributor"
    DEALERSHIP = "dealership"
    BUYER = "buyer"
    TRADER = "trader"
    CUTTER = "cutter"
    JEWELLERY_MAKER = "jewellery_maker"
    CUSTOMER = "customer"
    SCRAP_MERCHANT = "scrap_merchant"


class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Principal identifier; this is what ends up in a diamond's `owner` field
    username: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    affiliation: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def is_miner(self) -> bool:
        return self.affiliation == Affiliation.MINER.value

    def can_enrol_participants(self) -> bool:
        """Only miners (the creating role) may enrol new participants."""
        return self.is_miner()
