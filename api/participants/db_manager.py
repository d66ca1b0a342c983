# api/participants/db_manager.py
"""
Business logic for the participant directory.
"""
from datetime import datetime, timezone

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import get_password_hash, verify_password
from db_models.participant import Affiliation, Participant


class ParticipantNotFoundError(Exception):
    """Raised when no participant is enrolled under a username."""
    pass


class DuplicateParticipantError(Exception):
    """Raised when a username is already enrolled."""
    pass


async def find_participant(db: AsyncSession, username: str) -> Participant | None:
    stmt = select(Participant).where(Participant.username == username)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_participant_or_raise(db: AsyncSession, username: str) -> Participant:
    participant = await find_participant(db, username)
    if participant is None:
        raise ParticipantNotFoundError(f"Participant {username} not found")
    return participant


async def enrol_participant(
    db: AsyncSession,
    username: str,
    password: str,
    affiliation: Affiliation,
) -> Participant:
    """
    Enrol a participant with a single affiliation.

    Raises:
        DuplicateParticipantError: If the username is taken
    """
    if await find_participant(db, username) is not None:
        raise DuplicateParticipantError(f"Participant {username} already enrolled")

    participant = Participant(
        username=username,
        hashed_password=get_password_hash(password),
        affiliation=affiliation.value,
        is_active=True,
    )
    db.add(participant)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateParticipantError(f"Participant {username} already enrolled") from exc
    await db.refresh(participant)
    return participant


async def authenticate(db: AsyncSession, username: str, password: str) -> Participant | None:
    """
    Check credentials and stamp the login time.
    Returns None for an unknown username or wrong password.
    """
    participant = await find_participant(db, username)
    if participant is None or not verify_password(password, participant.hashed_password):
        return None

    participant.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(participant)
    return participant


async def list_participants(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
) -> tuple[list[Participant], int]:
    result = await db.execute(select(func.count(Participant.id)))
    total = result.scalar() or 0

    stmt = select(Participant).order_by(Participant.username.asc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def change_password(db: AsyncSession, participant: Participant, new_password: str) -> None:
    participant.hashed_password = get_password_hash(new_password)
    await db.commit()


async def deactivate_participant(db: AsyncSession, username: str) -> Participant:
    """
    Disable a participant. Participants are never deleted: diamonds may still
    name them as owner.

    Raises:
        ParticipantNotFoundError
    """
    participant = await get_participant_or_raise(db, username)
    participant.is_active = False
    await db.commit()
    await db.refresh(participant)
    return participant
