# core/deps.py
"""
FastAPI dependencies for authentication and per-invocation context.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from db_models.participant import Participant
from core.errors import IdentityError
from core.identity import parse_affiliation, resolve_caller
from core.log import InvocationContext
from core.security import decode_token

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


class AuthenticationError(HTTPException):
    """Raised when the caller's identity cannot be established."""
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Raised when the caller's affiliation does not allow the request."""
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


async def get_current_participant(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_session),
) -> Participant:
    """
    Resolve the enrolled participant behind the bearer token.

    Raises:
        AuthenticationError: If the token is missing or invalid, the
            participant is unknown or disabled, or the token's role no longer
            matches the directory
    """
    if token is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(token)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    try:
        username, affiliation = resolve_caller(payload)
    except IdentityError as exc:
        raise AuthenticationError(str(exc)) from exc

    stmt = select(Participant).where(Participant.username == username)
    result = await db.execute(stmt)
    participant = result.scalar_one_or_none()

    if participant is None:
        raise AuthenticationError("Participant not found")

    if not participant.is_active:
        raise AuthenticationError("Participant account is disabled")

    if participant.affiliation != affiliation.value:
        raise AuthenticationError("Token affiliation does not match enrolment")

    return participant


async def get_invocation_context(
    participant: Annotated[Participant, Depends(get_current_participant)],
) -> InvocationContext:
    """Build the context object passed into every ledger operation."""
    ctx = InvocationContext(
        caller=participant.username,
        role=parse_affiliation(participant.affiliation),
    )
    ctx.logger.debug("invocation context resolved")
    return ctx


async def require_miner(
    participant: Annotated[Participant, Depends(get_current_participant)],
) -> Participant:
    """Dependency that requires the MINER affiliation."""
    if not participant.can_enrol_participants():
        raise AuthorizationError("Miner affiliation required")
    return participant


# Type aliases for cleaner endpoint signatures
CurrentParticipant = Annotated[Participant, Depends(get_current_participant)]
Invocation = Annotated[InvocationContext, Depends(get_invocation_context)]
MinerParticipant = Annotated[Participant, Depends(require_miner)]
