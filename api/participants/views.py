# api/participants/views.py
"""
Authentication and participant directory endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import CurrentParticipant, MinerParticipant
from core.security import (
    verify_password,
    create_access_token,
    create_refresh_token,
    verify_token_type,
)
from db_models.participant import Participant
from .models import (
    Token,
    TokenRefresh,
    LoginRequest,
    ParticipantCreate,
    PasswordChange,
    ParticipantResponse,
    ParticipantCertificate,
    ParticipantListResponse,
)
from . import db_manager


router = APIRouter(prefix="/auth", tags=["authentication"])
participants_router = APIRouter(prefix="/participants", tags=["participants"])


def _issue_tokens(participant: Participant) -> Token:
    claims = {"sub": participant.username, "role": participant.affiliation}
    return Token(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


async def _login(db: AsyncSession, username: str, password: str) -> Token:
    participant = await db_manager.authenticate(db, username, password)
    if participant is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not participant.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Participant account is disabled",
        )
    return _issue_tokens(participant)


@router.post("/login", response_model=Token, summary="Login and get tokens")
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
) -> Token:
    """OAuth2 compatible login endpoint."""
    return await _login(db, form_data.username, form_data.password)


@router.post("/login/json", response_model=Token, summary="Login with JSON body")
async def login_json(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> Token:
    return await _login(db, credentials.username, credentials.password)


@router.post("/refresh", response_model=Token, summary="Refresh access token")
async def refresh_token(
    request: TokenRefresh,
    db: AsyncSession = Depends(get_session),
) -> Token:
    """
    Get new tokens using a refresh token. The affiliation is re-read from the
    directory, so a re-enrolled participant picks up their current role.
    """
    payload = verify_token_type(request.refresh_token, "refresh")
    if payload is None or payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    participant = await db_manager.find_participant(db, payload["sub"])
    if participant is None or not participant.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Participant not found or inactive",
        )

    return _issue_tokens(participant)


@router.get("/me", response_model=ParticipantResponse, summary="Get current participant")
async def get_me(current: CurrentParticipant) -> ParticipantResponse:
    return ParticipantResponse.model_validate(current)


@router.post("/me/password", summary="Change password")
async def change_password(
    request: PasswordChange,
    current: CurrentParticipant,
    db: AsyncSession = Depends(get_session),
) -> dict:
    if not verify_password(request.current_password, current.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    await db_manager.change_password(db, current, request.new_password)
    return {"message": "Password changed successfully"}


# --- Participant directory ---

@participants_router.post(
    "",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enrol a participant (miner)",
)
async def enrol_participant_endpoint(
    payload: ParticipantCreate,
    miner: MinerParticipant,
    db: AsyncSession = Depends(get_session),
) -> ParticipantResponse:
    """Enrol a new participant with one affiliation. Miners only."""
    try:
        participant = await db_manager.enrol_participant(
            db,
            username=payload.username,
            password=payload.password,
            affiliation=payload.affiliation,
        )
    except db_manager.DuplicateParticipantError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    return ParticipantResponse.model_validate(participant)


@participants_router.get(
    "",
    response_model=ParticipantListResponse,
    summary="List participants (miner)",
)
async def list_participants_endpoint(
    miner: MinerParticipant,
    db: AsyncSession = Depends(get_session),
    skip: int = 0,
    limit: int = 100,
) -> ParticipantListResponse:
    participants, total = await db_manager.list_participants(db, skip=skip, limit=limit)
    return ParticipantListResponse(
        participants=[ParticipantResponse.model_validate(p) for p in participants],
        total=total,
    )


@participants_router.get(
    "/{username}",
    response_model=ParticipantCertificate,
    summary="Look up a participant's affiliation",
)
async def get_participant_endpoint(
    username: str,
    current: CurrentParticipant,
    db: AsyncSession = Depends(get_session),
) -> ParticipantCertificate:
    """
    Any enrolled participant may check who a counterparty is before
    transferring custody to them.
    """
    try:
        participant = await db_manager.get_participant_or_raise(db, username)
    except db_manager.ParticipantNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return ParticipantCertificate.model_validate(participant)


@participants_router.delete("/{username}", summary="Deactivate participant (miner)")
async def deactivate_participant_endpoint(
    username: str,
    miner: MinerParticipant,
    db: AsyncSession = Depends(get_session),
) -> dict:
    if username == miner.username:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate yourself",
        )

    try:
        await db_manager.deactivate_participant(db, username)
    except db_manager.ParticipantNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return {"message": "Participant deactivated successfully"}
