# api/participants/models.py
"""
Pydantic models for participant enrolment and authentication endpoints.
"""
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from db_models.participant import Affiliation


class Token(BaseModel):
    """JWT token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    refresh_token: str


class LoginRequest(BaseModel):
    username: str
    password: str


class ParticipantCreate(BaseModel):
    """Request to enrol a new participant."""
    username: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.@-]+$")
    password: str = Field(..., min_length=8)
    affiliation: Affiliation


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class ParticipantResponse(BaseModel):
    """Participant as seen by the participant themselves or a miner."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    affiliation: Affiliation
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None


class ParticipantCertificate(BaseModel):
    """Public identity of a participant: who they are and what role they hold."""
    model_config = ConfigDict(from_attributes=True)

    username: str
    affiliation: Affiliation
    is_active: bool


class ParticipantListResponse(BaseModel):
    participants: list[ParticipantResponse]
    total: int
