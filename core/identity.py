# core/identity.py
"""
Identity context resolution: turn verified token claims into the caller's
principal and affiliation.
"""
from typing import Any

from core.errors import IdentityError
from db_models.participant import Affiliation


def parse_affiliation(value: Any) -> Affiliation:
    """
    Map a wire value onto the fixed role enumeration.

    Raises:
        IdentityError: If the value is not one of the known affiliations
    """
    try:
        return Affiliation(value)
    except ValueError as exc:
        raise IdentityError(f"Unknown affiliation: {value!r}") from exc


def resolve_caller(payload: dict[str, Any]) -> tuple[str, Affiliation]:
    """
    Resolve (principal, affiliation) from decoded access-token claims.

    Raises:
        IdentityError: If the token is not an access token, or the subject or
            role claim is missing or unknown
    """
    if payload.get("type") != "access":
        raise IdentityError("Invalid token type")

    principal = payload.get("sub")
    if not principal or not isinstance(principal, str):
        raise IdentityError("Couldn't get attribute 'username' from token")

    role = payload.get("role")
    if role is None:
        raise IdentityError("Couldn't get attribute 'role' from token")

    return principal, parse_affiliation(role)
