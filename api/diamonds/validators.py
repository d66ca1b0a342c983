# api/diamonds/validators.py
"""
Format and completeness checks on diamond records and identifiers.
"""
import re
from collections.abc import Iterable

from core.errors import PermissionDenied, ValidationError
from .models import ASSET_ID_PATTERN, UNDEFINED, Diamond

WEIGHT_LENGTH = 15
MAX_ATTRIBUTE_LENGTH = 255

# Attributes that must be set before a diamond may leave distribution
CORE_ATTRIBUTES = ("clarity", "weight", "cut", "colour", "symmetry")

_asset_id_re = re.compile(ASSET_ID_PATTERN)


def validate_identifier(asset_id: str) -> None:
    if not isinstance(asset_id, str) or _asset_id_re.fullmatch(asset_id) is None:
        raise ValidationError(
            f"Invalid assetID {asset_id!r}: expected two letters followed by seven digits"
        )


def require_defined(diamond: Diamond, fields: Iterable[str] = CORE_ATTRIBUTES) -> None:
    missing = [name for name in fields if getattr(diamond, name) == UNDEFINED]
    if missing:
        raise ValidationError(
            f"Diamond {diamond.asset_id} asset not fully defined: {', '.join(missing)} UNDEFINED"
        )


def require_not_scrapped(diamond: Diamond, operation: str) -> None:
    if diamond.scrapped:
        raise PermissionDenied(operation, [f"diamond {diamond.asset_id} is scrapped"])


def validate_attribute_value(name: str, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid value passed for {name}: must be a non-empty string")
    if value == UNDEFINED:
        raise ValidationError(f"Invalid value passed for {name}: {UNDEFINED} is reserved")
    if len(value) > MAX_ATTRIBUTE_LENGTH:
        raise ValidationError(
            f"Invalid value passed for {name}: longer than {MAX_ATTRIBUTE_LENGTH} characters"
        )


def validate_weight(value: str) -> None:
    # isdigit() alone accepts non-ASCII digits
    if len(value) != WEIGHT_LENGTH or not (value.isascii() and value.isdigit()):
        raise ValidationError(
            f"Invalid value passed for weight: expected {WEIGHT_LENGTH} digits"
        )
