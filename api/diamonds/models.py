# api/diamonds/models.py
"""
Diamond ledger records and the request/response schemas built on them.

`Diamond` and `AssetRegistry` are persisted as JSON in the record store. Their
aliases are the JSON keys used by existing ledger data and must not change.
"""
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from core.errors import MalformedRecordError
from db_models.participant import Affiliation

UNDEFINED = "UNDEFINED"

# Reserved store key holding the registry of every asset ID ever created
REGISTRY_KEY = "assetIDs"

ASSET_ID_PATTERN = r"^[A-Za-z]{2}[0-9]{7}$"


class AssetStatus(IntEnum):
    """Lifecycle position of a diamond. Only ever moves forward, one step at a time."""
    MINING = 0
    DISTRIBUTING = 1
    INTER_DEALING = 2
    BUYING = 3
    TRADING = 4
    CUTTING = 5
    JEWEL_MAKING = 6
    PURCHASING = 7
    BEING_SCRAPPED = 8


class Diamond(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    asset_id: str = Field(alias="assetID")
    owner: str = Field(min_length=1)
    status: AssetStatus = AssetStatus.MINING
    scrapped: bool = False

    clarity: str = UNDEFINED
    weight: str = Field(default=UNDEFINED, alias="diamondat")
    cut: str = UNDEFINED
    symmetry: str = UNDEFINED
    polish: str = UNDEFINED
    colour: str = UNDEFINED
    location: str = UNDEFINED
    date: str = UNDEFINED
    timestamp: str = UNDEFINED
    jewellery_type: str = Field(default=UNDEFINED, alias="jewellerytype")

    @classmethod
    def mined(cls, asset_id: str, owner: str) -> "Diamond":
        """A freshly created diamond: owned by its miner, every attribute UNDEFINED."""
        return cls(asset_id=asset_id, owner=owner)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Diamond":
        try:
            return cls.model_validate_json(raw)
        except SchemaError as exc:
            raise MalformedRecordError("Corrupt diamond record") from exc


class AssetRegistry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_ids: list[str] = Field(default_factory=list, alias="assetids")

    @field_validator("asset_ids", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        # Registries written by the Go chaincode serialize an empty list as null
        return [] if value is None else value

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "AssetRegistry":
        try:
            return cls.model_validate_json(raw)
        except SchemaError as exc:
            raise MalformedRecordError("Corrupt asset registry record") from exc


# --- API schemas ---

class DiamondRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset_id: str
    owner: str
    status: AssetStatus
    status_name: str
    scrapped: bool
    clarity: str
    weight: str
    cut: str
    symmetry: str
    polish: str
    colour: str
    location: str
    date: str
    timestamp: str
    jewellery_type: str

    @classmethod
    def from_record(cls, diamond: Diamond) -> "DiamondRead":
        return cls(**diamond.model_dump(), status_name=diamond.status.name)


class DiamondListResponse(BaseModel):
    diamonds: list[DiamondRead]
    total: int


class DiamondCreate(BaseModel):
    asset_id: str = Field(..., description="Two letters followed by seven digits, e.g. AB1234567")


class TransferRequest(BaseModel):
    recipient: str = Field(..., min_length=1, max_length=100, description="Recipient principal")
    recipient_role: Affiliation | None = Field(
        None,
        description="Recipient affiliation; looked up in the participant directory when omitted",
    )


class AttributeUpdate(BaseModel):
    value: str = Field(..., min_length=1)


class UniqueResponse(BaseModel):
    asset_id: str
    unique: bool
    detail: str | None = None


class CommandResult(BaseModel):
    function: str
    diamond: DiamondRead | None = None
    diamonds: list[DiamondRead] | None = None
    unique: bool | None = None
    message: str | None = None


class RawInvocation(BaseModel):
    """Operation name plus flat argument list, as sent by chaincode-style clients."""
    function: str = Field(..., min_length=1)
    args: list[str] = Field(default_factory=list)
