# api/diamonds/commands.py
"""
Command surface: typed ledger commands and the dispatcher that runs them.

A command is either built directly (the discriminated union below, used by
the JSON endpoint) or from an operation name plus a flat argument list in the
chaincode argument order (`build_command`). Either way, unknown
operations and wrong argument counts fail when the command is constructed,
before anything touches the store.
"""
from dataclasses import dataclass
from typing import Annotated, Literal, Union, get_args

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DuplicateAssetError, ValidationError
from core.log import InvocationContext
from core.store import RecordStore
from db_models.participant import Affiliation
from api.participants import db_manager as participants
from .models import CommandResult, DiamondRead
from . import db_manager
from . import transitions


TransferFunction = Literal[
    "miner_to_distributor",
    "distributor_to_dealership",
    "dealership_to_buyer",
    "buyer_to_trader",
    "trader_to_cutter",
    "cutter_to_jewellery_maker",
    "jewellery_maker_to_customer",
    "customer_to_scrap_merchant",
]

UpdateFunction = Literal[
    "update_clarity",
    "update_cut",
    "update_weight",
    "update_diamondat",
    "update_symmetry",
    "update_colour",
    "update_polish",
    "update_location",
    "update_timestamp",
    "update_jewellery_type",
    "update_date",
]

if set(get_args(TransferFunction)) != set(transitions.TRANSFER_EDGES):
    raise RuntimeError("TransferFunction is out of step with TRANSFER_EDGES")
if set(get_args(UpdateFunction)) != set(transitions.UPDATE_OPERATIONS):
    raise RuntimeError("UpdateFunction is out of step with UPDATE_OPERATIONS")


class CreateDiamond(BaseModel):
    function: Literal["create_diamond"] = "create_diamond"
    asset_id: str


class TransferDiamond(BaseModel):
    function: TransferFunction
    asset_id: str
    recipient: str = Field(..., min_length=1)
    # Looked up in the participant directory when omitted
    recipient_role: Affiliation | None = None


class UpdateAttribute(BaseModel):
    function: UpdateFunction
    asset_id: str
    value: str


class ScrapDiamond(BaseModel):
    function: Literal["scrap_diamond"] = "scrap_diamond"
    asset_id: str


class GetDiamondDetails(BaseModel):
    function: Literal["get_diamond_details"] = "get_diamond_details"
    asset_id: str


class GetDiamonds(BaseModel):
    function: Literal["get_diamonds"] = "get_diamonds"


class CheckUniqueAssetID(BaseModel):
    function: Literal["check_unique_assetID"] = "check_unique_assetID"
    asset_id: str


class Ping(BaseModel):
    function: Literal["ping"] = "ping"


Command = Annotated[
    Union[
        CreateDiamond,
        TransferDiamond,
        UpdateAttribute,
        ScrapDiamond,
        GetDiamondDetails,
        GetDiamonds,
        CheckUniqueAssetID,
        Ping,
    ],
    Field(discriminator="function"),
]

class CommandEnvelope(BaseModel):
    command: Command


# Mutating commands go through /invoke, reads through /query
INVOKE_COMMANDS = (CreateDiamond, TransferDiamond, UpdateAttribute, ScrapDiamond, Ping)
QUERY_COMMANDS = (GetDiamondDetails, GetDiamonds, CheckUniqueAssetID, Ping)


@dataclass(frozen=True)
class _Signature:
    command: type[BaseModel]
    params: tuple[str, ...]
    # How many trailing params may be left out
    optional: int = 0


_SIGNATURES: dict[str, _Signature] = {
    "create_diamond": _Signature(CreateDiamond, ("asset_id",)),
    "scrap_diamond": _Signature(ScrapDiamond, ("asset_id",)),
    "get_diamond_details": _Signature(GetDiamondDetails, ("asset_id",)),
    "get_diamonds": _Signature(GetDiamonds, ()),
    "check_unique_assetID": _Signature(CheckUniqueAssetID, ("asset_id",)),
    "ping": _Signature(Ping, ()),
}
_SIGNATURES.update({
    name: _Signature(TransferDiamond, ("recipient", "asset_id", "recipient_role"), optional=1)
    for name in transitions.TRANSFER_EDGES
})
_SIGNATURES.update({
    name: _Signature(UpdateAttribute, ("value", "asset_id"))
    for name in transitions.UPDATE_OPERATIONS
})


def build_command(function: str, args: list[str]):
    """
    Build a typed command from an operation name and flat argument list.

    Raises:
        ValidationError: Unknown function, wrong number of arguments, or an
            argument of the wrong shape (e.g. an unknown recipient role)
    """
    signature = _SIGNATURES.get(function)
    if signature is None:
        raise ValidationError(f"Function of the name {function} doesn't exist.")

    required = len(signature.params) - signature.optional
    if not required <= len(args) <= len(signature.params):
        expected = str(required) if not signature.optional else f"{required}-{len(signature.params)}"
        raise ValidationError(
            f"Incorrect number of arguments passed to {function}: expected {expected}, got {len(args)}"
        )

    fields = dict(zip(signature.params, args), function=function)
    try:
        return signature.command(**fields)
    except SchemaError as exc:
        raise ValidationError(f"Invalid arguments for {function}: {exc.errors()[0]['msg']}") from exc


# --- Handlers ---

async def _resolve_recipient_role(db: AsyncSession, command: TransferDiamond) -> Affiliation:
    """
    The directory is authoritative for enrolled recipients; an explicit
    recipient_role only stands in for principals the directory doesn't know.
    """
    recipient = command.recipient.strip()
    participant = await participants.find_participant(db, recipient)
    if participant is not None:
        return Affiliation(participant.affiliation)
    if command.recipient_role is None:
        raise ValidationError(
            f"Recipient {recipient} is not enrolled; recipient_role is required"
        )
    return command.recipient_role


async def _create(db, store, ctx, command: CreateDiamond) -> CommandResult:
    diamond = await transitions.create(store, ctx, command.asset_id)
    return CommandResult(function=command.function, diamond=DiamondRead.from_record(diamond))


async def _transfer(db, store, ctx, command: TransferDiamond) -> CommandResult:
    edge = transitions.get_edge(command.function)
    recipient_role = await _resolve_recipient_role(db, command)
    loaded = await db_manager.retrieve_diamond(store, command.asset_id)
    diamond = await transitions.transfer(store, ctx, loaded, edge, command.recipient, recipient_role)
    return CommandResult(function=command.function, diamond=DiamondRead.from_record(diamond))


async def _update(db, store, ctx, command: UpdateAttribute) -> CommandResult:
    attribute = transitions.UPDATE_OPERATIONS[command.function]
    loaded = await db_manager.retrieve_diamond(store, command.asset_id)
    diamond = await transitions.update_attribute(store, ctx, loaded, attribute, command.value)
    return CommandResult(function=command.function, diamond=DiamondRead.from_record(diamond))


async def _scrap(db, store, ctx, command: ScrapDiamond) -> CommandResult:
    loaded = await db_manager.retrieve_diamond(store, command.asset_id)
    diamond = await transitions.scrap(store, ctx, loaded)
    return CommandResult(function=command.function, diamond=DiamondRead.from_record(diamond))


async def _get_details(db, store, ctx, command: GetDiamondDetails) -> CommandResult:
    diamond = await db_manager.get_asset(store, ctx, command.asset_id)
    return CommandResult(function=command.function, diamond=DiamondRead.from_record(diamond))


async def _get_all(db, store, ctx, command: GetDiamonds) -> CommandResult:
    diamonds = await db_manager.list_assets(store, ctx)
    return CommandResult(
        function=command.function,
        diamonds=[DiamondRead.from_record(d) for d in diamonds],
    )


async def _check_unique(db, store, ctx, command: CheckUniqueAssetID) -> CommandResult:
    try:
        unique = await db_manager.check_unique(store, command.asset_id)
    except DuplicateAssetError as exc:
        return CommandResult(function=command.function, unique=False, message=str(exc))
    return CommandResult(function=command.function, unique=unique)


async def _ping(db, store, ctx, command: Ping) -> CommandResult:
    return CommandResult(function=command.function, message=db_manager.ping())


_HANDLERS = {
    CreateDiamond: _create,
    TransferDiamond: _transfer,
    UpdateAttribute: _update,
    ScrapDiamond: _scrap,
    GetDiamondDetails: _get_details,
    GetDiamonds: _get_all,
    CheckUniqueAssetID: _check_unique,
    Ping: _ping,
}

if set(_HANDLERS) != set(get_args(get_args(Command)[0])):
    raise RuntimeError("Every command type needs exactly one handler")


async def dispatch(db: AsyncSession, ctx: InvocationContext, command) -> CommandResult:
    """
    Run a typed command for the caller in `ctx`.

    Ledger errors propagate unchanged to the caller.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"No handler for command type {type(command).__name__}")
    ctx.logger.debug("dispatching %s", command.function)
    return await handler(db, RecordStore(db), ctx, command)
