# api/diamonds/views.py
"""
Diamond custody endpoints.

Every route builds a typed command and runs it through the dispatcher, so the
resource-style routes and the chaincode-style /ledger routes share one path
into the transition engine.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import Invocation
from core.errors import (
    LedgerError,
    ValidationError,
    DuplicateAssetError,
    NotFoundError,
    MalformedRecordError,
    PermissionDenied,
    IdentityError,
    StorageError,
)
from .models import (
    DiamondRead,
    DiamondListResponse,
    DiamondCreate,
    TransferRequest,
    AttributeUpdate,
    UniqueResponse,
    CommandResult,
    RawInvocation,
)
from . import commands
from . import transitions

router = APIRouter(prefix="/diamonds", tags=["diamonds"])
ledger_router = APIRouter(prefix="/ledger", tags=["ledger"])


_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    IdentityError: status.HTTP_401_UNAUTHORIZED,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateAssetError: status.HTTP_409_CONFLICT,
    MalformedRecordError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_error(exc: LedgerError) -> HTTPException:
    """Map a ledger error onto the HTTP status for its category."""
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


async def _run(db: AsyncSession, ctx, command) -> CommandResult:
    try:
        return await commands.dispatch(db, ctx, command)
    except LedgerError as exc:
        raise to_http_error(exc) from exc


@router.post(
    "",
    response_model=DiamondRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a diamond",
)
async def create_diamond_endpoint(
    payload: DiamondCreate,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> DiamondRead:
    """
    Register a newly mined diamond owned by the caller. Miners only.
    """
    result = await _run(db, ctx, commands.CreateDiamond(asset_id=payload.asset_id))
    return result.diamond


@router.get(
    "",
    response_model=DiamondListResponse,
    summary="List diamonds visible to the caller",
)
async def list_diamonds_endpoint(
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> DiamondListResponse:
    """
    Diamonds owned by the caller, in creation order. Miners see every diamond.
    """
    result = await _run(db, ctx, commands.GetDiamonds())
    return DiamondListResponse(diamonds=result.diamonds, total=len(result.diamonds))


@router.get(
    "/{asset_id}/unique",
    response_model=UniqueResponse,
    summary="Check whether an asset ID is still free",
)
async def check_unique_endpoint(
    asset_id: str,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> UniqueResponse:
    result = await _run(db, ctx, commands.CheckUniqueAssetID(asset_id=asset_id))
    return UniqueResponse(asset_id=asset_id, unique=result.unique, detail=result.message)


@router.get(
    "/{asset_id}",
    response_model=DiamondRead,
    summary="Get diamond details",
)
async def get_diamond_endpoint(
    asset_id: str,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> DiamondRead:
    """Visible to the diamond's owner and to miners."""
    result = await _run(db, ctx, commands.GetDiamondDetails(asset_id=asset_id))
    return result.diamond


@router.post(
    "/{asset_id}/transfers/{transfer}",
    response_model=DiamondRead,
    summary="Transfer custody to the next participant",
)
async def transfer_diamond_endpoint(
    asset_id: str,
    transfer: str,
    payload: TransferRequest,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> DiamondRead:
    """
    `transfer` names an edge of the custody path, e.g. `miner_to_distributor`.
    """
    try:
        transitions.get_edge(transfer)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    command = commands.TransferDiamond(
        function=transfer,
        asset_id=asset_id,
        recipient=payload.recipient,
        recipient_role=payload.recipient_role,
    )
    result = await _run(db, ctx, command)
    return result.diamond


@router.put(
    "/{asset_id}/attributes/{attribute}",
    response_model=DiamondRead,
    summary="Set a descriptive attribute",
)
async def update_attribute_endpoint(
    asset_id: str,
    attribute: str,
    payload: AttributeUpdate,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> DiamondRead:
    operation = f"update_{attribute}"
    if operation not in transitions.UPDATE_OPERATIONS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown attribute {attribute!r}",
        )

    command = commands.UpdateAttribute(function=operation, asset_id=asset_id, value=payload.value)
    result = await _run(db, ctx, command)
    return result.diamond


@router.post(
    "/{asset_id}/scrap",
    response_model=DiamondRead,
    summary="Scrap a diamond",
)
async def scrap_diamond_endpoint(
    asset_id: str,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> DiamondRead:
    """Terminal. Only the scrap merchant holding the diamond may scrap it."""
    result = await _run(db, ctx, commands.ScrapDiamond(asset_id=asset_id))
    return result.diamond


# --- Chaincode-style command surface ---

def _build(invocation: RawInvocation, allowed: tuple) -> object:
    try:
        command = commands.build_command(invocation.function, invocation.args)
    except ValidationError as exc:
        raise to_http_error(exc) from exc
    if not isinstance(command, allowed):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{invocation.function} is not available on this endpoint",
        )
    return command


@ledger_router.post("/invoke", response_model=CommandResult, summary="Invoke a ledger function")
async def invoke_endpoint(
    invocation: RawInvocation,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> CommandResult:
    """
    Run a mutating function by name with a flat argument list, e.g.
    `{"function": "miner_to_distributor", "args": ["bob", "AB1234567"]}`.
    """
    command = _build(invocation, commands.INVOKE_COMMANDS)
    return await _run(db, ctx, command)


@ledger_router.post("/query", response_model=CommandResult, summary="Query the ledger")
async def query_endpoint(
    invocation: RawInvocation,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> CommandResult:
    command = _build(invocation, commands.QUERY_COMMANDS)
    return await _run(db, ctx, command)


@ledger_router.post("/commands", response_model=CommandResult, summary="Run a typed ledger command")
async def command_endpoint(
    envelope: commands.CommandEnvelope,
    ctx: Invocation,
    db: AsyncSession = Depends(get_session),
) -> CommandResult:
    """
    Typed alternative to /invoke and /query: the body is one command object
    selected by its `function` field, e.g.
    `{"command": {"function": "scrap_diamond", "asset_id": "AB1234567"}}`.
    """
    return await _run(db, ctx, envelope.command)
