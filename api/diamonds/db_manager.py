# api/diamonds/db_manager.py
"""
Read side of the ledger: loading diamonds and filtering what a caller may see.
"""
from dataclasses import dataclass

from core.errors import DuplicateAssetError, MalformedRecordError, NotFoundError, PermissionDenied
from core.log import InvocationContext
from core.store import RecordStore
from db_models.participant import Affiliation
from .models import Diamond
from . import registry


@dataclass(frozen=True)
class LoadedDiamond:
    """A decoded diamond plus the store version it was read at."""
    diamond: Diamond
    version: int


async def retrieve_diamond(store: RecordStore, asset_id: str) -> LoadedDiamond:
    """
    Load and decode a diamond.

    Raises:
        NotFoundError: If no diamond is stored under asset_id
        MalformedRecordError: If the stored bytes don't decode
    """
    try:
        stored = await store.get(asset_id)
    except NotFoundError as exc:
        raise NotFoundError(f"Diamond {asset_id} not found") from exc

    diamond = Diamond.from_bytes(stored.value)
    if diamond.asset_id != asset_id:
        raise MalformedRecordError(f"Record {asset_id} holds diamond {diamond.asset_id}")
    return LoadedDiamond(diamond=diamond, version=stored.version)


def can_view(diamond: Diamond, ctx: InvocationContext) -> bool:
    """Owners see their own diamonds; miners audit every diamond."""
    return diamond.owner == ctx.caller or ctx.role == Affiliation.MINER


async def get_asset(store: RecordStore, ctx: InvocationContext, asset_id: str) -> Diamond:
    """
    Raises: NotFoundError, MalformedRecordError, PermissionDenied
    """
    diamond = (await retrieve_diamond(store, asset_id)).diamond
    if not can_view(diamond, ctx):
        ctx.logger.info("denied read of %s", asset_id)
        raise PermissionDenied(
            "get_diamond_details",
            [f"caller {ctx.caller} is neither the owner nor a miner"],
        )
    return diamond


async def list_assets(store: RecordStore, ctx: InvocationContext) -> list[Diamond]:
    """
    Every registered diamond the caller may view, in creation order.
    Diamonds the caller cannot view are left out silently.
    """
    visible = []
    for asset_id in await registry.list_ids(store):
        diamond = (await retrieve_diamond(store, asset_id)).diamond
        if can_view(diamond, ctx):
            visible.append(diamond)
    ctx.logger.debug("listed %d diamonds", len(visible))
    return visible


async def check_unique(store: RecordStore, asset_id: str) -> bool:
    """
    Returns True if no diamond is stored under asset_id.

    Raises:
        DuplicateAssetError: If the ID is taken
    """
    if await store.exists(asset_id):
        raise DuplicateAssetError(f"AssetID {asset_id} is not unique")
    return True


def ping() -> str:
    return "Hello, world!"
