# api/diamonds/transitions.py
"""
Transition engine: creation, custody transfer, attribute updates and scrapping.

Every operation checks all of its preconditions before touching the store and
raises without writing if any of them fails. Successful mutations are written
with compare-and-swap against the version the diamond was loaded at.
"""
from dataclasses import dataclass

from core.errors import (
    LedgerError,
    PermissionDenied,
    StorageError,
    ValidationError,
    DuplicateAssetError,
    WriteConflictError,
)
from core.log import InvocationContext
from core.store import RecordStore
from db_models.participant import Affiliation
from .db_manager import LoadedDiamond
from .models import UNDEFINED, AssetStatus, Diamond
from . import registry
from . import validators


@dataclass(frozen=True)
class TransferEdge:
    name: str
    from_status: AssetStatus
    caller_role: Affiliation
    recipient_role: Affiliation
    to_status: AssetStatus
    # Attributes that must be defined before the edge is attempted
    requires_defined: tuple[str, ...] = ()


# The canonical custody path. Each edge advances status by exactly one step.
TRANSFER_EDGES: dict[str, TransferEdge] = {
    edge.name: edge
    for edge in (
        TransferEdge("miner_to_distributor", AssetStatus.MINING,
                     Affiliation.MINER, Affiliation.DISTRIBUTOR, AssetStatus.DISTRIBUTING),
        TransferEdge("distributor_to_dealership", AssetStatus.DISTRIBUTING,
                     Affiliation.DISTRIBUTOR, Affiliation.DEALERSHIP, AssetStatus.INTER_DEALING,
                     requires_defined=validators.CORE_ATTRIBUTES),
        TransferEdge("dealership_to_buyer", AssetStatus.INTER_DEALING,
                     Affiliation.DEALERSHIP, Affiliation.BUYER, AssetStatus.BUYING),
        TransferEdge("buyer_to_trader", AssetStatus.BUYING,
                     Affiliation.BUYER, Affiliation.TRADER, AssetStatus.TRADING),
        TransferEdge("trader_to_cutter", AssetStatus.TRADING,
                     Affiliation.TRADER, Affiliation.CUTTER, AssetStatus.CUTTING),
        TransferEdge("cutter_to_jewellery_maker", AssetStatus.CUTTING,
                     Affiliation.CUTTER, Affiliation.JEWELLERY_MAKER, AssetStatus.JEWEL_MAKING),
        TransferEdge("jewellery_maker_to_customer", AssetStatus.JEWEL_MAKING,
                     Affiliation.JEWELLERY_MAKER, Affiliation.CUSTOMER, AssetStatus.PURCHASING),
        TransferEdge("customer_to_scrap_merchant", AssetStatus.PURCHASING,
                     Affiliation.CUSTOMER, Affiliation.SCRAP_MERCHANT, AssetStatus.BEING_SCRAPPED),
    )
}

# Only mutable while the diamond is with its distributor
STATUS_SCOPED_ATTRIBUTES = ("clarity", "cut", "weight")
# Mutable by the distributor-owner at any status
OWNER_SCOPED_ATTRIBUTES = ("symmetry", "colour", "polish", "location", "timestamp", "jewellery_type", "date")
ATTRIBUTES = STATUS_SCOPED_ATTRIBUTES + OWNER_SCOPED_ATTRIBUTES

# Operation name -> attribute. `update_diamondat` is the legacy name for weight.
UPDATE_OPERATIONS: dict[str, str] = {f"update_{name}": name for name in ATTRIBUTES}
UPDATE_OPERATIONS["update_diamondat"] = "weight"


def get_edge(name: str) -> TransferEdge:
    try:
        return TRANSFER_EDGES[name]
    except KeyError:
        raise ValidationError(f"Unknown transfer {name!r}") from None


def _require(operation: str, checks: list[tuple[bool, str]]) -> None:
    """Raise PermissionDenied naming every check that did not hold."""
    failed = [message for ok, message in checks if not ok]
    if failed:
        raise PermissionDenied(operation, failed)


def _status_check(diamond: Diamond, expected: AssetStatus) -> tuple[bool, str]:
    return (
        diamond.status == expected,
        f"status is {diamond.status.name}, expected {expected.name}",
    )


def _owner_check(diamond: Diamond, ctx: InvocationContext) -> tuple[bool, str]:
    return diamond.owner == ctx.caller, f"caller {ctx.caller} is not the owner"


def _role_check(ctx: InvocationContext, expected: Affiliation) -> tuple[bool, str]:
    return (
        ctx.role == expected,
        f"caller affiliation is {ctx.role.value}, expected {expected.value}",
    )


async def _save(
    store: RecordStore,
    ctx: InvocationContext,
    operation: str,
    loaded: LoadedDiamond,
    updated: Diamond,
) -> Diamond:
    try:
        await store.compare_and_swap(updated.asset_id, updated.to_bytes(), loaded.version)
        await store.commit()
    except WriteConflictError as exc:
        await store.rollback()
        ctx.logger.warning("%s on %s lost a concurrent update", operation, updated.asset_id)
        raise PermissionDenied(
            operation,
            [f"diamond {updated.asset_id} changed since it was read; reload and retry"],
        ) from exc
    except StorageError:
        await store.rollback()
        ctx.logger.error("%s on %s failed to save", operation, updated.asset_id)
        raise
    return updated


# --- Creation ---

async def create(store: RecordStore, ctx: InvocationContext, asset_id: str) -> Diamond:
    """
    Mine a new diamond owned by the caller and register its ID.

    The asset record and the registry append are committed together.

    Raises:
        ValidationError: If the asset ID is malformed
        DuplicateAssetError: If a diamond with this ID already exists
        PermissionDenied: If the caller is not a miner
        StorageError: On store failure
    """
    validators.validate_identifier(asset_id)

    if await store.exists(asset_id):
        raise DuplicateAssetError(f"Diamond {asset_id} already exists")

    _require("create_diamond", [_role_check(ctx, Affiliation.MINER)])

    diamond = Diamond.mined(asset_id, owner=ctx.caller)
    try:
        # Create-if-absent: a racing creator loses here even after passing the read above
        await store.insert(asset_id, diamond.to_bytes())
        await registry.append(store, asset_id)
        await store.commit()
    except DuplicateAssetError as exc:
        await store.rollback()
        raise DuplicateAssetError(f"Diamond {asset_id} already exists") from exc
    except LedgerError:
        await store.rollback()
        raise

    ctx.logger.info("created diamond %s", asset_id)
    return diamond


# --- Custody transfer ---

async def transfer(
    store: RecordStore,
    ctx: InvocationContext,
    loaded: LoadedDiamond,
    edge: TransferEdge,
    recipient: str,
    recipient_role: Affiliation,
) -> Diamond:
    """
    Hand a diamond to the next custodian along `edge`.

    Succeeds only if the diamond is at the edge's source status, is owned by
    the caller, the caller and recipient hold the edge's roles, and the
    diamond is not scrapped.

    Raises:
        ValidationError: If the recipient is blank, or the edge requires
            attributes that are still UNDEFINED
        PermissionDenied: Naming every failed check
    """
    diamond = loaded.diamond
    validators.require_not_scrapped(diamond, edge.name)

    recipient = (recipient or "").strip()
    if not recipient:
        raise ValidationError("Recipient must be a non-empty principal")

    if edge.requires_defined:
        validators.require_defined(diamond, edge.requires_defined)

    try:
        _require(edge.name, [
            _status_check(diamond, edge.from_status),
            _owner_check(diamond, ctx),
            _role_check(ctx, edge.caller_role),
            (
                recipient_role == edge.recipient_role,
                f"recipient affiliation is {recipient_role.value}, expected {edge.recipient_role.value}",
            ),
        ])
    except PermissionDenied as exc:
        ctx.logger.warning("%s", exc)
        raise

    updated = diamond.model_copy(update={"owner": recipient, "status": edge.to_status})
    await _save(store, ctx, edge.name, loaded, updated)
    ctx.logger.info(
        "%s: %s moved from %s to %s (%s)",
        edge.name, diamond.asset_id, ctx.caller, recipient, edge.to_status.name,
    )
    return updated


# --- Attribute updates ---

async def update_attribute(
    store: RecordStore,
    ctx: InvocationContext,
    loaded: LoadedDiamond,
    attribute: str,
    value: str,
) -> Diamond:
    """
    Set one descriptive attribute.

    Status-scoped attributes (clarity, cut, weight) can only change while the
    diamond is Distributing; weight is additionally write-once and must be a
    15-digit string. Owner-scoped attributes can change at any status. Both
    require the caller to be the owning distributor.

    Raises:
        ValidationError: Unknown attribute or malformed value
        PermissionDenied: Naming every failed check
    """
    if attribute not in ATTRIBUTES:
        raise ValidationError(f"Unknown attribute {attribute!r}")

    operation = f"update_{attribute}"
    diamond = loaded.diamond
    validators.require_not_scrapped(diamond, operation)

    validators.validate_attribute_value(attribute, value)
    if attribute == "weight":
        validators.validate_weight(value)

    checks = [
        _owner_check(diamond, ctx),
        _role_check(ctx, Affiliation.DISTRIBUTOR),
    ]
    if attribute in STATUS_SCOPED_ATTRIBUTES:
        checks.insert(0, _status_check(diamond, AssetStatus.DISTRIBUTING))
    if attribute == "weight":
        checks.append((diamond.weight == UNDEFINED, "weight is already set and cannot change"))

    try:
        _require(operation, checks)
    except PermissionDenied as exc:
        ctx.logger.warning("%s", exc)
        raise

    updated = diamond.model_copy(update={attribute: value})
    await _save(store, ctx, operation, loaded, updated)
    ctx.logger.info("%s on %s", operation, diamond.asset_id)
    return updated


# --- Scrapping ---

async def scrap(store: RecordStore, ctx: InvocationContext, loaded: LoadedDiamond) -> Diamond:
    """
    Mark a diamond scrapped. Terminal: no later operation may change it.

    Raises:
        PermissionDenied: Naming every failed check
    """
    diamond = loaded.diamond
    validators.require_not_scrapped(diamond, "scrap_diamond")

    try:
        _require("scrap_diamond", [
            _status_check(diamond, AssetStatus.BEING_SCRAPPED),
            _owner_check(diamond, ctx),
            _role_check(ctx, Affiliation.SCRAP_MERCHANT),
        ])
    except PermissionDenied as exc:
        ctx.logger.warning("%s", exc)
        raise

    updated = diamond.model_copy(update={"scrapped": True})
    await _save(store, ctx, "scrap_diamond", loaded, updated)
    ctx.logger.info("scrapped diamond %s", diamond.asset_id)
    return updated
