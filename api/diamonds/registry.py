# api/diamonds/registry.py
"""
Append-only index of every asset ID ever created, stored under REGISTRY_KEY.
"""
import logging

from config import settings
from core.errors import DuplicateAssetError, NotFoundError, StorageError, WriteConflictError
from core.store import RecordStore, StoredRecord
from .models import REGISTRY_KEY, AssetRegistry

logger = logging.getLogger("diamond_ledger.registry")


async def _load(store: RecordStore) -> tuple[AssetRegistry, StoredRecord]:
    try:
        stored = await store.get(REGISTRY_KEY)
    except NotFoundError as exc:
        raise NotFoundError("Asset registry has not been initialized") from exc
    return AssetRegistry.from_bytes(stored.value), stored


async def initialize(store: RecordStore) -> AssetRegistry:
    """
    Create and commit the empty registry at system bring-up.

    An existing registry is left untouched, so calling this on every start
    is harmless.
    """
    try:
        registry, _ = await _load(store)
        return registry
    except NotFoundError:
        pass

    registry = AssetRegistry()
    try:
        await store.insert(REGISTRY_KEY, registry.to_bytes())
        await store.commit()
    except DuplicateAssetError:
        # Another process initialized it first
        await store.rollback()
        registry, _ = await _load(store)
        return registry

    logger.info("asset registry initialized")
    return registry


async def append(store: RecordStore, asset_id: str) -> AssetRegistry:
    """
    Add `asset_id` to the registry unless it is already listed.

    Read-modify-write guarded by compare-and-swap on the version read; a
    conflicting writer causes a fresh read and another attempt. Does not
    commit: the caller owns the transaction.

    Raises:
        NotFoundError: If the registry was never initialized
        StorageError: If every attempt conflicted
    """
    attempts = max(1, settings.CAS_MAX_RETRIES)
    for attempt in range(1, attempts + 1):
        registry, stored = await _load(store)
        if asset_id in registry.asset_ids:
            return registry

        registry.asset_ids.append(asset_id)
        try:
            await store.compare_and_swap(REGISTRY_KEY, registry.to_bytes(), stored.version)
        except WriteConflictError:
            logger.debug("registry append conflict for %s (attempt %d/%d)", asset_id, attempt, attempts)
            continue
        return registry

    raise StorageError(f"Unable to update asset registry after {attempts} attempts")


async def list_ids(store: RecordStore) -> list[str]:
    """All asset IDs in creation order."""
    registry, _ = await _load(store)
    return list(registry.asset_ids)
