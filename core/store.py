# core/store.py
"""
Record store adapter: point reads and conditional point writes over the
`ledger_records` table.

The store never commits. Callers group writes and decide when to commit or
roll back, so a creation and its registry append can land in one transaction.
"""
from dataclasses import dataclass

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.ledger_record import LedgerRecord
from core.errors import DuplicateAssetError, NotFoundError, StorageError, WriteConflictError


@dataclass(frozen=True)
class StoredRecord:
    key: str
    value: bytes
    version: int


# --- Statement builders ---

def select_record(key: str):
    """Select value and version for a key. Column select bypasses the identity map."""
    return select(LedgerRecord.value, LedgerRecord.version).where(LedgerRecord.key == key)


def insert_record(key: str, value: bytes):
    return insert(LedgerRecord).values(key=key, value=value, version=1)


def compare_and_swap_record(key: str, value: bytes, expected_version: int):
    return (
        update(LedgerRecord)
        .where(
            LedgerRecord.key == key,
            LedgerRecord.version == expected_version,
        )
        .values(value=value, version=LedgerRecord.version + 1)
        .execution_options(synchronize_session=False)
    )


class RecordStore:
    """Thin adapter over an AsyncSession exposing the ledger's get/put primitives."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> StoredRecord:
        """
        Fetch a record.

        Raises:
            NotFoundError: If the key has never been written
            StorageError: On any database failure
        """
        try:
            result = await self.db.execute(select_record(key))
        except SQLAlchemyError as exc:
            raise StorageError(f"Error retrieving record {key}") from exc

        row = result.one_or_none()
        if row is None:
            raise NotFoundError(f"No record stored under {key}")
        return StoredRecord(key=key, value=row.value, version=row.version)

    async def exists(self, key: str) -> bool:
        try:
            await self.get(key)
        except NotFoundError:
            return False
        return True

    async def insert(self, key: str, value: bytes) -> StoredRecord:
        """
        Create-if-absent write. The primary key makes this the single
        authority on uniqueness, whatever an earlier read returned.

        Raises:
            DuplicateAssetError: If a record already exists under the key
            StorageError: On any other database failure
        """
        try:
            await self.db.execute(insert_record(key, value))
        except IntegrityError as exc:
            raise DuplicateAssetError(f"A record already exists under {key}") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Error storing record {key}") from exc
        return StoredRecord(key=key, value=value, version=1)

    async def compare_and_swap(self, key: str, value: bytes, expected_version: int) -> StoredRecord:
        """
        Overwrite a record only if it is still at `expected_version`.

        Raises:
            WriteConflictError: If the record moved on (or vanished) since it was read
            StorageError: On any other database failure
        """
        try:
            result = await self.db.execute(compare_and_swap_record(key, value, expected_version))
        except SQLAlchemyError as exc:
            raise StorageError(f"Error storing record {key}") from exc

        if result.rowcount != 1:
            raise WriteConflictError(key, expected_version)
        return StoredRecord(key=key, value=value, version=expected_version + 1)

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise DuplicateAssetError("Record already exists") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StorageError("Error committing ledger changes") from exc

    async def rollback(self) -> None:
        await self.db.rollback()
