from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from staffplan.errors import PersistenceUnavailable, StaleWriteConflict
from staffplan.merge import merge_documents
from staffplan.models import TableEntity
from staffplan.schemas import COLLECTIONS, SCHEMA_VERSION, LockState, MonthlyAllocationItem, upgrade_document

logger = logging.getLogger(__name__)

MAIN_TABLE = "plandata"
MONTHLY_ALLOCATION_TABLE = "monthlyallocation"
LOCK_STATES_TABLE = "lockstates"
TABLE_NAMES = (MAIN_TABLE, MONTHLY_ALLOCATION_TABLE, LOCK_STATES_TABLE)

MAIN_PARTITION = "globaldata"
MAIN_ROW = "main"
ALLOCATION_PARTITION = "allocation"
LOCK_PARTITION = "locks"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def merge_mode_is_strict() -> bool:
    return os.getenv("MERGE_MODE", "normal").strip().lower() == "strict"


def backend_name(url: str) -> str:
    return url.split("://", 1)[0].split("+", 1)[0]


class TableStore:
    """Key-value table store: opaque JSON blobs addressed by (table, partition, row)."""

    def __init__(self, db: Session):
        self.db = db

    def _key(self, table: str, partition: str, row: str):
        return (
            TableEntity.table_name == table,
            TableEntity.partition_key == partition,
            TableEntity.row_key == row,
        )

    def _row(self, table: str, partition: str, row: str) -> TableEntity | None:
        return self.db.scalar(
            select(TableEntity).where(*self._key(table, partition, row)).execution_options(populate_existing=True)
        )

    def get_raw(self, table: str, partition: str, row: str) -> str | None:
        """The stored blob exactly as written, for use as a replace_entity precondition."""
        try:
            return self.db.scalar(select(TableEntity.data).where(*self._key(table, partition, row)))
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s/%s/%s", table, partition, row)
            raise PersistenceUnavailable(f"Could not read {table}/{partition}/{row}") from exc

    def get_entity(self, table: str, partition: str, row: str) -> dict[str, Any] | None:
        raw = self.get_raw(table, partition, row)
        if raw is None:
            return None
        return json.loads(raw or "{}")

    def upsert_entity(self, table: str, partition: str, row: str, value: Any) -> None:
        try:
            record = self._row(table, partition, row)
            if record is None:
                record = TableEntity(table_name=table, partition_key=partition, row_key=row)
                self.db.add(record)
            record.data = json.dumps(value)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to write %s/%s/%s", table, partition, row)
            raise PersistenceUnavailable(f"Could not write {table}/{partition}/{row}") from exc

    def replace_entity(self, table: str, partition: str, row: str, value: Any, *, expected: str | None) -> bool:
        """Write ``value`` only if the stored blob still equals ``expected``.

        ``expected=None`` means the row must not exist yet. Returns False, with nothing
        written, when another writer got there first.
        """
        try:
            if expected is None:
                self.db.add(TableEntity(table_name=table, partition_key=partition, row_key=row, data=json.dumps(value)))
                self.db.flush()
            else:
                result = self.db.execute(
                    update(TableEntity)
                    .where(*self._key(table, partition, row), TableEntity.data == expected)
                    .values(data=json.dumps(value))
                )
                if result.rowcount != 1:
                    self.db.rollback()
                    return False
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to write %s/%s/%s", table, partition, row)
            raise PersistenceUnavailable(f"Could not write {table}/{partition}/{row}") from exc
        return True

    def count_rows(self) -> dict[str, int]:
        try:
            rows = self.db.execute(
                select(TableEntity.table_name, func.count(TableEntity.id)).group_by(TableEntity.table_name)
            ).all()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable("Could not count table rows") from exc
        counts = {name: 0 for name in TABLE_NAMES}
        counts.update({name: count for name, count in rows})
        return counts


class PlanRepository:
    """The planning document, monthly payroll snapshots and month locks on top of a TableStore."""

    def __init__(self, db: Session):
        self.tables = TableStore(db)

    def get_main_data(self) -> dict[str, Any]:
        return upgrade_document(self.tables.get_entity(MAIN_TABLE, MAIN_PARTITION, MAIN_ROW))

    def save_main_data(
        self,
        payload: dict[str, Any],
        *,
        allow_deletions: bool = False,
        client_last_modified: str | None = None,
        bypass_concurrency: bool = False,
        strict: bool | None = None,
    ) -> dict[str, Any]:
        """Merge a partial payload into the stored document, persist it and return the result.

        The write is conditional on the stored blob being the one the merge started from,
        so a concurrent save between the read and the write raises ``StaleWriteConflict``.
        """
        raw = self.tables.get_raw(MAIN_TABLE, MAIN_PARTITION, MAIN_ROW)
        current = upgrade_document(json.loads(raw) if raw else None)
        if client_last_modified and not bypass_concurrency:
            if client_last_modified != current.get("lastModified"):
                raise StaleWriteConflict(client_last_modified, current.get("lastModified"))
        payload = dict(payload)
        deletions = payload.pop("deletions", None)
        merged = merge_documents(
            current,
            payload,
            allow_deletions=allow_deletions,
            strict=merge_mode_is_strict() if strict is None else strict,
            deletions=deletions,
        )
        merged["schemaVersion"] = SCHEMA_VERSION
        merged["lastModified"] = utcnow_iso()
        if not self.tables.replace_entity(MAIN_TABLE, MAIN_PARTITION, MAIN_ROW, merged, expected=raw):
            latest = self.get_main_data().get("lastModified")
            logger.warning("Main data changed during save (now %s); refusing to overwrite", latest)
            raise StaleWriteConflict(client_last_modified or current.get("lastModified") or "", latest)
        logger.info(
            "Saved main data: %s",
            ", ".join(f"{name}={len(merged.get(name) or [])}" for name in COLLECTIONS),
        )
        return merged

    def persist_callback(self):
        """Adapter used by an AllocationStore that lives on the server side."""

        def persist(payload: dict[str, Any], *, allow_deletions: bool = False, last_modified: str | None = None):
            merged = self.save_main_data(
                payload, allow_deletions=allow_deletions, client_last_modified=last_modified
            )
            return merged["lastModified"]

        return persist

    def get_monthly_allocation(self, month_key: str) -> list[MonthlyAllocationItem]:
        stored = self.tables.get_entity(MONTHLY_ALLOCATION_TABLE, ALLOCATION_PARTITION, month_key)
        if not stored:
            return []
        return [MonthlyAllocationItem.model_validate(item) for item in stored.get("items") or []]

    def set_monthly_allocation(self, month_key: str, items: list[MonthlyAllocationItem]) -> None:
        self.tables.upsert_entity(
            MONTHLY_ALLOCATION_TABLE,
            ALLOCATION_PARTITION,
            month_key,
            {"items": [item.to_json() for item in items]},
        )
        logger.info("Saved %d monthly allocation items for %s", len(items), month_key)

    def get_lock_state(self, month_key: str) -> LockState:
        stored = self.tables.get_entity(LOCK_STATES_TABLE, LOCK_PARTITION, month_key)
        return LockState.model_validate(stored or {})

    def set_lock_state(self, month_key: str, is_locked: bool, locked_by: str | None = None) -> LockState:
        state = LockState(
            is_locked=is_locked,
            locked_by=locked_by,
            locked_at=utcnow_iso() if is_locked else None,
        )
        self.tables.upsert_entity(LOCK_STATES_TABLE, LOCK_PARTITION, month_key, state.to_json())
        logger.info("Month %s %s by %s", month_key, "locked" if is_locked else "unlocked", locked_by or "unknown")
        return state
