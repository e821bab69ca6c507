"""Database repository - all SQL queries."""

import json
import logging
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Any, get_origin

import aiosqlite

from fullkoll.db.store import MODELS, RecordFilter, model_fields
from fullkoll.utils.errors import StorageError
from fullkoll.utils.time_utils import to_utc

logger = logging.getLogger(__name__)


def coerce_flag(value: object) -> bool:
    """Read a stored flag that may be a bool, 0/1 or "true"/"1"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return False


def _is_json(field_type: object) -> bool:
    return field_type in (dict, list) or get_origin(field_type) in (dict, list)


class Repository:
    """SQLite-backed record store."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    # Record operations

    async def list(self, domain: str, record_filter: RecordFilter | None = None) -> list:
        """List records of a domain matching the filter."""
        record_filter = record_filter or RecordFilter()
        self._check_fields(domain, record_filter.field_names())

        clauses = []
        params: list[Any] = []

        for name, value in record_filter.equals.items():
            clauses.append(f"{name} = ?")
            params.append(self._to_column(domain, name, value))

        for name, value in record_filter.not_equals.items():
            clauses.append(f"({name} IS NULL OR {name} != ?)")
            params.append(self._to_column(domain, name, value))

        if record_filter.window_fields and record_filter.window:
            start, end = (to_utc(dt, "UTC").isoformat() for dt in record_filter.window)
            ranges = []
            for name in record_filter.window_fields:
                ranges.append(f"({name} >= ? AND {name} < ?)")
                params.extend([start, end])
            clauses.append(f"({' OR '.join(ranges)})")

        query = f"SELECT * FROM {domain}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"

        try:
            async with self.db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to list {domain}: {e}") from e

        return [self._row_to_record(domain, row) for row in rows]

    async def update(self, domain: str, record_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial update to one record."""
        if not patch:
            return
        self._check_fields(domain, set(patch) - {"id"})

        assignments = ", ".join(f"{name} = ?" for name in patch)
        params = [self._to_column(domain, name, value) for name, value in patch.items()]
        params.append(record_id)

        try:
            cursor = await self.db.execute(
                f"UPDATE {domain} SET {assignments} WHERE id = ?", params
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to update {domain} {record_id}: {e}") from e

        if cursor.rowcount == 0:
            raise StorageError(f"{domain} record {record_id} not found")

    async def insert(self, domain: str, values: dict[str, Any]) -> str:
        """Insert a record and return its id."""
        values = {name: value for name, value in values.items() if name != "id"}
        self._check_fields(domain, set(values))

        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        params = [self._to_column(domain, name, value) for name, value in values.items()]

        try:
            async with self.db.execute(
                f"INSERT INTO {domain} ({columns}) VALUES ({placeholders}) RETURNING id",
                params,
            ) as cursor:
                row = await cursor.fetchone()
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to insert into {domain}: {e}") from e

        return str(row["id"])

    # Helper methods

    def _check_fields(self, domain: str, names: set[str]) -> None:
        """Reject column names that are not model attributes."""
        unknown = names - model_fields(domain)
        if unknown:
            raise StorageError(f"Unknown fields for {domain}: {sorted(unknown)}")

    def _to_column(self, domain: str, name: str, value: object) -> object:
        """Convert a model value to its column representation."""
        field_type = {f.name: f.type for f in fields(MODELS[domain])}[name]
        if value is None:
            return None
        if field_type is bool:
            return 1 if coerce_flag(value) else 0
        if _is_json(field_type):
            return json.dumps(value)
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    def _row_to_record(self, domain: str, row: aiosqlite.Row) -> object:
        """Convert a database row to the domain's model object."""
        model = MODELS[domain]
        kwargs: dict[str, Any] = {}
        for f in fields(model):
            value = row[f.name]
            if f.name == "id":
                value = str(value)
            elif f.type is bool:
                value = coerce_flag(value)
            elif _is_json(f.type):
                value = json.loads(value) if value else (get_origin(f.type) or f.type)()
            kwargs[f.name] = value
        return model(**kwargs)
