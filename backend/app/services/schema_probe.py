"""One-time probe for schema-optional message columns.

Deployments disagree on where the admin read flag lives. The app inspects the
``messages`` table once at startup and records which column to use; requests
never reflect on the schema themselves.
"""

from __future__ import annotations

import enum
import logging
from typing import NamedTuple

from sqlalchemy import Boolean, DateTime, Integer, String, column, inspect, table
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import TableClause

from app.config import settings

logger = logging.getLogger(__name__)


class AdminReadColumn(str, enum.Enum):
    ADMIN_IS_READ = "admin_is_read"
    IS_READ_BY_ADMIN = "is_read_by_admin"
    READ_BY_ADMIN = "read_by_admin"
    # No dedicated admin column: admins share the staff-side flag.
    COUNSELOR_IS_READ = "counselor_is_read"


_PROBE_ORDER = (
    AdminReadColumn.ADMIN_IS_READ,
    AdminReadColumn.IS_READ_BY_ADMIN,
    AdminReadColumn.READ_BY_ADMIN,
)

_READ_AT_FOR = {
    AdminReadColumn.ADMIN_IS_READ: "admin_read_at",
    AdminReadColumn.COUNSELOR_IS_READ: "counselor_read_at",
}


class AdminReadSchema(NamedTuple):
    flag: AdminReadColumn
    read_at: str | None


FALLBACK_ADMIN_READ_SCHEMA = AdminReadSchema(AdminReadColumn.COUNSELOR_IS_READ, "counselor_read_at")

_admin_read_schema: AdminReadSchema | None = None


def probe_admin_read_schema(bind: Engine | Connection) -> AdminReadSchema:
    """Inspect ``messages`` and pick the admin read-flag column."""
    try:
        columns = {col["name"] for col in inspect(bind).get_columns("messages")}
    except SQLAlchemyError as exc:
        logger.warning("schema probe: could not inspect messages table: %s", exc)
        return FALLBACK_ADMIN_READ_SCHEMA

    if settings.ADMIN_READ_COLUMN:
        try:
            forced = AdminReadColumn(settings.ADMIN_READ_COLUMN)
        except ValueError:
            logger.warning(
                "schema probe: ignoring unknown ADMIN_READ_COLUMN=%r", settings.ADMIN_READ_COLUMN
            )
        else:
            if forced.value in columns:
                read_at = _READ_AT_FOR.get(forced)
                return AdminReadSchema(forced, read_at if read_at in columns else None)
            logger.warning(
                "schema probe: ADMIN_READ_COLUMN=%r not present on messages, probing instead",
                forced.value,
            )

    for candidate in _PROBE_ORDER:
        if candidate.value in columns:
            read_at = _READ_AT_FOR.get(candidate)
            return AdminReadSchema(candidate, read_at if read_at in columns else None)
    return FALLBACK_ADMIN_READ_SCHEMA


def configure_admin_read_schema(bind: Engine | Connection) -> AdminReadSchema:
    global _admin_read_schema
    _admin_read_schema = probe_admin_read_schema(bind)
    logger.info(
        "schema probe: admin read flag column=%s read_at=%s",
        _admin_read_schema.flag.value,
        _admin_read_schema.read_at,
    )
    return _admin_read_schema


def set_admin_read_schema(schema: AdminReadSchema | None) -> None:
    global _admin_read_schema
    _admin_read_schema = schema


def get_admin_read_schema() -> AdminReadSchema:
    return _admin_read_schema or FALLBACK_ADMIN_READ_SCHEMA


def messages_table(*flag_columns: str | None) -> TableClause:
    """Lightweight ``messages`` construct that can address unmapped flag columns."""
    cols = [
        column("id", Integer),
        column("user_id", Integer),
        column("sender", String),
        column("sender_id", Integer),
        column("recipient_id", Integer),
        column("recipient_role", String),
        column("conversation_id", String),
        column("created_at", DateTime(timezone=True)),
        column("deleted_at", DateTime(timezone=True)),
    ]
    seen = {c.name for c in cols}
    for name in flag_columns:
        if not name or name in seen:
            continue
        seen.add(name)
        if name.endswith("_at"):
            cols.append(column(name, DateTime(timezone=True)))
        else:
            cols.append(column(name, Boolean))
    return table("messages", *cols)
