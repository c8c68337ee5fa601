"""Map raised errors to stable, non-leaking HTTP-style responses.

Classification looks only at structure: the exception class, the SQLSTATE
exposed by psycopg, or the extended error name exposed by sqlite3.  Message
text is never inspected to decide the kind.  Column names for integrity
errors come from the constraint name (resolved against the model metadata)
or, for SQLite, from the column list the driver reports.

| Kind        | Status | Detail                              |
|-------------|--------|-------------------------------------|
| CONNECTION  | 503    | ``retry_after`` seconds             |
| VALIDATION  | 400    | ``[{field, message}]``              |
| UNIQUENESS  | 409    | ``[{field, "Already exists"}]``     |
| GENERIC     | 500    | "Internal server error", no detail  |
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy import exc as sa_exc

from shop_spine.core.errors import (
    DatabaseConnectionError,
    FieldError,
    HealthCheckFailed,
    NotFoundError,
    ShopSpineError,
)
from shop_spine.models.base import ShopBase
from shop_spine.observability.logging import get_logger

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = DatabaseConnectionError.DEFAULT_RETRY_AFTER
GENERIC_MESSAGE = "Internal server error"
ALREADY_EXISTS = "Already exists"


class ErrorKind(str, Enum):
    CONNECTION = "connection"
    VALIDATION = "validation"
    UNIQUENESS = "uniqueness"
    NOT_FOUND = "not_found"
    GENERIC = "generic"


@dataclass(frozen=True)
class ErrorResponse:
    kind: ErrorKind
    status_code: int
    message: str
    errors: list[FieldError] = field(default_factory=list)
    retry_after: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status_code": self.status_code, "message": self.message}
        if self.errors:
            data["errors"] = [e.to_dict() for e in self.errors]
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        return data


# SQLSTATE class 23: integrity constraint violation
_PG_UNIQUE_VIOLATION = "23505"
_PG_FIELD_MESSAGES = {
    "23502": "Is required",
    "23503": "References a missing record",
    "23514": "Violates a constraint",
}

# SQLSTATE class 08: connection exception
_PG_CONNECTION_CLASS = "08"
# admin_shutdown, crash_shutdown, cannot_connect_now
_PG_SERVER_GONE = frozenset({"57P01", "57P02", "57P03"})
_SQLITE_CONNECTION = frozenset({"SQLITE_CANTOPEN", "SQLITE_NOTADB"})

_SQLITE_UNIQUE = frozenset({"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"})
_SQLITE_FIELD_MESSAGES = {
    "SQLITE_CONSTRAINT_NOTNULL": "Is required",
    "SQLITE_CONSTRAINT_FOREIGNKEY": "References a missing record",
    "SQLITE_CONSTRAINT_CHECK": "Violates a constraint",
}

# "Key (name)=(value) already exists." -> name
_PG_DETAIL_KEY = re.compile(r"Key \(([^)]*)\)=")
# "UNIQUE constraint failed: products.name, products.brand" -> [name, brand]
_SQLITE_COLUMNS = re.compile(r"failed: (.+)$")


def _constraint_columns(metadata: MetaData, name: str | None) -> list[str]:
    if not name:
        return []
    for table in metadata.tables.values():
        for constraint in table.constraints:
            if constraint.name == name:
                # CHECK constraints carry no column list; report the constraint
                return [c.name for c in getattr(constraint, "columns", [])] or [name]
        for index in table.indexes:
            if index.name == name:
                return [c.name for c in index.columns]
    return []


def _integrity_fields(orig: Any, metadata: MetaData) -> list[str]:
    diag = getattr(orig, "diag", None)
    if diag is not None:
        if getattr(diag, "column_name", None):
            return [diag.column_name]
        columns = _constraint_columns(metadata, getattr(diag, "constraint_name", None))
        if columns:
            return columns
        match = _PG_DETAIL_KEY.search(getattr(diag, "message_detail", None) or "")
        if match:
            return [c.strip() for c in match.group(1).split(",")]
        return []

    if getattr(orig, "sqlite_errorname", None):
        match = _SQLITE_COLUMNS.search(str(orig))
        if match:
            return [part.strip().rsplit(".", 1)[-1] for part in match.group(1).split(",")]
    return []


def _classify_integrity(error: sa_exc.IntegrityError, metadata: MetaData) -> ErrorResponse | None:
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    errorname = getattr(orig, "sqlite_errorname", None)

    if sqlstate == _PG_UNIQUE_VIOLATION or errorname in _SQLITE_UNIQUE:
        fields = _integrity_fields(orig, metadata) or ["unknown"]
        return ErrorResponse(
            kind=ErrorKind.UNIQUENESS,
            status_code=409,
            message="Duplicate entry",
            errors=[FieldError(name, ALREADY_EXISTS) for name in fields],
        )

    field_message = _PG_FIELD_MESSAGES.get(sqlstate or "") or _SQLITE_FIELD_MESSAGES.get(errorname or "")
    if field_message is not None:
        fields = _integrity_fields(orig, metadata) or ["unknown"]
        return ErrorResponse(
            kind=ErrorKind.VALIDATION,
            status_code=400,
            message="Validation error",
            errors=[FieldError(name, field_message) for name in fields],
        )
    return None


def _is_connection_error(error: BaseException) -> bool:
    if isinstance(error, (DatabaseConnectionError, HealthCheckFailed)):
        return True
    if isinstance(error, (sa_exc.TimeoutError, sa_exc.DisconnectionError)):
        return True
    if not isinstance(error, sa_exc.DBAPIError):
        return False
    if error.connection_invalidated:
        return True

    orig = error.orig
    if hasattr(orig, "sqlstate"):
        sqlstate = orig.sqlstate
        if sqlstate is None:
            # psycopg leaves sqlstate unset for client-side failures
            return isinstance(error, sa_exc.OperationalError)
        return sqlstate.startswith(_PG_CONNECTION_CLASS) or sqlstate in _PG_SERVER_GONE
    return getattr(orig, "sqlite_errorname", None) in _SQLITE_CONNECTION


def classify_error(error: BaseException, *, metadata: MetaData | None = None) -> ErrorResponse:
    """Classify *error* into an :class:`ErrorResponse`.

    ``metadata`` resolves constraint names to columns; defaults to the
    Shop Spine model metadata.
    """
    metadata = metadata if metadata is not None else ShopBase.metadata

    if _is_connection_error(error):
        return ErrorResponse(
            kind=ErrorKind.CONNECTION,
            status_code=503,
            message="Database connection error",
            retry_after=getattr(error, "retry_after", None) or RETRY_AFTER_SECONDS,
        )

    if isinstance(error, NotFoundError):
        return ErrorResponse(kind=ErrorKind.NOT_FOUND, status_code=404, message=error.message)

    if isinstance(error, ShopSpineError) and error.status_code == 400:
        return ErrorResponse(
            kind=ErrorKind.VALIDATION,
            status_code=400,
            message=error.message,
            errors=list(error.errors),
        )

    if isinstance(error, sa_exc.IntegrityError):
        response = _classify_integrity(error, metadata)
        if response is not None:
            return response

    logger.error("unclassified_error", error_type=type(error).__name__, error=str(error))
    return ErrorResponse(kind=ErrorKind.GENERIC, status_code=500, message=GENERIC_MESSAGE)
