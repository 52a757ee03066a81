"""
HOUSEKEEPING CORE - Errors
==========================
Lifecycle errors are user-correctable and raised to the caller.
Gateway errors are classified from store/transport exceptions and are
normally handled inside the gateway (fallback reads, dropped writes).
"""

from typing import Optional, Any

import httpx
from postgrest.exceptions import APIError


class HousekeepingError(Exception):
    """Base class for every error raised by this package"""


# ========================================
# LIFECYCLE
# ========================================

class TaskNotFoundError(HousekeepingError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidTransitionError(HousekeepingError):
    """Transition not allowed from the task's current status. Nothing was written."""

    def __init__(self, task_id: str, status: Any, action: str):
        status_value = getattr(status, "value", status)
        super().__init__(f"Cannot {action} task {task_id}: status is {status_value}")
        self.task_id = task_id
        self.status = status
        self.action = action


class StaleTaskError(InvalidTransitionError):
    """Another operator moved the task in the store since it was loaded"""


class PersistenceError(HousekeepingError):
    """One or more writes of a transition failed; retrying is safe for stock counters."""

    def __init__(self, message: str, outcome: Optional[Any] = None):
        super().__init__(message)
        self.outcome = outcome


# ========================================
# GATEWAY
# ========================================

# Postgres / PostgREST error codes
TABLE_MISSING_CODES = {"42P01", "PGRST205"}
COLUMN_MISSING_CODES = {"PGRST204", "42703"}
COLUMN_MISSING_MARKER = "Could not find the"


class GatewayError(HousekeepingError):
    def __init__(self, message: str, table: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.table = table
        self.cause = cause


class ConnectivityError(GatewayError):
    """Store unreachable"""


class SchemaDriftError(GatewayError):
    """An expected column is absent"""


class TableMissingError(GatewayError):
    """An expected table is absent"""


def classify_error(exc: BaseException, table: Optional[str] = None) -> GatewayError:
    """Map a client exception onto the gateway taxonomy."""
    if isinstance(exc, GatewayError):
        return exc

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return ConnectivityError(f"Store unreachable: {exc}", table=table, cause=exc)

    if isinstance(exc, APIError):
        code = str(exc.code or "")
        message = str(exc.message or "")
        if code in TABLE_MISSING_CODES:
            return TableMissingError(f"Table missing: {message}", table=table, cause=exc)
        if code in COLUMN_MISSING_CODES or COLUMN_MISSING_MARKER in message:
            return SchemaDriftError(f"Schema mismatch: {message}", table=table, cause=exc)
        return GatewayError(f"Store error {code}: {message}", table=table, cause=exc)

    if isinstance(exc, OSError):
        return ConnectivityError(f"Store unreachable: {exc}", table=table, cause=exc)

    return GatewayError(f"Unexpected store error: {exc}", table=table, cause=exc)
