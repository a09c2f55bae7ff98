"""Error taxonomy for the reconciliation engine.

Every failure raised by the core falls into one of these classes so the HTTP
and CLI layers can map them without inspecting messages:

- ValidationError: bad input shape/value (400)
- NotFoundError: target row absent (404)
- UpstreamStoreError: backing store failed (500), split into transient and
  credential/configuration failures
- SchemaConfigurationError: sheet is missing a required column (500)
- ImportRowError: a single import row failed; collected, never raised out of
  an import
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ReconciliationError(Exception):
    """Base exception for all engine errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "type": self.__class__.__name__}


class ValidationError(ReconciliationError):
    """Input failed validation. Nothing has been written."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        allowed_values: Optional[Sequence[str]] = None,
        errors: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.field = field
        self.allowed_values = list(allowed_values) if allowed_values else None
        self.errors = errors or [message]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        if self.allowed_values:
            data["allowed_values"] = self.allowed_values
        if len(self.errors) > 1:
            data["details"] = self.errors
        return data


class NotFoundError(ReconciliationError):
    """The order or invoice row to operate on does not exist."""

    status_code = 404

    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key


class StoreFailureKind(str, Enum):
    """Why the store failed, for operator diagnostics."""
    TRANSIENT = "TRANSIENT"        # network, timeout, rate limit, 5xx
    CREDENTIALS = "CREDENTIALS"    # auth rejected or store not configured


class UpstreamStoreError(ReconciliationError):
    """The spreadsheet store failed."""

    status_code = 500

    def __init__(
        self,
        message: str,
        kind: StoreFailureKind = StoreFailureKind.TRANSIENT,
        status: int = 0,
        response_body: str = "",
    ):
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.response_body = response_body

    @property
    def retryable(self) -> bool:
        return self.kind == StoreFailureKind.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        data["retryable"] = self.retryable
        return data


class TransientStoreError(UpstreamStoreError):
    """Network failure, timeout, rate limit or server error."""

    def __init__(self, message: str, status: int = 0, response_body: str = ""):
        super().__init__(message, StoreFailureKind.TRANSIENT, status, response_body)


class StoreCredentialsError(UpstreamStoreError):
    """Credentials missing, rejected (401/403) or spreadsheet not configured."""

    def __init__(self, message: str, status: int = 0, response_body: str = ""):
        super().__init__(message, StoreFailureKind.CREDENTIALS, status, response_body)


class SchemaConfigurationError(ReconciliationError):
    """A sheet header row is missing columns the engine needs."""

    status_code = 500

    def __init__(self, sheet_name: str, missing_columns: Sequence[str]):
        missing = list(missing_columns)
        super().__init__(
            f"Sheet '{sheet_name}' is missing required columns: {', '.join(missing)}"
        )
        self.sheet_name = sheet_name
        self.missing_columns = missing


class ImportRowError(ReconciliationError):
    """A single sales row could not be written during an import."""

    status_code = 400

    def __init__(self, row_number: int, message: str):
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
