from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """
    Base class for every error the ledger surfaces to callers.

    - message: human readable summary
    - detail: structured payload naming the field/quantity at fault
    - retryable: True only for transient contention (callers may retry)
    """

    status_code = 400
    retryable = False

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = dict(detail or {})

    def to_payload(self) -> dict[str, Any]:
        return {**self.detail, "message": self.message}


class ValidationError(LedgerError):
    status_code = 400


class InvalidQuantityError(ValidationError):
    pass


class MissingCostContextError(ValidationError):
    pass


class NotFoundError(LedgerError):
    status_code = 404


class MaterialNotFoundError(NotFoundError):
    def __init__(self, material_id: object) -> None:
        super().__init__("material not found", {"material_id": str(material_id)})


class InsufficientStockError(LedgerError):
    status_code = 409

    def __init__(self, material_id: object, available_sheets: int, requested_sheets: int) -> None:
        super().__init__(
            f"insufficient stock: need {requested_sheets} sheets, have {available_sheets} sheets",
            {
                "material_id": str(material_id),
                "available_sheets": int(available_sheets),
                "requested_sheets": int(requested_sheets),
            },
        )
        self.available_sheets = int(available_sheets)
        self.requested_sheets = int(requested_sheets)


class ConflictError(LedgerError):
    status_code = 409
    retryable = True


class BusyError(ConflictError):
    status_code = 503


class ArithmeticInvariantError(LedgerError):
    """Stored stock no longer matches its movement history. Not user recoverable."""

    status_code = 500
