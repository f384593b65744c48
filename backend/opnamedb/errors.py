"""
Error taxonomy shared by every app.

Each error is an HTTPException so services can raise it directly, the same
way they raise framework errors, and routers return it untouched. The
`detail` payload is always a dict with `error`, `message` and whatever
context the caller needs to explain the failure (product, batch, category,
offending quantities).
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, status


class StockError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(
            status_code=type(self).status_code,
            detail={"error": self.code, "message": message, **context},
        )

    def __str__(self) -> str:
        return self.message


class InvalidInput(StockError):
    code = "invalid_input"


class InvalidQuantity(InvalidInput):
    pass


class InvalidCountComposition(StockError):
    code = "invalid_count_composition"


class InsufficientStock(StockError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"


class NotFound(StockError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Unauthorized(StockError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"


class Conflict(StockError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class TransactionFailure(StockError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transaction_failure"
