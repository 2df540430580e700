import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class StockEngineError(Exception):
    """Base exception for stock engine errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "stock_error"
    default_message = "Stock operation failed"

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": _json_safe(self.details) or None,
        }


class ValidationFailed(StockEngineError):
    """Raised for malformed input."""

    code = "validation_error"
    default_message = "Invalid request"


class EntityNotFound(StockEngineError):
    """Raised when a referenced entity is absent."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class InsufficientStock(StockEngineError):
    code = "insufficient_stock"
    default_message = "Insufficient stock"


class InvalidConversion(StockEngineError):
    code = "invalid_conversion"
    default_message = "Conversion source must belong to the same product"


class CircularConversion(StockEngineError):
    code = "circular_conversion"
    default_message = "Conversion chain cannot reference itself"


class AmountInsufficient(StockEngineError):
    code = "amount_insufficient"
    default_message = "Amount paid is less than the total price"


class TransactionAborted(StockEngineError):
    """Raised when the storage layer rejects a transaction. Safe to retry."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "transaction_aborted"
    default_message = "The transaction could not be completed, please retry"


class ReturnFailed(ValidationFailed):
    code = "return_failed"
    default_message = "None of the sale items could be returned"


def _json_safe(value):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def api_exception_handler(exc, context):
    if isinstance(exc, StockEngineError):
        return Response(exc.to_payload(), status=exc.status_code)

    if isinstance(exc, DatabaseError):
        logger.exception("Storage failure in %s", context.get("view").__class__.__name__)
        return Response(TransactionAborted().to_payload(), status=TransactionAborted.status_code)

    return exception_handler(exc, context)
