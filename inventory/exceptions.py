from rest_framework import status
from rest_framework.exceptions import APIException


class InventoryError(APIException):
    """Base class for ledger and workflow failures surfaced verbatim to callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Inventory operation failed."
    default_code = "inventory_error"

    def __init__(self, detail=None, *, details=None):
        super().__init__(detail=detail or self.default_detail, code=self.default_code)
        self.details = details or None


class InvalidArgument(InventoryError):
    default_detail = "Invalid argument."
    default_code = "invalid_argument"


class InsufficientStock(InventoryError):
    default_detail = "Insufficient stock."
    default_code = "insufficient_stock"

    def __init__(self, detail=None, *, available=0, requested=None):
        details = {"available": available}
        if requested is not None:
            details["requested"] = requested
        super().__init__(detail, details=details)
        self.available = available
        self.requested = requested


class ConcurrentModification(InventoryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Stock level was modified by another operation. Re-read and retry."
    default_code = "concurrent_modification"

    def __init__(self, detail=None, *, expected=None, actual=None):
        super().__init__(detail, details={"expected_quantity": expected, "current_quantity": actual})


class InvalidState(InventoryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Operation is not allowed in the current state."
    default_code = "invalid_state"


class NotFound(InventoryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"
