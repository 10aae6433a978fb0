from typing import Any, Dict, Optional


class GRNError(Exception):
    """Base class for workflow errors. `kind` is the machine-readable error name."""
    kind = "GRNError"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, **self.details}


class NotFound(GRNError):
    kind = "NotFound"
    status_code = 404


class InvalidState(GRNError):
    kind = "InvalidState"
    status_code = 409

    def __init__(self, message: str, status: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message, status=status, operation=operation)
        self.status = status
        self.operation = operation


class InvalidQuantity(GRNError):
    kind = "InvalidQuantity"
    status_code = 422

    def __init__(self, message: str, item_id: Optional[str] = None, item_code: Optional[str] = None):
        super().__init__(message, item_id=item_id, item_code=item_code)
        self.item_id = item_id
        self.item_code = item_code


class MissingReason(GRNError):
    kind = "MissingReason"
    status_code = 422


class PostingFailure(GRNError):
    kind = "PostingFailure"
    status_code = 502

    def __init__(self, message: str, item_code: Optional[str] = None, warehouse: Optional[str] = None):
        super().__init__(message, item_code=item_code, warehouse=warehouse)
        self.item_code = item_code
        self.warehouse = warehouse


class ValidationError(GRNError):
    """Malformed create request (no items, duplicate grn_no, bad received quantity)."""
    kind = "ValidationError"
    status_code = 422
