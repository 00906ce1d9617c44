from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base exception for Billing Hub."""
    code = "BILLING_ERROR"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "code": self.code, "message": self.message}


class ValidationError(BillingError):
    """Raised when request or record validation fails."""
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class ProductNotFound(BillingError):
    """Raised when a referenced catalog entry does not exist."""
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str = "Product not found", product_ids=None):
        super().__init__(message)
        self.product_ids = list(product_ids or [])


class InvoiceNotFound(BillingError):
    code = "INVOICE_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str = "Invoice not found"):
        super().__init__(message)


class DuplicateBarcode(BillingError):
    code = "DUPLICATE_BARCODE"
    status_code = 409

    def __init__(self, barcode: str):
        super().__init__("Product with this barcode already exists")
        self.barcode = barcode


class InsufficientStock(BillingError):
    """Raised when a line asks for more units than the product holds."""
    code = "INSUFFICIENT_STOCK"
    status_code = 422

    def __init__(self, product_id, product_name: str, available: int, requested: Optional[int] = None):
        super().__init__(f"Insufficient stock for product: {product_name}. Available: {available}")
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["product_id"] = str(self.product_id)
        data["available"] = self.available
        return data


class ConcurrentModification(BillingError):
    """Raised when stock conflicts persist after all retries."""
    code = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(self, attempts: int):
        super().__init__(f"Catalog changed concurrently; gave up after {attempts} attempts")
        self.attempts = attempts


class NumberAllocationFailed(BillingError):
    """Raised when no unique invoice number could be allocated."""
    code = "NUMBER_ALLOCATION_FAILED"
    status_code = 503

    def __init__(self, message: str):
        super().__init__(message)


class InternalError(BillingError):
    """Opaque wrapper for infrastructure failures."""
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


class DatabaseConnectionError(BillingError):
    """Raised when database connection fails."""
    code = "DATABASE_UNAVAILABLE"
    status_code = 503


class FileProcessingError(BillingError):
    """Raised when file processing fails."""
    code = "FILE_PROCESSING_ERROR"
    status_code = 400


def error_response(exc: Exception) -> Dict[str, Any]:
    """Render any exception as a caller-facing payload."""
    if isinstance(exc, BillingError):
        return exc.to_dict()
    return InternalError().to_dict()


def status_for(exc: Exception) -> int:
    if isinstance(exc, BillingError):
        return exc.status_code
    return InternalError.status_code
