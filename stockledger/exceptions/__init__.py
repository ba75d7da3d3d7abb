"""Custom exceptions for the stock ledger application."""


class StockLedgerError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        return rv


class ValidationError(StockLedgerError):
    """Raised when adjustment input is rejected before touching the store."""
    def __init__(self, message, field=None):
        payload = {'field': field} if field else None
        super().__init__(message, 400, payload)
        self.field = field


class NotFoundError(StockLedgerError):
    """Exception raised when a resource is not found."""
    def __init__(self, resource="Product", resource_id=None, message=None):
        if message is None:
            message = f"{resource} not found with id: {resource_id}"
        super().__init__(message, 404, {'resource': resource, 'resource_id': resource_id})
        self.resource = resource
        self.resource_id = resource_id


class InsufficientStockError(StockLedgerError):
    """Raised when a removal exceeds the available stock."""
    def __init__(self, product_id, requested, available):
        message = (
            f"Insufficient stock for product ID {product_id}. "
            f"Requested: {requested}, Available: {available}"
        )
        super().__init__(message, 409, {
            'product_id': product_id,
            'requested': requested,
            'available': available,
        })
        self.product_id = product_id
        self.requested = requested
        self.available = available


class StoreFailure(StockLedgerError):
    """The atomic persistence step failed; nothing was written."""
    def __init__(self, message="Failed to persist stock adjustment", payload=None):
        super().__init__(message, 500, payload)


class StockConflictError(StoreFailure):
    """Concurrent writers kept changing the product row."""
    def __init__(self, product_id, attempts):
        super().__init__(
            f"Concurrent update conflict on product ID {product_id} after {attempts} attempts",
            {'product_id': product_id, 'attempts': attempts},
        )
        self.product_id = product_id
        self.attempts = attempts


class ImmutableLedgerError(StoreFailure):
    """Raised when code tries to update or delete a ledger row."""
    def __init__(self, transaction_id, operation):
        super().__init__(
            f"Stock transaction {transaction_id} is append-only ({operation} rejected)",
            {'transaction_id': transaction_id, 'operation': operation},
        )


class NotificationError(StockLedgerError):
    """Delivery of a stock event failed. Never surfaced by the engine."""
    def __init__(self, message, payload=None):
        super().__init__(message, 502, payload)
