from fastapi import status


class InventoryTransferError(Exception):
    """Base for workflow failures; the HTTP layer maps ``status_code`` straight through."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransferValidationError(InventoryTransferError):
    pass


class NotFoundError(InventoryTransferError):
    status_code = status.HTTP_404_NOT_FOUND


class InventoryNotFound(NotFoundError):
    pass


class TransferNotFound(NotFoundError):
    pass


class SourceNotFound(NotFoundError):
    """No stock line for the subcategory/type at the source branch."""


class InsufficientStock(InventoryTransferError):
    def __init__(self, available, requested):
        super().__init__(f"Not enough quantity in stock. Available={available} requested={requested}")
        self.available = available
        self.requested = requested


class AlreadyResolved(InventoryTransferError):
    def __init__(self, transfer_uuid, current_status: str | None = None):
        detail = f" (status={current_status})" if current_status else ""
        super().__init__(f"Transfer {transfer_uuid} was already approved or rejected{detail}")
        self.transfer_uuid = transfer_uuid


class DuplicatePendingTransfer(InventoryTransferError):
    pass


class Forbidden(InventoryTransferError):
    status_code = status.HTTP_403_FORBIDDEN


class TransferConflict(InventoryTransferError):
    """Lost a lock race with a concurrent transfer; the request can be retried."""

    status_code = status.HTTP_409_CONFLICT
