from __future__ import annotations


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class ImportFormatError(ValidationError):
    pass


class NotFoundError(AppError):
    pass


class MedicineNotFoundError(NotFoundError):
    def __init__(self, medicine_id: int, name: str | None = None):
        self.medicine_id = medicine_id
        self.name = name
        label = f"{name} (id {medicine_id})" if name else f"id {medicine_id}"
        super().__init__(f"Medicine {label} not found.")


class InsufficientStockError(AppError):
    def __init__(self, medicine_id: int, name: str, available: int, requested: int):
        self.medicine_id = medicine_id
        self.name = name
        self.available = available
        self.requested = requested
        super().__init__(f"Not enough stock for {name}. Available: {available}, Requested: {requested}")


class StoreError(AppError):
    pass


class AssistantUnavailableError(AppError):
    pass
