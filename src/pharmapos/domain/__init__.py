from .models import Medicine, MedicineDraft, Customer, CartItem, Sale, SaleItem
from .errors import (
    AppError,
    ValidationError,
    ImportFormatError,
    NotFoundError,
    MedicineNotFoundError,
    InsufficientStockError,
    StoreError,
    AssistantUnavailableError,
)

__all__ = [
    "Medicine",
    "MedicineDraft",
    "Customer",
    "CartItem",
    "Sale",
    "SaleItem",
    "AppError",
    "ValidationError",
    "ImportFormatError",
    "NotFoundError",
    "MedicineNotFoundError",
    "InsufficientStockError",
    "StoreError",
    "AssistantUnavailableError",
]
