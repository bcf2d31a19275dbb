from .inventory_service import InventoryService
from .sales_service import SalesService
from .cart import Cart
from .import_service import ImportService
from .reporting_service import ReportingService
from .assistant_service import AssistantService

__all__ = [
    "InventoryService",
    "SalesService",
    "Cart",
    "ImportService",
    "ReportingService",
    "AssistantService",
]
