from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pharmapos.config import Settings
from pharmapos.repositories.sqlite_repo import SqliteRepository
from pharmapos.services.assistant_service import AssistantService
from pharmapos.services.import_service import ImportService
from pharmapos.services.inventory_service import InventoryService
from pharmapos.services.reporting_service import ReportingService
from pharmapos.services.sales_service import SalesService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    inventory: InventoryService
    sales: SalesService
    reporting: ReportingService
    assistant: AssistantService
    importer: ImportService


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path, busy_timeout=settings.busy_timeout)
    repo.init_db()

    inventory = InventoryService(repo, low_stock_threshold=settings.low_stock_threshold)
    sales = SalesService(repo)
    reporting = ReportingService(repo, low_stock_threshold=settings.low_stock_threshold)
    assistant = AssistantService(
        settings.gemini_api_key,
        inventory_service=inventory,
        model=settings.gemini_model,
        timeout=settings.ai_timeout,
    )
    importer = ImportService(inventory, assistant)

    return AppContainer(
        repo=repo,
        inventory=inventory,
        sales=sales,
        reporting=reporting,
        assistant=assistant,
        importer=importer,
    )
