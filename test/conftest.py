import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from pharmapos.logging_config import CHANNEL_FILES  # noqa: E402


@pytest.fixture(autouse=True)
def _drop_app_log_handlers():
    yield
    for name in (None, *CHANNEL_FILES):
        logger = logging.getLogger(name)
        for h in [h for h in logger.handlers if getattr(h, "_pharmapos", False)]:
            logger.removeHandler(h)
            h.close()


def add_medicine(inventory, name: str = "Paracetamol 500mg", mrp: str = "100.00", stock: int = 10, **overrides) -> int:
    fields = {
        "name": name,
        "manufacturer": "Cipla",
        "category": "Painkiller",
        "batch_number": "B-2291",
        "hsn_code": "3004",
        "mrp": mrp,
        "stock": stock,
        "expiry_date": "2027-06-30",
    }
    fields.update(overrides)
    return inventory.add_medicine(**fields)
