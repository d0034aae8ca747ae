import copy
import os

# CRITICAL: Set environment variables BEFORE any cashplan imports.
# These must be set before cashplan.config.settings is loaded.
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest

REFERENCE_SETTINGS = {
    "fxRate": 0.86,
    "fxFeePct": 0.5,
    "eustRatePct": 19,
    "dutyRatePct": 6.5,
    "freightLagDays": 14,
    "vatRefundEnabled": True,
    "vatRefundLagMonths": 2,
}

REFERENCE_PO = {
    "id": "po-25007",
    "poNo": "25007",
    "orderDate": "2025-02-21",
    "goodsValueUsd": 4090,
    "prodDays": 60,
    "transport": "sea",
    "transitDays": 60,
    "ddp": False,
    "freightEur": 368.5,
    "dutyRatePct": 6.5,
    "dutyIncludeFreight": False,
    "fxOverride": 0.86,
    "milestones": [
        {"id": "m1", "label": "Deposit 30%", "percent": 30, "anchor": "ORDER_DATE", "lagDays": 0},
        {"id": "m2", "label": "Balance 70%", "percent": 70, "anchor": "PROD_DONE", "lagDays": 0},
    ],
}


@pytest.fixture
def reference_settings():
    return copy.deepcopy(REFERENCE_SETTINGS)


@pytest.fixture
def reference_po():
    return copy.deepcopy(REFERENCE_PO)


@pytest.fixture
def eur_po():
    """EUR-denominated PO without import costs: two events, 300 on 2025-03-01 and 700 on 2025-03-31."""
    return {
        "id": "po-1",
        "poNo": "PO-1",
        "orderDate": "2025-03-01",
        "currency": "EUR",
        "goodsValueUsd": 1000,
        "prodDays": 0,
        "supplierId": "sup-1",
        "items": [{"sku": "SKU-A", "units": 100, "unitCostUsd": 10}],
        "milestones": [
            {"id": "m1", "label": "Deposit", "percent": 30, "anchor": "ORDER_DATE", "lagDays": 0},
            {"id": "m2", "label": "Balance", "percent": 70, "anchor": "ORDER_DATE", "lagDays": 30},
        ],
        "paymentLog": {},
    }


@pytest.fixture
def snapshot_factory():
    def _build(pos=None, fos=None, payments=None, settings=None):
        return {
            "settings": settings if settings is not None else {},
            "pos": pos or [],
            "fos": fos or [],
            "payments": payments or [],
            "suppliers": [{"id": "sup-1", "name": "Shenzhen Tools Ltd"}],
            "products": [{"sku": "SKU-A", "alias": "Hammer"}],
        }

    return _build
