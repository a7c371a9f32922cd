"""Shared fixtures: a small store network backed by in-memory tables."""

from datetime import date

import pandas as pd
import pytest

from fact_sources import FrameFactSource
from replenishment import EngineSettings, ReplenishmentService
from replenishment.parsers import StoreClassifier

PRODUCT = "146.241724846"
OTHER_PRODUCT = "200.123456789"
REFERENCE_DATE = date(2024, 7, 1)
JUNE = (date(2024, 6, 1), date(2024, 6, 30))


@pytest.fixture
def stock_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            ("146.24172484638", 99, 20, 5),
            ("146.24172484639", 99, 20, 0),
            ("146.24172484638", 1, 0, 0),
            ("146.24172484639", 1, 0, 0),
            ("146.24172484638", 2, 8, 0),
            ("146.24172484640", 2, 6, 0),
            ("200.123456789M", 3, 10, 0),
        ],
        columns=["IdArticulo", "idDeposito", "TotalStock", "Pendiente"],
    )


@pytest.fixture
def sales_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            ("146.24172484638", 1, PRODUCT, "2024-03-01", 18, 1800.0),
            ("146.24172484638", 1, PRODUCT, "2024-06-10", 4, 400.0),
            ("146.24172484639", 1, PRODUCT, "12/06/2024", 2, 200.0),
            ("146.24172484638", 2, PRODUCT, "2024-06-15", 3, 300.0),
            ("146.24172484640", 2, PRODUCT, "2024-06-20 00:00:00", 1, 100.0),
            ("200.123456789M", 3, OTHER_PRODUCT, "2024-06-05", 5, 250.0),
        ],
        columns=["IdArticulo", "IdDeposito", "BaseCol", "Fecha", "Cantidad", "PRECIO"],
    )


@pytest.fixture
def purchases_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            ("146.24172484638", "2024-05-01", 10, 40.0),
            ("146.24172484639", "2024-05-01", 10, 40.0),
            ("146.24172484640", "2024-01-15", 5, 35.0),
            ("200.123456789M", "2024-04-01", 20, 0),
        ],
        columns=["BaseArticulo", "FechaUltimaCompra", "CantidadUltimaCompra", "UltimoCosto"],
    )


@pytest.fixture
def stores_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            (99, "DEPOSITO CENTRAL"),
            (1, "Tienda Centro"),
            (2, "Tienda Norte"),
            (3, "Tienda Sur"),
            (31, "Outlet Saldos"),
        ],
        columns=["IdTienda", "Descripcion"],
    )


@pytest.fixture
def products_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            (PRODUCT, "Running shoe", "Acme", 10, 500),
            (OTHER_PRODUCT, "Cap", "Acme", 20, 600),
        ],
        columns=["base", "descripcionCorta", "marca", "IdClase", "idProveedor"],
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(fetch_timeout_seconds=5, max_workers=2)


@pytest.fixture
def source(stock_frame, sales_frame, purchases_frame, stores_frame, products_frame, settings):
    return FrameFactSource(
        stock=stock_frame,
        sales=sales_frame,
        purchases=purchases_frame,
        stores=stores_frame,
        products=products_frame,
        classifier=StoreClassifier(
            central_ids=settings.central_store_ids,
            outlet_ids=settings.outlet_store_ids,
            web_ids=settings.web_store_ids,
        ),
    )


@pytest.fixture
def service(source, settings) -> ReplenishmentService:
    return ReplenishmentService(source, source, source, source, settings=settings)
