"""
Loader for directory exports of the retail database.

Expected layout (one file per upstream table):
- stock.csv        MovStockTotalResumen
- sales.csv        Transacciones
- purchases.xlsx   UltimaCompra (purchases.csv also accepted)
- stores.json      Tiendas, either a list or {"stores": [...]}
- products.csv     Articulos (optional)

Code columns are read as text: article codes look like decimals
("146.241724846") and would lose their suffix if parsed as numbers.
"""

import json
import logging
from pathlib import Path

import pandas as pd

from replenishment.parsers import StoreClassifier
from replenishment.settings import EngineSettings

from .frames import FrameFactSource

logger = logging.getLogger(__name__)

CODE_COLUMNS = {"IdArticulo": str, "BaseCol": str, "BaseArticulo": str, "base": str}


class RetailExportLoader:
    """Builds a FrameFactSource from an export directory."""

    def __init__(self, data_dir: Path | str, settings: EngineSettings | None = None):
        self.data_dir = Path(data_dir)
        self.settings = settings or EngineSettings()

    def load(self) -> FrameFactSource:
        """Load all tables and wrap them in a fact source."""
        classifier = StoreClassifier(
            central_ids=self.settings.central_store_ids,
            outlet_ids=self.settings.outlet_store_ids,
            web_ids=self.settings.web_store_ids,
        )
        source = FrameFactSource(
            stock=self.load_stock(),
            sales=self.load_sales(),
            purchases=self.load_purchases(),
            stores=self.load_stores(),
            products=self.load_products(),
            classifier=classifier,
        )
        logger.info(
            "Loaded exports from %s: %s",
            self.data_dir,
            [r.summary() for r in source.quality_reports.values()],
        )
        return source

    def _csv(self, name: str) -> pd.DataFrame:
        return pd.read_csv(self.data_dir / name, dtype=CODE_COLUMNS)

    def load_stock(self) -> pd.DataFrame:
        return self._csv("stock.csv")

    def load_sales(self) -> pd.DataFrame:
        return self._csv("sales.csv")

    def load_purchases(self) -> pd.DataFrame:
        """Purchases come as a spreadsheet from the buying team; CSV is the fallback."""
        xlsx = self.data_dir / "purchases.xlsx"
        if xlsx.exists():
            return pd.read_excel(xlsx, dtype=CODE_COLUMNS)
        return self._csv("purchases.csv")

    def load_stores(self) -> pd.DataFrame:
        with open(self.data_dir / "stores.json", encoding="utf-8") as f:
            data = json.load(f)
        rows = data["stores"] if isinstance(data, dict) else data
        return pd.DataFrame(rows, columns=["IdTienda", "Descripcion"])

    def load_products(self) -> pd.DataFrame | None:
        path = self.data_dir / "products.csv"
        if not path.exists():
            return None
        return self._csv("products.csv")
