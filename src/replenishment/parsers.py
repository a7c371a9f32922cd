"""
Parsers for the raw values found in the upstream fact tables.

These handle the messy reality of the exports:
- Transaction dates in several formats depending on the extraction job
- Article codes with stray whitespace and inconsistent casing
- Store descriptions used to infer the store classification
"""

import re
from datetime import date, datetime

import pandas as pd

from .records import StoreClass


class DateParser:
    """
    Date parser that accepts the formats seen in the sales and purchase exports.

    To extend: add new format patterns to DATE_FORMATS.
    """

    DATE_FORMATS = [
        "%Y-%m-%d",           # ISO: 2024-07-25
        "%Y-%m-%d %H:%M:%S",  # SQL datetime: 2024-07-25 00:00:00
        "%Y-%m-%dT%H:%M:%S",  # ISO datetime
        "%d/%m/%Y",           # 25/07/2024
        "%d-%m-%Y",           # 25-07-2024
        "%d/%m/%y",           # 25/07/24
        "%Y/%m/%d",           # 2024/07/25
    ]

    def __init__(self, custom_formats: list[str] | None = None):
        """
        Args:
            custom_formats: Additional date formats to try (prepended to defaults)
        """
        self.formats = (custom_formats or []) + self.DATE_FORMATS
        self._cache: dict[str, date | None] = {}

    def parse(self, value) -> date | None:
        """Parse a single value into a date, trying multiple formats."""
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        text = str(value).strip()
        if not text:
            return None

        if text in self._cache:
            return self._cache[text]

        for fmt in self.formats:
            try:
                result = datetime.strptime(text, fmt).date()
                self._cache[text] = result
                return result
            except ValueError:
                continue

        self._cache[text] = None
        return None

    def parse_series(self, series: pd.Series) -> pd.Series:
        """Parse an entire pandas Series of dates."""
        return series.apply(self.parse)


class CodeNormalizer:
    """
    Normalizes article and base codes so prefix matching is reliable.

    Handles:
    - 146.241724846  -> 146.241724846
    - " 146.2417248 " -> 146.2417248
    - numeric cells read as floats by the spreadsheet reader (1234.0 -> 1234)
    """

    def __init__(self, uppercase: bool = True):
        self.uppercase = uppercase

    def normalize(self, code) -> str | None:
        """Normalize a single code."""
        if code is None or (not isinstance(code, str) and pd.isna(code)):
            return None

        if isinstance(code, float) and code.is_integer():
            code = int(code)

        result = str(code).strip()
        if not result:
            return None

        if self.uppercase:
            result = result.upper()

        return result

    def normalize_series(self, series: pd.Series) -> pd.Series:
        """Normalize an entire pandas Series of codes."""
        return series.apply(self.normalize)


class StoreClassifier:
    """
    Derives a store classification from its id and description.

    Id lists take precedence over name patterns; the first matching
    classification wins, so the result is always exactly one class.
    """

    NAME_PATTERNS = [
        (StoreClass.CENTRAL, re.compile(r"\bCENTRAL\b", re.IGNORECASE)),
        (StoreClass.WEB, re.compile(r"\bWEB\b|E-?COMMERCE", re.IGNORECASE)),
        (StoreClass.OUTLET, re.compile(r"OUTLET|SALDOS", re.IGNORECASE)),
    ]

    def __init__(
        self,
        central_ids: list[int] | set[int] = (),
        outlet_ids: list[int] | set[int] = (),
        web_ids: list[int] | set[int] = (),
    ):
        self.central_ids = set(central_ids)
        self.outlet_ids = set(outlet_ids)
        self.web_ids = set(web_ids)

    def classify(self, store_id: int, name: str | None = None) -> StoreClass:
        if store_id in self.central_ids:
            return StoreClass.CENTRAL
        if store_id in self.web_ids:
            return StoreClass.WEB
        if store_id in self.outlet_ids:
            return StoreClass.OUTLET

        if name:
            for store_class, pattern in self.NAME_PATTERNS:
                if pattern.search(name):
                    return store_class

        return StoreClass.REGULAR
