"""
Key resolution for article codes that share no foreign key.

Stock, sales and purchase tables identify the same product with codes of
different lengths: the base code (13 or 15 characters depending on the
source) followed by an undelimited size/color suffix. Everything here is
prefix based.
"""

import logging
import re
from collections import Counter
from typing import Iterable

from .errors import ResolutionError

logger = logging.getLogger(__name__)

_NUMERIC_SIZE = re.compile(r"^\d+(\.\d+)?$")


def resolve_size(full_code: str | None, base_code: str | None) -> str | None:
    """
    Extract the size token from a full article code.

    Example: base "146.241724846", article "146.24172484639.0" -> "39.0"

    Returns None when the code does not start with the base or nothing
    remains after stripping it.
    """
    if not full_code or not base_code:
        return None
    if not full_code.startswith(base_code):
        return None
    remainder = full_code[len(base_code):].strip()
    return remainder or None


def size_sort_key(token: str) -> tuple:
    """Numeric sizes first in numeric order, then the rest lexically."""
    text = token.strip()
    if _NUMERIC_SIZE.match(text):
        return (0, float(text), text)
    return (1, 0.0, text)


def sort_sizes(tokens: Iterable[str]) -> list[str]:
    return sorted(tokens, key=size_sort_key)


class BaseCodeIndex:
    """
    Maps full article codes back to one of a set of known base codes.

    Bases of different lengths can overlap (a 13-character base may be a
    prefix of a 15-character one), so the longest matching base wins.
    """

    def __init__(self, base_codes: Iterable[str]):
        self._bases = sorted(set(base_codes), key=len, reverse=True)

    def match(self, article_code: str | None) -> str | None:
        if not article_code:
            return None
        for base in self._bases:
            if article_code.startswith(base):
                return base
        return None


class SizeResolver:
    """
    Resolves size tokens for one source and keeps count of the failures.

    Failed rows are not dropped by the resolver: callers keep them in
    product-level totals and exclude them only from per-size breakdowns.
    """

    def __init__(self, source_name: str):
        self.source_name = source_name
        self.failures: Counter[str] = Counter()

    def resolve(self, article_code: str, base_code: str) -> str | None:
        size = resolve_size(article_code, base_code)
        if size is None:
            self.failures[base_code] += 1
            logger.debug(
                "%s: %s", self.source_name, ResolutionError(article_code, base_code)
            )
        return size

    @property
    def failure_count(self) -> int:
        return sum(self.failures.values())
