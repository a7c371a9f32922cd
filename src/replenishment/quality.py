"""
Data quality checks for the upstream fact tables.

Every adapter runs a checker over the raw frame before converting rows,
so problems such as negative stock, unparseable dates or a missing
pending column are reported instead of silently changing the numbers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class DataQualityIssue:
    """A single problem found in one column of a fact table."""

    column: str
    issue_type: str  # "missing", "missing_column", "invalid", "negative", "unresolved"
    severity: str  # "critical", "warning", "info"
    count: int
    percentage: float
    sample_values: list[Any] = field(default_factory=list)
    description: str = ""


@dataclass
class DataQualityReport:
    """Issues found in one fact source."""

    source_name: str
    total_rows: int
    issues: list[DataQualityIssue] = field(default_factory=list)

    @property
    def critical_issues(self) -> list[DataQualityIssue]:
        return [i for i in self.issues if i.severity == "critical"]

    @property
    def has_critical_issues(self) -> bool:
        return len(self.critical_issues) > 0

    def add(self, issue: DataQualityIssue) -> None:
        self.issues.append(issue)

    def summary(self) -> dict:
        counts = {"critical": 0, "warning": 0, "info": 0}
        for issue in self.issues:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1
        return {"source": self.source_name, "total_rows": self.total_rows, **counts}

    def log(self) -> None:
        for issue in self.issues:
            level = logging.WARNING if issue.severity != "info" else logging.INFO
            logger.log(level, "%s.%s: %s", self.source_name, issue.column, issue.description)


def _pct(count: int, total: int) -> float:
    return (count / total) * 100 if total else 0.0


class DataQualityChecker:
    """
    Configurable checks over a raw fact frame.

    Usage:
        report = (
            DataQualityChecker("stock")
            .require_columns(["IdArticulo", "idDeposito", "TotalStock"])
            .check_negative("TotalStock")
            .run(df)
        )
    """

    def __init__(self, source_name: str):
        self.source_name = source_name
        self._checks: list[Callable[[pd.DataFrame], list[DataQualityIssue]]] = []

    def add_check(
        self, check_fn: Callable[[pd.DataFrame], list[DataQualityIssue]]
    ) -> "DataQualityChecker":
        """Add a custom check function. Returns self for chaining."""
        self._checks.append(check_fn)
        return self

    def require_columns(
        self, columns: list[str], severity: str = "critical"
    ) -> "DataQualityChecker":
        """Report columns absent from the frame."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            return [
                DataQualityIssue(
                    column=col,
                    issue_type="missing_column",
                    severity=severity,
                    count=len(df),
                    percentage=100.0,
                    description=f"Column {col} not present",
                )
                for col in columns
                if col not in df.columns
            ]

        return self.add_check(check)

    def check_missing(self, column: str, severity: str = "warning") -> "DataQualityChecker":
        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if column not in df.columns:
                return []
            missing = int(df[column].isna().sum())
            if not missing:
                return []
            return [
                DataQualityIssue(
                    column=column,
                    issue_type="missing",
                    severity=severity,
                    count=missing,
                    percentage=_pct(missing, len(df)),
                    description=f"{missing:,} missing values",
                )
            ]

        return self.add_check(check)

    def check_negative(self, column: str, severity: str = "warning") -> "DataQualityChecker":
        """Report negative values; adapters clamp them to zero."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if column not in df.columns:
                return []
            values = pd.to_numeric(df[column], errors="coerce")
            mask = values < 0
            count = int(mask.sum())
            if not count:
                return []
            return [
                DataQualityIssue(
                    column=column,
                    issue_type="negative",
                    severity=severity,
                    count=count,
                    percentage=_pct(count, len(df)),
                    sample_values=df.loc[mask, column].head(5).tolist(),
                    description=f"{count:,} negative values clamped to zero",
                )
            ]

        return self.add_check(check)

    def check_invalid_values(
        self,
        column: str,
        validator: Callable[[Any], bool],
        severity: str = "warning",
        label: str = "invalid values",
    ) -> "DataQualityChecker":
        """Report non-null values the validator rejects."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if column not in df.columns:
                return []
            values = df[column].dropna()
            rejected = values[~values.apply(validator).astype(bool)]
            count = len(rejected)
            if not count:
                return []
            return [
                DataQualityIssue(
                    column=column,
                    issue_type="invalid",
                    severity=severity,
                    count=count,
                    percentage=_pct(count, len(df)),
                    sample_values=rejected.head(5).tolist(),
                    description=f"{count:,} {label}",
                )
            ]

        return self.add_check(check)

    def run(self, df: pd.DataFrame) -> DataQualityReport:
        """Run all checks and return a quality report."""
        report = DataQualityReport(source_name=self.source_name, total_rows=len(df))
        for check_fn in self._checks:
            report.issues.extend(check_fn(df))
        return report
