"""
Sample-level consistency checks between the expression matrix and metadata.

Three invariants are checked:
  count_matches       expression column count == metadata row count
  ids_match_in_order  expression columns == metadata index, same order
  ids_unique          no duplicated sample id on either side
"""

import logging
from dataclasses import dataclass, field

import pandas as pd

from .errors import ValidationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationReport:
    n_columns: int
    n_rows: int
    count_matches: bool
    ids_match_in_order: bool
    ids_unique: bool
    failures: tuple[str, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return self.count_matches and self.ids_match_in_order and self.ids_unique


def check_samples(expression: pd.DataFrame, metadata: pd.DataFrame) -> ValidationReport:
    columns = pd.Index(expression.columns)
    rows = pd.Index(metadata.index)

    count_matches = len(columns) == len(rows)
    ids_match = count_matches and bool((columns == rows).all())
    ids_unique = columns.is_unique and rows.is_unique

    failures = []
    if not count_matches:
        failures.append(f"count_matches: {len(columns)} expression columns vs "
                        f"{len(rows)} metadata rows")
    if not ids_match:
        only_expr = columns.difference(rows).tolist()
        only_meta = rows.difference(columns).tolist()
        if only_expr or only_meta:
            detail = f"only in expression {only_expr[:5]}, only in metadata {only_meta[:5]}"
        else:
            detail = "same ids, different order"
        failures.append(f"ids_match_in_order: {detail}")
    if not ids_unique:
        dups = sorted(set(columns[columns.duplicated()]) | set(rows[rows.duplicated()]))
        failures.append(f"ids_unique: duplicated {dups[:5]}")

    return ValidationReport(
        n_columns=len(columns),
        n_rows=len(rows),
        count_matches=count_matches,
        ids_match_in_order=ids_match,
        ids_unique=ids_unique,
        failures=tuple(failures),
    )


def validate_samples(expression: pd.DataFrame, metadata: pd.DataFrame) -> ValidationReport:
    """check_samples, raising ValidationError if any invariant fails."""
    report = check_samples(expression, metadata)
    if not report.ok:
        for failure in report.failures:
            log.error(f"  Sample check failed — {failure}")
        raise ValidationError(
            "Expression matrix and sample metadata do not correspond: "
            + "; ".join(report.failures),
            failures=report.failures,
        )
    log.info(f"  Sample checks passed: {report.n_columns} samples, ids unique and aligned")
    return report


def align_metadata(expression: pd.DataFrame, metadata: pd.DataFrame) -> pd.DataFrame:
    """
    Reorder metadata rows to the expression column order.
    Only a pure reordering is allowed: the two id sets must be equal and unique.
    """
    columns = pd.Index(expression.columns)
    rows = pd.Index(metadata.index)
    if not (columns.is_unique and rows.is_unique):
        raise ValidationError("Duplicated sample ids; cannot align metadata",
                              failures=("ids_unique",))
    if set(columns) != set(rows):
        raise ValidationError(
            f"Sample ids differ between expression ({len(columns)}) and "
            f"metadata ({len(rows)})",
            failures=("count_matches", "ids_match_in_order"),
        )
    return metadata.loc[columns]
