"""Import/export package: JSON bundles and spreadsheet workbooks."""

from ledger.reconcile.bundle import LedgerBundle, dump_bundle, parse_bundle
from ledger.reconcile.errors import (
    ConfirmationRequiredError,
    ParseError,
    ReconcileError,
    ReconciliationAbortedError,
)
from ledger.reconcile.reconciler import ImportSummary, Reconciler
from ledger.reconcile.workbook import (
    BUDGET_COLUMNS,
    CATEGORY_COLUMNS,
    EXPENSE_COLUMNS,
    read_workbook,
    write_workbook,
)

__all__ = [
    "LedgerBundle",
    "dump_bundle",
    "parse_bundle",
    "ConfirmationRequiredError",
    "ParseError",
    "ReconcileError",
    "ReconciliationAbortedError",
    "ImportSummary",
    "Reconciler",
    "BUDGET_COLUMNS",
    "CATEGORY_COLUMNS",
    "EXPENSE_COLUMNS",
    "read_workbook",
    "write_workbook",
]
