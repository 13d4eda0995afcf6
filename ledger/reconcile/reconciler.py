"""
Reconciler

Moves whole-store contents to and from the two external formats.

EXPORT reads a snapshot and never mutates anything.

IMPORT is a destructive replace-all:
1. Require explicit confirmation from the caller
2. Parse the whole document (ParseError here leaves the store untouched)
3. Clear expenses, budgets and categories
4. Bulk-insert the parsed records
5. Replace settings (JSON bundles only)

Steps 3-5 are NOT atomic. Any failure once step 3 has started is
reported as ReconciliationAbortedError and is not retried.
"""

from typing import Optional, Union

import structlog
from pydantic import BaseModel

from ledger.models.entities import Budget, Category, Expense, Settings
from ledger.models.events import Collection
from ledger.reconcile.bundle import LedgerBundle, dump_bundle, parse_bundle
from ledger.reconcile.errors import ConfirmationRequiredError, ReconciliationAbortedError
from ledger.reconcile.workbook import (
    BUDGETS_SHEET,
    CATEGORIES_SHEET,
    EXPENSES_SHEET,
    budget_from_row,
    category_from_row,
    expense_from_row,
    read_workbook,
    write_workbook,
)
from ledger.store import LedgerStore


class ImportSummary(BaseModel):
    """What a completed import wrote."""
    
    source: str
    expenses: int
    budgets: int
    categories: int
    settings_replaced: bool = False


class Reconciler:
    """Export/import of the whole store as a JSON bundle or a workbook."""
    
    def __init__(self, store: LedgerStore):
        self._store = store
        self._logger = structlog.get_logger("ledger.reconcile")
    
    # -------------------------------------------------------------------------
    # JSON bundle
    # -------------------------------------------------------------------------
    
    async def export_bundle(self) -> LedgerBundle:
        snapshot = await self._store.snapshot()
        return LedgerBundle.from_snapshot(snapshot, export_date=self._store.now())
    
    async def export_json(self) -> str:
        """Serialize every collection plus ``exportDate`` as JSON text."""
        bundle = await self.export_bundle()
        self._logger.info(
            "export_completed",
            format="json",
            expenses=len(bundle.expenses),
            budgets=len(bundle.budgets),
            categories=len(bundle.categories),
        )
        return dump_bundle(bundle)
    
    async def import_json(
        self,
        data: Union[str, bytes],
        confirm: bool = False,
    ) -> ImportSummary:
        """
        Replace the store's contents with a JSON bundle.
        
        Ids and timestamps are kept verbatim and records are not
        re-validated.
        
        Raises:
            ConfirmationRequiredError: If ``confirm`` is not True
            ParseError: If the bundle is malformed (store untouched)
            ReconciliationAbortedError: If writing fails after clearing began
        """
        self._require_confirmation(confirm, "json")
        bundle = parse_bundle(data)
        return await self._replace_all(
            "json",
            expenses=bundle.expenses,
            budgets=bundle.budgets,
            categories=bundle.categories,
            settings=bundle.settings,
        )
    
    # -------------------------------------------------------------------------
    # Workbook
    # -------------------------------------------------------------------------
    
    async def export_workbook(self) -> bytes:
        """Render expenses, budgets and categories as .xlsx bytes."""
        snapshot = await self._store.snapshot()
        data = write_workbook(snapshot)
        self._logger.info(
            "export_completed",
            format="workbook",
            expenses=len(snapshot.expenses),
            budgets=len(snapshot.budgets),
            categories=len(snapshot.categories),
        )
        return data
    
    async def import_workbook(self, data: bytes, confirm: bool = False) -> ImportSummary:
        """
        Replace expenses, budgets and categories with a workbook's rows.
        
        Every row gets a fresh id; missing cells are defaulted per field.
        Settings are left as they are.
        
        Raises:
            ConfirmationRequiredError: If ``confirm`` is not True
            ParseError: If ``data`` is not a workbook (store untouched)
            ReconciliationAbortedError: If writing fails after clearing began
        """
        self._require_confirmation(confirm, "workbook")
        sheets = read_workbook(data)
        
        today = self._store.today()
        now = self._store.now()
        expenses = [expense_from_row(row, today, now) for row in sheets[EXPENSES_SHEET]]
        budgets = [budget_from_row(row, today, now) for row in sheets[BUDGETS_SHEET]]
        categories = [category_from_row(row) for row in sheets[CATEGORIES_SHEET]]
        
        return await self._replace_all(
            "workbook",
            expenses=expenses,
            budgets=budgets,
            categories=categories,
        )
    
    # -------------------------------------------------------------------------
    # Destructive replace
    # -------------------------------------------------------------------------
    
    def _require_confirmation(self, confirm: bool, source: str) -> None:
        if confirm is not True:
            raise ConfirmationRequiredError(
                f"{source} import replaces all existing data; pass confirm=True"
            )
    
    async def _replace_all(
        self,
        source: str,
        expenses: list[Expense],
        budgets: list[Budget],
        categories: list[Category],
        settings: Optional[Settings] = None,
    ) -> ImportSummary:
        phase = "clear"
        try:
            await self._store.clear_collections(
                Collection.EXPENSES,
                Collection.BUDGETS,
                Collection.CATEGORIES,
            )
            
            phase = "expenses"
            await self._store.bulk_insert(Collection.EXPENSES, expenses)
            phase = "budgets"
            await self._store.bulk_insert(Collection.BUDGETS, budgets)
            phase = "categories"
            await self._store.bulk_insert(Collection.CATEGORIES, categories)
            
            if settings is not None:
                phase = "settings"
                await self._store.settings.replace(settings)
        except Exception as e:
            self._logger.error(
                "import_aborted",
                source=source,
                phase=phase,
                error=str(e),
            )
            raise ReconciliationAbortedError(source, phase, e) from e
        
        summary = ImportSummary(
            source=source,
            expenses=len(expenses),
            budgets=len(budgets),
            categories=len(categories),
            settings_replaced=settings is not None,
        )
        self._logger.info("import_completed", **summary.model_dump())
        return summary
