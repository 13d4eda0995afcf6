"""
Tests for JSON bundle and workbook import/export.
"""

import json
import zipfile
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from ledger.errors import PersistenceError
from ledger.models import (
    Account,
    BudgetPeriod,
    Collection,
    FALLBACK_CATEGORY_ID,
    PaymentMethod,
    Settings,
    Theme,
)
from ledger.reconcile import (
    BUDGET_COLUMNS,
    CATEGORY_COLUMNS,
    EXPENSE_COLUMNS,
    ConfirmationRequiredError,
    ParseError,
    ReconciliationAbortedError,
    Reconciler,
    parse_bundle,
)
from ledger.reconcile.workbook import AMOUNT_FORMAT, cell_time
from ledger.services.storage import InMemoryStorage
from ledger.store import LedgerStore


def build_workbook(sheets: dict[str, list[list]]) -> bytes:
    """An .xlsx file whose sheets hold the given rows, header first."""
    # The default "Sheet" stays; the importer ignores unknown sheet names.
    workbook = Workbook()
    for name, rows in sheets.items():
        sheet = workbook.create_sheet(name)
        for row in rows:
            sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def truncate_member(data: bytes, member: str) -> bytes:
    """Copy of a zip archive with the second half of one member cut off."""
    source = zipfile.ZipFile(BytesIO(data))
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as target:
        for info in source.infolist():
            content = source.read(info.filename)
            if info.filename == member:
                content = content[:len(content) // 2]
            target.writestr(info.filename, content)
    return buffer.getvalue()


@pytest.fixture
def reconciler(store):
    return Reconciler(store)


@pytest.fixture
async def populated(store, expense_data, budget_data, clock):
    """A store holding one of everything, with non-default settings."""
    category = await store.categories.insert({"name": "Pets", "icon": "🐶", "color": "teal"})
    clock.advance(minutes=1)
    await store.expenses.insert(expense_data(
        category=category.id,
        attachments=["aGVsbG8="],
        isRecurring=True,
    ))
    clock.advance(minutes=1)
    await store.budgets.insert(budget_data(category=category.id, isActive=False))
    await store.settings.update({"theme": "dark", "currency": "$"})
    return store


class TestJsonExport:
    """Tests for the JSON bundle format."""

    async def test_bundle_shape(self, populated, reconciler, clock):
        document = json.loads(await reconciler.export_json())

        assert set(document) == {"expenses", "budgets", "categories", "settings", "exportDate"}
        expense = document["expenses"][0]
        assert expense["paymentMethod"] == "UPI"
        assert expense["amount"] == "150.00"
        assert expense["attachments"] == ["aGVsbG8="]
        assert document["settings"]["theme"] == "dark"
        assert document["exportDate"].startswith("2024-12-15T10:32")

    async def test_round_trip_into_fresh_store(self, populated, reconciler, clock):
        """Importing an export reproduces every collection with the same ids."""
        data = await reconciler.export_json()
        before = await populated.snapshot()

        async with LedgerStore(InMemoryStorage(), clock=clock) as fresh:
            summary = await Reconciler(fresh).import_json(data, confirm=True)
            after = await fresh.snapshot()

        assert summary.expenses == 1
        assert summary.settings_replaced is True
        assert after.expenses == before.expenses
        assert after.budgets == before.budgets
        assert after.categories == before.categories
        assert after.settings == before.settings


class TestJsonImport:
    """Tests for the destructive JSON import."""

    async def test_requires_confirmation(self, populated, reconciler):
        before = await populated.snapshot()
        with pytest.raises(ConfirmationRequiredError):
            await reconciler.import_json('{"expenses": []}')
        assert await populated.snapshot() == before

    @pytest.mark.parametrize("data", [
        "not json",
        "[1, 2, 3]",
        '{"expenses": [{"id": "x"}]}',
        '{"budgets": "many"}',
        '{"settings": {"theme": "sepia"}}',
    ])
    async def test_malformed_bundle_leaves_store_untouched(self, populated, reconciler, data):
        before = await populated.snapshot()
        with pytest.raises(ParseError):
            await reconciler.import_json(data, confirm=True)
        assert await populated.snapshot() == before

    async def test_duplicate_ids_rejected(self, populated, reconciler):
        document = json.loads(await reconciler.export_json())
        document["expenses"].append(document["expenses"][0])
        with pytest.raises(ParseError, match="Duplicate ids in expenses"):
            await reconciler.import_json(json.dumps(document), confirm=True)

    async def test_missing_collections_are_empty(self, populated, reconciler):
        """Absent keys clear the collection; absent settings are kept."""
        summary = await reconciler.import_json('{"expenses": null}', confirm=True)

        assert summary.settings_replaced is False
        assert await populated.expenses.count() == 0
        assert await populated.budgets.count() == 0
        assert await populated.categories.count() == 0
        assert (await populated.settings.get()).theme == Theme.DARK

    async def test_text_kept_verbatim(self, populated, reconciler):
        """Bundle text is restored as written, surrounding spaces included."""
        document = json.loads(await reconciler.export_json())
        document["categories"][0]["name"] = "  Padded  "
        document["expenses"][0]["note"] = " trailing "

        await reconciler.import_json(json.dumps(document), confirm=True)

        category = await populated.categories.get(document["categories"][0]["id"])
        expense = await populated.expenses.get(document["expenses"][0]["id"])
        assert category.name == "  Padded  "
        assert expense.note == " trailing "

    async def test_numeric_amounts_accepted(self, store, reconciler):
        document = {
            "expenses": [{
                "id": "e1",
                "amount": 42.5,
                "date": "2024-12-01",
                "time": "08:00",
                "category": "food",
                "paymentMethod": "Cash",
                "account": "SBI",
                "createdAt": "2024-12-01T08:00:00Z",
                "updatedAt": "2024-12-01T08:00:00Z",
            }],
            "settings": Settings(language="hi").to_record(),
        }
        await reconciler.import_json(json.dumps(document), confirm=True)

        expense = await store.expenses.get("e1")
        assert expense.amount == Decimal("42.5")
        assert expense.payment_method == PaymentMethod.CASH
        assert (await store.settings.get()).language == "hi"

    def test_parse_bundle_reports_details(self):
        with pytest.raises(ParseError) as exc_info:
            parse_bundle('{"categories": [{"id": "c1"}]}')
        assert exc_info.value.details


class TestWorkbookExport:
    """Tests for the spreadsheet export."""

    async def test_sheets_and_headers(self, populated, reconciler):
        workbook = load_workbook(BytesIO(await reconciler.export_workbook()))

        assert workbook.sheetnames == ["Expenses", "Budgets", "Categories"]
        assert [c.value for c in workbook["Expenses"][1]] == list(EXPENSE_COLUMNS)
        assert [c.value for c in workbook["Budgets"][1]] == list(BUDGET_COLUMNS)
        assert [c.value for c in workbook["Categories"][1]] == list(CATEGORY_COLUMNS)

    async def test_rows(self, populated, reconciler):
        workbook = load_workbook(BytesIO(await reconciler.export_workbook()))

        expense_row = dict(zip(EXPENSE_COLUMNS, [c.value for c in workbook["Expenses"][2]]))
        assert expense_row["Date"] == "2024-12-15"
        assert expense_row["Amount"] == 150.0
        assert expense_row["Payment Method"] == "UPI"
        assert expense_row["Location"] == "Cafe"

        budget_row = dict(zip(BUDGET_COLUMNS, [c.value for c in workbook["Budgets"][2]]))
        assert budget_row["Is Active"] == "No"
        assert budget_row["Period"] == "monthly"

        category_rows = [
            dict(zip(CATEGORY_COLUMNS, [c.value for c in row]))
            for row in workbook["Categories"].iter_rows(min_row=2)
        ]
        assert {row["Is Default"] for row in category_rows} == {"Yes", "No"}

    async def test_amount_cells_are_formatted(self, populated, reconciler):
        workbook = load_workbook(BytesIO(await reconciler.export_workbook()))
        column = EXPENSE_COLUMNS.index("Amount") + 1
        cell = workbook["Expenses"].cell(row=2, column=column)
        assert cell.data_type == "n"
        assert cell.number_format == AMOUNT_FORMAT

    async def test_long_amount_survives_round_trip(self, store, reconciler, expense_data, budget_data):
        """Amounts with more digits than a number cell holds are written as text."""
        await store.expenses.insert(expense_data(amount="123456789.123456789"))
        await store.budgets.insert(budget_data(amount="0.1000000000000000001"))
        data = await reconciler.export_workbook()

        workbook = load_workbook(BytesIO(data))
        column = EXPENSE_COLUMNS.index("Amount") + 1
        assert workbook["Expenses"].cell(row=2, column=column).value == "123456789.123456789"

        await reconciler.import_workbook(data, confirm=True)
        assert (await store.expenses.all())[0].amount == Decimal("123456789.123456789")
        assert (await store.budgets.all())[0].amount == Decimal("0.1000000000000000001")


class TestWorkbookImport:
    """Tests for the lossy spreadsheet import."""

    async def test_requires_confirmation(self, reconciler):
        with pytest.raises(ConfirmationRequiredError):
            await reconciler.import_workbook(build_workbook({}))

    async def test_round_trip_values(self, populated, reconciler):
        """Values survive an export/import cycle; ids are regenerated."""
        before = await populated.snapshot()
        data = await reconciler.export_workbook()

        await reconciler.import_workbook(data, confirm=True)
        after = await populated.snapshot()

        old, new = before.expenses[0], after.expenses[0]
        assert new.id != old.id
        assert (new.date, new.time, new.amount, new.category) == (old.date, old.time, old.amount, old.category)
        assert (new.items, new.where, new.note) == (old.items, old.where, old.note)
        assert (new.payment_method, new.account) == (old.payment_method, old.account)
        assert new.created_at == old.created_at
        assert new.attachments == []

        assert [c.name for c in after.categories] == [c.name for c in before.categories]
        assert after.budgets[0].amount == before.budgets[0].amount
        assert after.budgets[0].is_active is False
        assert after.settings == before.settings

    async def test_missing_cells_defaulted(self, store, reconciler, clock):
        data = build_workbook({
            "Expenses": [
                ["Amount", "Items"],
                [25, "Tea"],
                [None, None],
            ],
            "Budgets": [
                ["Amount", "Period", "Is Active"],
                ["300", "fortnightly", "Yes"],
                ["200", "weekly", "yes"],
                ["100", "yearly", None],
            ],
            "Categories": [
                ["Name"],
                ["Imported"],
            ],
        })

        summary = await reconciler.import_workbook(data, confirm=True)
        assert (summary.expenses, summary.budgets, summary.categories) == (1, 3, 1)

        expense = (await store.expenses.all())[0]
        assert expense.amount == Decimal("25")
        assert expense.date == clock().date()
        assert expense.time == "00:00"
        assert expense.category == FALLBACK_CATEGORY_ID
        assert expense.payment_method == PaymentMethod.UPI
        assert expense.account == Account.OTHER

        budgets = await store.budgets.all()
        assert budgets[0].period == BudgetPeriod.MONTHLY
        assert budgets[0].name == "Budget"
        assert budgets[0].start_date == clock().date()
        assert [b.is_active for b in budgets] == [True, False, False]

        category = (await store.categories.all())[0]
        assert (category.icon, category.color, category.is_default) == ("📁", "gray", False)

    async def test_unparsable_amount_is_zero(self, store, reconciler):
        data = build_workbook({"Expenses": [["Amount", "Time"], ["abc", "7:05 PM"]]})
        await reconciler.import_workbook(data, confirm=True)
        expense = (await store.expenses.all())[0]
        assert expense.amount == 0
        assert expense.time == "19:05"

    async def test_settings_untouched(self, populated, reconciler):
        await reconciler.import_workbook(build_workbook({"Expenses": [["Amount"]]}), confirm=True)
        assert await populated.expenses.count() == 0
        assert (await populated.settings.get()).currency == "$"

    async def test_not_a_workbook(self, populated, reconciler):
        before = await populated.snapshot()
        with pytest.raises(ParseError):
            await reconciler.import_workbook(b"definitely not xlsx", confirm=True)
        assert await populated.snapshot() == before

    async def test_damaged_sheet(self, populated, reconciler):
        """A workbook whose sheet XML is cut short is a parse error."""
        data = build_workbook({
            "Expenses": [["Amount", "Items"]] + [[n, f"item {n}"] for n in range(50)],
            "Budgets": [["Name"], ["Food"]],
            "Categories": [["Name"], ["Imported"]],
        })
        # sheet1 is the default "Sheet"; sheet2 holds the expenses
        damaged = truncate_member(data, "xl/worksheets/sheet2.xml")

        before = await populated.snapshot()
        with pytest.raises(ParseError):
            await reconciler.import_workbook(damaged, confirm=True)
        assert await populated.snapshot() == before


class TestCellTime:
    """Tests for reading a time of day from a workbook cell."""

    @pytest.mark.parametrize("value, expected", [
        ("7:05 PM", "19:05"),
        ("12:30 AM", "00:30"),
        ("12:15 pm", "12:15"),
        ("11:59 p.m.", "23:59"),
        ("09:30", "09:30"),
        ("9:30:45", "09:30"),
        (None, "00:00"),
        ("7:05 XY", "00:00"),
        ("13:00 PM", "00:00"),
        ("0:10 AM", "00:00"),
        ("24:00", "00:00"),
        ("10:75", "00:00"),
        ("noon", "00:00"),
    ])
    def test_text_cells(self, value, expected):
        assert cell_time(value) == expected


class TestAbortedImport:
    """A failure after clearing began is reported, not retried."""

    async def test_failure_mid_import(self, populated, reconciler, monkeypatch):
        data = await reconciler.export_json()
        budgets = populated.storage.collection(Collection.BUDGETS)

        async def failing_add_many(records):
            raise PersistenceError("disk full")

        monkeypatch.setattr(budgets, "add_many", failing_add_many)

        with pytest.raises(ReconciliationAbortedError) as exc_info:
            await reconciler.import_json(data, confirm=True)

        error = exc_info.value
        assert error.source == "json"
        assert error.phase == "budgets"
        assert isinstance(error.cause, PersistenceError)
        # Partial state: expenses were written, categories were not
        assert await populated.expenses.count() == 1
        assert await populated.categories.count() == 0

    async def test_failure_while_clearing(self, populated, reconciler, monkeypatch):
        expenses = populated.storage.collection(Collection.EXPENSES)

        async def failing_clear():
            raise PersistenceError("locked")

        monkeypatch.setattr(expenses, "clear", failing_clear)

        with pytest.raises(ReconciliationAbortedError) as exc_info:
            await reconciler.import_workbook(build_workbook({}), confirm=True)
        assert exc_info.value.phase == "clear"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
