"""
Ledger Store

The store service owns all persisted state and is the only way
collaborators create, read, update or delete entities.

It enforces the boundaries the storage backends know nothing about:
- Invariants are checked on every insert and update
- Ids and timestamps are assigned here, never by the caller
- Mutations of the same record apply in issuance order
- Every successful mutation is published as a ChangeEvent

Lifecycle: construct once at process start, ``initialize()`` (open the
backend and seed defaults if empty), pass the instance to collaborators,
``close()`` at shutdown. ``create_store()`` builds one from configuration.
"""

import asyncio
import datetime as dt
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional, Union

import structlog
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_snake
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger.config import Config, get_config
from ledger.events import ChangeNotifier
from ledger.models.entities import (
    DEFAULT_CATEGORIES,
    SETTINGS_ID,
    Account,
    Budget,
    BudgetPeriod,
    Category,
    Expense,
    LedgerModel,
    PaymentMethod,
    Settings,
    SettingsPatch,
    new_id,
)
from ledger.models.events import ChangeEvent, ChangeKind, Collection
from ledger.models.results import ValidationIssue, ValidationResult
from ledger.services.storage import (
    CollectionStorageInterface,
    ConnectionError,
    InMemoryStorage,
    LedgerStorageInterface,
    NotFoundError,
    SQLiteStorage,
)
from ledger.validation import (
    ValidationError,
    build_budget,
    build_category,
    build_expense,
    build_settings_patch,
    require_valid,
)


Clock = Callable[[], dt.datetime]

EntityInput = Union[Mapping[str, Any], BaseModel]

# Fields the store assigns; callers cannot change them through update().
STORE_ASSIGNED_FIELDS = frozenset({"id", "created_at", "updated_at"})


def system_clock() -> dt.datetime:
    """Current local time, timezone-aware."""
    return dt.datetime.now().astimezone()


# =============================================================================
# QUERY FILTERS
# =============================================================================

class ExpenseFilter(BaseModel):
    """Index predicate for listing expenses. Every field is optional."""
    
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    category: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    account: Optional[Account] = None
    
    # Case-insensitive substring over items, where and note (not indexed)
    text: Optional[str] = None
    
    newest_first: bool = Field(
        default=False,
        description="Sort by creation time, newest first"
    )


class BudgetFilter(BaseModel):
    """Index predicate for listing budgets."""
    
    category: Optional[str] = None
    period: Optional[BudgetPeriod] = None
    is_active: Optional[bool] = None


class LedgerSnapshot(BaseModel):
    """Whole-collection contents of the store at one point in time."""
    
    expenses: list[Expense] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)


def normalize_changes(
    entity_name: str,
    model: type[BaseModel],
    fields: EntityInput,
) -> dict[str, Any]:
    """
    Map caller keys (snake or camel) onto ``model`` fields for an update.
    
    Keys for store-assigned fields are dropped.
    
    Raises:
        ValidationError: If a key names no field of ``model``
    """
    if isinstance(fields, BaseModel):
        fields = fields.model_dump(exclude_unset=True)
    
    changes = {}
    unknown = []
    for key, value in fields.items():
        name = to_snake(key)
        if name in STORE_ASSIGNED_FIELDS:
            continue
        if name not in model.model_fields:
            unknown.append(key)
            continue
        changes[name] = value
    
    if unknown:
        raise ValidationError(entity_name, [
            ValidationIssue(
                field=key,
                issue_type="unknown_field",
                message=f"{entity_name} has no field {key!r}",
            )
            for key in unknown
        ])
    return changes


# =============================================================================
# REPOSITORIES
# =============================================================================

class _Repository(ABC):
    """
    CRUD for one entity collection.
    
    Subclasses name the collection, the persisted model and the factory
    that checks invariants.
    """
    
    collection: Collection
    entity_name: str
    model: type[LedgerModel]
    timestamped: bool = False
    
    def __init__(self, store: "LedgerStore"):
        self._store = store
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._logger = structlog.get_logger(f"ledger.store.{self.collection.value}")
    
    @property
    def _storage(self) -> CollectionStorageInterface:
        return self._store.storage.collection(self.collection)
    
    @abstractmethod
    def _build(self, data: EntityInput) -> ValidationResult:
        """Run the entity factory."""
        pass
    
    def _to_entity(self, record: dict[str, Any]):
        return self.model.from_record(record)
    
    def _normalize_changes(self, fields: EntityInput) -> dict[str, Any]:
        return normalize_changes(self.entity_name, self.model, fields)
    
    @asynccontextmanager
    async def _record_lock(self, record_id: str) -> AsyncIterator[None]:
        """
        Hold the lock for one record id.
        
        Waiters queue on the same lock in arrival order. The lock is
        dropped once nobody holds or waits on it.
        """
        lock = self._locks.get(record_id)
        if lock is None:
            lock = self._locks[record_id] = asyncio.Lock()
        self._lock_users[record_id] = self._lock_users.get(record_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[record_id] -= 1
            if self._lock_users[record_id] == 0:
                del self._lock_users[record_id]
                del self._locks[record_id]
    
    async def _publish(
        self,
        kind: ChangeKind,
        record_id: Optional[str] = None,
        record_count: Optional[int] = None,
    ) -> None:
        await self._store.notifier.publish(ChangeEvent(
            timestamp=self._store.now(),
            collection=self.collection,
            kind=kind,
            record_id=record_id,
            record_count=record_count,
        ))
    
    async def insert(self, data: EntityInput):
        """
        Validate and persist a new entity.
        
        Assigns a fresh id and, for timestamped entities,
        ``created_at == updated_at == now``.
        
        Raises:
            ValidationError: If an invariant is violated
            PersistenceError: If the write fails
        """
        draft = require_valid(self.entity_name, self._build(data))
        values = draft.model_dump()
        values["id"] = new_id()
        if self.timestamped:
            now = self._store.now()
            values["created_at"] = now
            values["updated_at"] = now
        
        entity = self.model(**values)
        await self._storage.add(entity.to_record())
        
        self._logger.info(f"{self.entity_name.lower()}_inserted", id=entity.id)
        await self._publish(ChangeKind.INSERTED, record_id=entity.id)
        return entity
    
    async def get(self, record_id: str):
        """Return the entity with this id, or None."""
        record = await self._storage.get(record_id)
        return self._to_entity(record) if record is not None else None
    
    async def update(self, record_id: str, fields: EntityInput):
        """
        Merge ``fields`` into an existing entity.
        
        ``id`` and ``created_at`` are preserved; ``updated_at`` always
        moves forward. Keys for store-assigned fields are ignored.
        
        Raises:
            NotFoundError: If no entity has this id
            ValidationError: If the merged entity violates an invariant
        """
        changes = self._normalize_changes(fields)
        
        async with self._record_lock(record_id):
            current = await self.get(record_id)
            if current is None:
                raise NotFoundError(f"{self.entity_name} not found: {record_id}")
            
            merged = current.model_dump()
            merged.update(changes)
            draft = require_valid(self.entity_name, self._build(merged))
            
            values = draft.model_dump()
            values["id"] = current.id
            if self.timestamped:
                values["created_at"] = current.created_at
                values["updated_at"] = self._store.advance(current.updated_at)
            
            entity = self.model(**values)
            if not await self._storage.put(entity.to_record()):
                raise NotFoundError(f"{self.entity_name} not found: {record_id}")
        
        self._logger.info(
            f"{self.entity_name.lower()}_updated",
            id=record_id,
            fields=sorted(changes),
        )
        await self._publish(ChangeKind.UPDATED, record_id=record_id)
        return entity
    
    async def delete(self, record_id: str, missing_ok: bool = True) -> bool:
        """
        Hard-delete an entity. Nothing cascades.
        
        Args:
            record_id: Id of the entity
            missing_ok: If True (default), deleting an absent id is a no-op
                        returning False; if False it raises NotFoundError
        
        Returns:
            True if a record was removed
        """
        async with self._record_lock(record_id):
            removed = await self._storage.remove(record_id)
        
        if not removed:
            if not missing_ok:
                raise NotFoundError(f"{self.entity_name} not found: {record_id}")
            self._logger.debug(f"{self.entity_name.lower()}_delete_missing", id=record_id)
            return False
        
        self._logger.info(f"{self.entity_name.lower()}_deleted", id=record_id)
        await self._publish(ChangeKind.DELETED, record_id=record_id)
        return True
    
    async def all(self) -> list:
        """Every entity, in insertion order."""
        return [self._to_entity(record) for record in await self._storage.all()]
    
    async def count(self) -> int:
        return await self._storage.count()


class ExpenseRepository(_Repository):
    collection = Collection.EXPENSES
    entity_name = "Expense"
    model = Expense
    timestamped = True
    
    def _build(self, data: EntityInput) -> ValidationResult:
        return build_expense(data)
    
    async def list(self, criteria: Optional[ExpenseFilter] = None) -> list[Expense]:
        """
        Expenses matching an index predicate.
        
        Order is insertion order unless ``newest_first`` is set.
        """
        criteria = criteria or ExpenseFilter()
        
        equals: dict[str, Any] = {}
        if criteria.category is not None:
            equals["category"] = criteria.category
        if criteria.payment_method is not None:
            equals["paymentMethod"] = criteria.payment_method.value
        if criteria.account is not None:
            equals["account"] = criteria.account.value
        
        ranges = {}
        if criteria.date_from is not None or criteria.date_to is not None:
            ranges["date"] = (
                criteria.date_from.isoformat() if criteria.date_from else None,
                criteria.date_to.isoformat() if criteria.date_to else None,
            )
        
        records = await self._storage.query(
            equals=equals,
            ranges=ranges,
            order_by="createdAt" if criteria.newest_first else None,
            descending=criteria.newest_first,
        )
        expenses = [Expense.from_record(record) for record in records]
        
        if criteria.text:
            needle = criteria.text.lower()
            expenses = [
                expense for expense in expenses
                if any(
                    needle in (value or "").lower()
                    for value in (expense.items, expense.where, expense.note)
                )
            ]
        return expenses


class CategoryRepository(_Repository):
    collection = Collection.CATEGORIES
    entity_name = "Category"
    model = Category
    
    def _build(self, data: EntityInput) -> ValidationResult:
        return build_category(data)
    
    async def list(self, is_default: Optional[bool] = None) -> list[Category]:
        equals = {"isDefault": is_default} if is_default is not None else {}
        records = await self._storage.query(equals=equals)
        return [Category.from_record(record) for record in records]


class BudgetRepository(_Repository):
    collection = Collection.BUDGETS
    entity_name = "Budget"
    model = Budget
    timestamped = True
    
    def _build(self, data: EntityInput) -> ValidationResult:
        return build_budget(data)
    
    async def list(self, criteria: Optional[BudgetFilter] = None) -> list[Budget]:
        criteria = criteria or BudgetFilter()
        
        equals: dict[str, Any] = {}
        if criteria.category is not None:
            equals["category"] = criteria.category
        if criteria.period is not None:
            equals["period"] = criteria.period.value
        if criteria.is_active is not None:
            equals["isActive"] = criteria.is_active
        
        records = await self._storage.query(equals=equals)
        return [Budget.from_record(record) for record in records]


class SettingsRepository:
    """
    The settings singleton. It can be read and updated in place,
    never created by callers and never deleted.
    """
    
    collection = Collection.SETTINGS
    
    def __init__(self, store: "LedgerStore"):
        self._store = store
        self._lock = asyncio.Lock()
        self._logger = structlog.get_logger("ledger.store.settings")
    
    @property
    def _storage(self) -> CollectionStorageInterface:
        return self._store.storage.collection(self.collection)
    
    async def get(self) -> Settings:
        """
        Return the singleton.
        
        Raises:
            NotFoundError: If the store was never initialized
        """
        record = await self._storage.get(SETTINGS_ID)
        if record is None:
            raise NotFoundError("Settings have not been initialized")
        return Settings.from_record(record)
    
    async def _write(self, settings: Settings) -> None:
        record = settings.to_record()
        if not await self._storage.put(record):
            await self._storage.add(record)
    
    async def update(self, fields: EntityInput) -> Settings:
        """
        Merge provided fields into the singleton.
        
        Raises:
            ValidationError: If a key names no setting or a value is not allowed
        """
        fields = normalize_changes("Settings", SettingsPatch, fields)
        patch = require_valid("Settings", build_settings_patch(fields))
        changes = patch.model_dump(exclude_none=True)
        
        async with self._lock:
            current = await self.get()
            updated = current.model_copy(update=changes)
            await self._write(updated)
        
        self._logger.info("settings_updated", fields=sorted(changes))
        await self._publish(ChangeKind.UPDATED)
        return updated
    
    async def replace(self, settings: Settings) -> Settings:
        """Overwrite the singleton verbatim, keeping the fixed id."""
        settings = settings.model_copy(update={"id": SETTINGS_ID})
        async with self._lock:
            await self._write(settings)
        self._logger.info("settings_replaced")
        await self._publish(ChangeKind.REPLACED)
        return settings
    
    async def reset(self) -> Settings:
        """Restore the values the store seeds on first initialization."""
        return await self.replace(self._store.default_settings)
    
    async def _publish(self, kind: ChangeKind) -> None:
        await self._store.notifier.publish(ChangeEvent(
            timestamp=self._store.now(),
            collection=self.collection,
            kind=kind,
            record_id=SETTINGS_ID,
        ))


# =============================================================================
# STORE SERVICE
# =============================================================================

class LedgerStore:
    """
    Durable, indexed CRUD for expenses, categories, budgets and settings.
    
    Usage:
        async with create_store() as store:
            expense = await store.expenses.insert({...})
    """
    
    def __init__(
        self,
        storage: LedgerStorageInterface,
        clock: Optional[Clock] = None,
        notifier: Optional[ChangeNotifier] = None,
        default_settings: Optional[Settings] = None,
        connect_attempts: int = 3,
        connect_wait_seconds: float = 0.5,
    ):
        """
        Args:
            storage: Backend holding the four collections
            clock: Source of "now"; local system time if None
            notifier: Change notifier; a fresh one if None
            default_settings: Settings seeded into an empty store
            connect_attempts: Tries at opening the backend
            connect_wait_seconds: Base of the exponential wait between tries
        """
        self.storage = storage
        self.notifier = notifier or ChangeNotifier()
        self.default_settings = default_settings or Settings()
        self._clock = clock or system_clock
        self._connect_attempts = connect_attempts
        self._connect_wait = connect_wait_seconds
        self._initialized = False
        self._logger = structlog.get_logger("ledger.store")
        
        self.expenses = ExpenseRepository(self)
        self.categories = CategoryRepository(self)
        self.budgets = BudgetRepository(self)
        self.settings = SettingsRepository(self)
    
    # -------------------------------------------------------------------------
    # Clock
    # -------------------------------------------------------------------------
    
    def now(self) -> dt.datetime:
        """Current instant in UTC."""
        return self._clock().astimezone(dt.timezone.utc)
    
    def today(self) -> dt.date:
        """Current calendar date in the clock's timezone."""
        return self._clock().date()
    
    def advance(self, previous: dt.datetime) -> dt.datetime:
        """A timestamp that is now, or just after ``previous`` if the clock hasn't moved."""
        now = self.now()
        if now <= previous:
            return previous + dt.timedelta(microseconds=1)
        return now
    
    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    
    @property
    def is_initialized(self) -> bool:
        return self._initialized
    
    async def _open_storage(self) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._connect_attempts),
            wait=wait_exponential(multiplier=self._connect_wait, max=10),
            retry=retry_if_exception_type(ConnectionError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.storage.open()
    
    async def initialize(self) -> None:
        """
        Open the backend and seed defaults.
        
        Seeding is check-before-insert per collection, so running this
        against an already populated store changes nothing.
        """
        await self._open_storage()
        await self._seed()
        self._initialized = True
        self._logger.info("store_initialized")
    
    async def close(self) -> None:
        await self.storage.close()
        self._initialized = False
        self._logger.info("store_closed")
    
    async def __aenter__(self) -> "LedgerStore":
        await self.initialize()
        return self
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
    
    async def _seed(self) -> None:
        categories = self.storage.collection(Collection.CATEGORIES)
        if await categories.count() == 0:
            await self.bulk_insert(
                Collection.CATEGORIES,
                list(DEFAULT_CATEGORIES),
                kind=ChangeKind.SEEDED,
            )
            self._logger.info("categories_seeded", count=len(DEFAULT_CATEGORIES))
        
        settings = self.storage.collection(Collection.SETTINGS)
        if await settings.get(SETTINGS_ID) is None:
            await settings.add(self.default_settings.to_record())
            self._logger.info("settings_seeded")
    
    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------
    
    async def snapshot(self) -> LedgerSnapshot:
        """Read every collection. Each collection is read separately."""
        return LedgerSnapshot(
            expenses=await self.expenses.all(),
            budgets=await self.budgets.all(),
            categories=await self.categories.all(),
            settings=await self.settings.get(),
        )
    
    async def clear_collections(self, *collections: Collection) -> dict[Collection, int]:
        """
        Delete every record of the given collections. Settings are never cleared.
        
        Returns:
            Number of records removed per collection
        """
        removed = {}
        for collection in collections:
            if collection == Collection.SETTINGS:
                raise ValueError("The settings singleton cannot be cleared")
            removed[collection] = await self.storage.collection(collection).clear()
            self._logger.info("collection_cleared", collection=collection.value, removed=removed[collection])
            await self.notifier.publish(ChangeEvent(
                timestamp=self.now(),
                collection=collection,
                kind=ChangeKind.CLEARED,
                record_count=removed[collection],
            ))
        return removed
    
    async def bulk_insert(
        self,
        collection: Collection,
        entities: list[LedgerModel],
        kind: ChangeKind = ChangeKind.REPLACED,
    ) -> int:
        """
        Insert entities verbatim, keeping their ids and timestamps.
        
        No invariants are checked; callers pass trusted or already
        defaulted records.
        """
        if collection == Collection.SETTINGS:
            raise ValueError("Use settings.replace() for the settings singleton")
        written = await self.storage.collection(collection).add_many(
            [entity.to_record() for entity in entities]
        )
        await self.notifier.publish(ChangeEvent(
            timestamp=self.now(),
            collection=collection,
            kind=kind,
            record_count=written,
        ))
        return written
    
    async def clear_all(self) -> None:
        """Wipe expenses, budgets and categories, and reset settings to defaults."""
        await self.clear_collections(
            Collection.EXPENSES,
            Collection.BUDGETS,
            Collection.CATEGORIES,
        )
        await self.settings.reset()


def create_store(
    config: Optional[Config] = None,
    clock: Optional[Clock] = None,
) -> LedgerStore:
    """
    Factory function to build a store from configuration.
    
    The store is not initialized; use ``await store.initialize()`` or
    ``async with create_store() as store``.
    """
    config = config or get_config()
    storage_settings = config.storage
    app_settings = config.app
    
    if storage_settings.backend == "memory":
        storage: LedgerStorageInterface = InMemoryStorage()
    else:
        storage = SQLiteStorage(
            storage_settings.database_path,
            busy_timeout_seconds=storage_settings.busy_timeout_seconds,
        )
    
    return LedgerStore(
        storage,
        clock=clock,
        default_settings=Settings(
            currency=app_settings.default_currency,
            language=app_settings.default_language,
        ),
        connect_attempts=storage_settings.connect_attempts,
    )
