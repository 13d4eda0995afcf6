"""
Application Wiring

Builds the store and the services that read from it, so collaborators
receive explicit instances instead of importing module-level state.
"""

from dataclasses import dataclass
from typing import Optional

from ledger.budgets import BudgetEvaluator
from ledger.config import Config, get_config
from ledger.events import configure_logging
from ledger.queries import AggregationEngine
from ledger.reconcile import Reconciler
from ledger.store import Clock, LedgerStore, create_store


@dataclass
class LedgerServices:
    """Everything a UI layer needs, sharing one store."""
    
    store: LedgerStore
    aggregation: AggregationEngine
    budgets: BudgetEvaluator
    reconciler: Reconciler
    
    async def start(self) -> "LedgerServices":
        await self.store.initialize()
        return self
    
    async def stop(self) -> None:
        await self.store.close()
    
    async def __aenter__(self) -> "LedgerServices":
        return await self.start()
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def build_services(store: LedgerStore) -> LedgerServices:
    """Wire the read-side services around an existing store."""
    aggregation = AggregationEngine(store)
    return LedgerServices(
        store=store,
        aggregation=aggregation,
        budgets=BudgetEvaluator(store, aggregation),
        reconciler=Reconciler(store),
    )


def create_app_components(
    config: Optional[Config] = None,
    clock: Optional[Clock] = None,
) -> LedgerServices:
    """
    Factory function to create all application components from configuration.
    
    Call ``await services.start()`` (or use ``async with``) before use.
    """
    config = config or get_config()
    configure_logging(config.app.log_level)
    return build_services(create_store(config, clock=clock))
