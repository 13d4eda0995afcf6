"""
Change Notifier

Every successful store mutation produces a ``ChangeEvent``. The notifier:
- Logs it locally through structlog
- Fans it out to registered observers (sync or async callables)
- Never lets an observer failure break the mutation that triggered it

Observers get a coarse "collection changed" signal and re-query the store
themselves; the store keeps no derived state on their behalf.
"""

import inspect
import logging
from collections.abc import Awaitable
from typing import Callable, Optional, Union

import structlog

from ledger.models.events import ChangeEvent, Collection


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output to stderr at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


Observer = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """
    Registry of change observers.
    
    Observers can subscribe to every collection or to a single one.
    """
    
    def __init__(self):
        self._observers: list[tuple[Optional[Collection], Observer]] = []
        self._logger = structlog.get_logger("ledger.changes")
    
    def subscribe(
        self,
        observer: Observer,
        collection: Optional[Collection] = None,
    ) -> Callable[[], None]:
        """
        Register an observer.
        
        Args:
            observer: Called with each matching ChangeEvent
            collection: Only notify for this collection; all if None
            
        Returns:
            A function that unsubscribes the observer
        """
        entry = (collection, observer)
        self._observers.append(entry)
        
        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)
        
        return unsubscribe
    
    @property
    def observer_count(self) -> int:
        return len(self._observers)
    
    async def publish(self, event: ChangeEvent) -> int:
        """
        Log an event and deliver it to matching observers.
        
        Returns the number of observers that handled it without error.
        """
        self._logger.info("collection_changed", **event.to_log_dict())
        
        delivered = 0
        for collection, observer in list(self._observers):
            if collection is not None and collection != event.collection:
                continue
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                self._logger.error(
                    "observer_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                    collection=event.collection.value,
                )
        return delivered
