"""Change notification and logging package."""

from ledger.events.logger import ChangeNotifier, Observer, configure_logging

__all__ = ["ChangeNotifier", "Observer", "configure_logging"]
