"""Protocol interfaces for the credit guard core."""
from .ledger import Ledger
from .notifier import Notifier

__all__ = ["Ledger", "Notifier"]
