"""
Ledger - Source Package

A local-first personal-finance ledger: expenses grouped under categories,
budgets tracked against recurring windows, and bulk backup/restore.

DESIGN PRINCIPLES:
1. The store owns all persisted state
2. Aggregates are recomputed on demand, never cached
3. Invariants are checked by the core, not by the UI
4. Destructive imports require explicit confirmation
5. Storage backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Team"
