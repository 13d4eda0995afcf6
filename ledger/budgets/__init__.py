"""Budget evaluation package."""

from ledger.budgets.evaluator import BudgetEvaluator, current_window, weekly_window

__all__ = ["BudgetEvaluator", "current_window", "weekly_window"]
