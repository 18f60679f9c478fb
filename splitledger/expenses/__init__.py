"""Expense write path package."""

from splitledger.expenses.recorder import ExpenseRecorder

__all__ = ["ExpenseRecorder"]
