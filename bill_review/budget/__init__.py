"""
Budget Module for the Bill Review Pipeline.

Time and pass budgets plus confidence-based early stopping.
"""

from .early_stop import BudgetStatus, EarlyStopChecker, EarlyStopDecision, ProcessingBudget

__all__ = ['BudgetStatus', 'EarlyStopChecker', 'EarlyStopDecision', 'ProcessingBudget']
