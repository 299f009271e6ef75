"""Expense management API with an optional tool-calling chat assistant."""

__version__ = "1.0.0"
