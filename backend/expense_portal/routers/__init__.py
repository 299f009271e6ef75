from . import chat, expenses, users

__all__ = ["chat", "expenses", "users"]
