"""Business operations over expenses and reference data.

Every coroutine returns a ``(value, error)`` pair and never raises: the error
is ``None`` on success, otherwise a human-readable string. Collection reads
return an empty list on failure; substituting placeholder data is left to the
caller (see ``services.degraded``).
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from .. import schemas
from .money import Amount, to_minor_units
from .record_store import RecordStore, RecordStoreError

logger = logging.getLogger(__name__)

_CREDENTIAL_MARKERS = ("managed identity", "authentication", "password", "token", "login failed")

CREDENTIAL_HINT = (
    "Database credential problem: check DATABASE_URL (or DB_USER/DB_PASS/PG_HOST/DB_NAME) "
    "and that the configured user can read and write the expense tables."
)


def format_store_error(exc: Exception) -> str:
    """Describe an infrastructure failure for the operator."""
    message = str(exc) or exc.__class__.__name__
    if any(marker in message.lower() for marker in _CREDENTIAL_MARKERS):
        message = f"{message}\n\n{CREDENTIAL_HINT}"
    return f"{message} [{exc.__class__.__name__}]"


class ExpenseService:
    def __init__(self, store: RecordStore, currency: str = "GBP"):
        self.store = store
        self.currency = currency

    # ---- expenses -------------------------------------------------------

    async def get_expenses(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Tuple[List[schemas.ExpenseOut], Optional[str]]:
        try:
            return await self.store.get_expenses(status, category, user_id), None
        except Exception as e:
            logger.exception("Error getting expenses")
            return [], format_store_error(e)

    async def get_expense(self, expense_id: int) -> Tuple[Optional[schemas.ExpenseOut], Optional[str]]:
        try:
            expense = await self.store.get_expense_by_id(expense_id)
        except Exception as e:
            logger.exception("Error getting expense %s", expense_id)
            return None, format_store_error(e)
        if expense is None:
            return None, "Expense not found"
        return expense, None

    async def create_expense(
        self,
        user_id: int,
        category_id: int,
        amount: Amount,
        expense_date: date,
        description: Optional[str] = None,
        receipt_file: Optional[str] = None,
    ) -> Tuple[Optional[int], Optional[str]]:
        try:
            amount_minor = to_minor_units(amount)
        except ValueError as e:
            return None, str(e)

        try:
            expense_id = await self.store.create_expense(
                user_id=user_id,
                category_id=category_id,
                amount_minor=amount_minor,
                currency=self.currency,
                expense_date=expense_date,
                description=description,
                receipt_file=receipt_file,
            )
            return expense_id, None
        except RecordStoreError as e:
            logger.warning("Create expense refused: %s", e)
            return None, str(e)
        except Exception as e:
            logger.exception("Error creating expense")
            return None, format_store_error(e)

    async def update_expense(
        self,
        expense_id: int,
        category_id: int,
        amount: Amount,
        expense_date: date,
        description: Optional[str] = None,
        receipt_file: Optional[str] = None,
    ) -> Tuple[bool, Optional[str]]:
        try:
            amount_minor = to_minor_units(amount)
        except ValueError as e:
            return False, str(e)
        return await self._mutate(
            "update", expense_id,
            self.store.update_expense(
                expense_id, category_id, amount_minor, expense_date, description, receipt_file
            ),
        )

    async def delete_expense(self, expense_id: int) -> Tuple[bool, Optional[str]]:
        return await self._mutate("delete", expense_id, self.store.delete_expense(expense_id))

    async def submit_expense(self, expense_id: int) -> Tuple[bool, Optional[str]]:
        return await self._mutate("submit", expense_id, self.store.submit_expense(expense_id))

    async def approve_expense(self, expense_id: int, reviewer_id: int) -> Tuple[bool, Optional[str]]:
        return await self._mutate(
            "approve", expense_id, self.store.approve_expense(expense_id, reviewer_id)
        )

    async def reject_expense(self, expense_id: int, reviewer_id: int) -> Tuple[bool, Optional[str]]:
        return await self._mutate(
            "reject", expense_id, self.store.reject_expense(expense_id, reviewer_id)
        )

    async def _mutate(self, action: str, expense_id: int, operation) -> Tuple[bool, Optional[str]]:
        try:
            await operation
            return True, None
        except RecordStoreError as e:
            logger.warning("Could not %s expense %s: %s", action, expense_id, e)
            return False, str(e)
        except Exception as e:
            logger.exception("Error trying to %s expense %s", action, expense_id)
            return False, format_store_error(e)

    async def get_pending_expenses(self) -> Tuple[List[schemas.ExpenseOut], Optional[str]]:
        try:
            return await self.store.get_pending_expenses(), None
        except Exception as e:
            logger.exception("Error getting pending expenses")
            return [], format_store_error(e)

    async def get_stats(self) -> Tuple[Optional[schemas.ExpenseStats], Optional[str]]:
        try:
            return await self.store.get_expense_stats(), None
        except Exception as e:
            logger.exception("Error getting expense stats")
            return None, format_store_error(e)

    # ---- reference data -------------------------------------------------

    async def get_categories(self) -> Tuple[List[schemas.CategoryOut], Optional[str]]:
        try:
            return await self.store.get_categories(), None
        except Exception as e:
            logger.exception("Error getting categories")
            return [], format_store_error(e)

    async def get_statuses(self) -> Tuple[List[schemas.StatusOut], Optional[str]]:
        try:
            return await self.store.get_statuses(), None
        except Exception as e:
            logger.exception("Error getting statuses")
            return [], format_store_error(e)

    async def get_roles(self) -> Tuple[List[schemas.RoleOut], Optional[str]]:
        try:
            return await self.store.get_roles(), None
        except Exception as e:
            logger.exception("Error getting roles")
            return [], format_store_error(e)

    async def get_users(self) -> Tuple[List[schemas.UserOut], Optional[str]]:
        try:
            return await self.store.get_users(), None
        except Exception as e:
            logger.exception("Error getting users")
            return [], format_store_error(e)

    async def get_user(self, user_id: int) -> Tuple[Optional[schemas.UserOut], Optional[str]]:
        try:
            user = await self.store.get_user_by_id(user_id)
        except Exception as e:
            logger.exception("Error getting user %s", user_id)
            return None, format_store_error(e)
        if user is None:
            return None, "User not found"
        return user, None
