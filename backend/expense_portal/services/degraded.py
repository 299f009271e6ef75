"""Placeholder data served when the database cannot be reached.

This is a presentation fallback, not a data source: the HTTP layer decides
whether to use it, and always reports the underlying error alongside it.
"""

from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from .. import schemas
from ..database import INITIAL_CATEGORIES, INITIAL_ROLES, INITIAL_STATUSES, INITIAL_USERS

_PLACEHOLDER_EXPENSES = [
    # (id, category_id, status_id, amount_minor, days_ago, description)
    (1, 1, 3, 12000, 5, "Train tickets to London"),
    (2, 2, 2, 6900, 3, "Client lunch meeting"),
    (3, 3, 3, 9950, 10, "Office supplies"),
    (4, 1, 2, 1920, 1, "Taxi fare"),
]


class DegradedModeProvider:
    def __init__(self, currency: str = "GBP", today: Optional[Callable[[], date]] = None):
        self.currency = currency
        self._today = today or date.today

    def expenses(self) -> List[schemas.ExpenseOut]:
        today = self._today()
        categories = {c["id"]: c["name"] for c in INITIAL_CATEGORIES}
        statuses = {s["id"]: s["name"] for s in INITIAL_STATUSES}
        owner = INITIAL_USERS[0]
        return [
            schemas.ExpenseOut(
                id=expense_id,
                user_id=owner["id"],
                user_name=owner["name"],
                user_email=owner["email"],
                category_id=category_id,
                category_name=categories[category_id],
                status_id=status_id,
                status_name=statuses[status_id],
                amount_minor=amount_minor,
                currency=self.currency,
                expense_date=today - timedelta(days=days_ago),
                description=description,
                created_at=datetime.combine(today - timedelta(days=days_ago), datetime.min.time()),
            )
            for expense_id, category_id, status_id, amount_minor, days_ago, description in _PLACEHOLDER_EXPENSES
        ]

    def pending_expenses(self) -> List[schemas.ExpenseOut]:
        return [e for e in self.expenses() if e.status_name == "Submitted"]

    def stats(self) -> schemas.ExpenseStats:
        return schemas.ExpenseStats(
            total_expenses=10,
            pending_approvals=2,
            approved_count=6,
            total_approved_amount_minor=51924,
        )

    def categories(self) -> List[schemas.CategoryOut]:
        return sorted(
            (schemas.CategoryOut(id=c["id"], name=c["name"], is_active=True) for c in INITIAL_CATEGORIES),
            key=lambda c: c.name,
        )

    def statuses(self) -> List[schemas.StatusOut]:
        return [schemas.StatusOut(**s) for s in INITIAL_STATUSES]

    def roles(self) -> List[schemas.RoleOut]:
        return [schemas.RoleOut(**r) for r in INITIAL_ROLES]

    def users(self) -> List[schemas.UserOut]:
        roles = {r["id"]: r["name"] for r in INITIAL_ROLES}
        return [
            schemas.UserOut(
                id=u["id"],
                name=u["name"],
                email=u["email"],
                role_id=u["role_id"],
                role_name=roles[u["role_id"]],
                is_active=True,
            )
            for u in INITIAL_USERS
        ]
