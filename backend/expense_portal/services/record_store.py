"""Named, parameterized operations over the relational store.

Each public coroutine plays the part of one stored procedure: it opens its
own session, performs a single logical read or write, and releases the
session before returning (or raising). Callers never see a session.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from .. import models, schemas
from ..models import utcnow

logger = logging.getLogger(__name__)

DRAFT = "Draft"
SUBMITTED = "Submitted"
APPROVED = "Approved"
REJECTED = "Rejected"

# status name -> status it must currently hold
REQUIRED_PRIOR_STATUS = {
    SUBMITTED: DRAFT,
    APPROVED: SUBMITTED,
    REJECTED: SUBMITTED,
}


class RecordStoreError(Exception):
    """The backing store refused an operation."""


class RecordNotFound(RecordStoreError):
    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStatusTransition(RecordStoreError):
    def __init__(self, expense_id: int, current: str, target: str):
        self.expense_id = expense_id
        self.current = current
        self.target = target
        required = REQUIRED_PRIOR_STATUS.get(target, "?")
        super().__init__(
            f"Expense {expense_id} is {current}; only {required} expenses can be moved to {target}"
        )


def _expense_select():
    owner = aliased(models.User)
    reviewer = aliased(models.User)
    return (
        select(
            models.Expense.id,
            models.Expense.user_id,
            owner.name.label("user_name"),
            owner.email.label("user_email"),
            models.Expense.category_id,
            models.ExpenseCategory.name.label("category_name"),
            models.Expense.status_id,
            models.ExpenseStatus.name.label("status_name"),
            models.Expense.amount_minor,
            models.Expense.currency,
            models.Expense.expense_date,
            models.Expense.description,
            models.Expense.receipt_file,
            models.Expense.submitted_at,
            models.Expense.reviewed_by,
            reviewer.name.label("reviewer_name"),
            models.Expense.reviewed_at,
            models.Expense.created_at,
        )
        .join(owner, models.Expense.user_id == owner.id)
        .join(models.ExpenseCategory, models.Expense.category_id == models.ExpenseCategory.id)
        .join(models.ExpenseStatus, models.Expense.status_id == models.ExpenseStatus.id)
        .outerjoin(reviewer, models.Expense.reviewed_by == reviewer.id)
    )


def _user_select():
    manager = aliased(models.User)
    return (
        select(
            models.User.id,
            models.User.name,
            models.User.email,
            models.User.role_id,
            models.Role.name.label("role_name"),
            models.User.manager_id,
            manager.name.label("manager_name"),
            models.User.is_active,
            models.User.created_at,
        )
        .join(models.Role, models.User.role_id == models.Role.id)
        .outerjoin(manager, models.User.manager_id == manager.id)
    )


async def _status_id(session: AsyncSession, name: str) -> int:
    status_id = await session.scalar(
        select(models.ExpenseStatus.id).where(models.ExpenseStatus.name == name)
    )
    if status_id is None:
        raise RecordStoreError(f"{name} status not found in expense_status table")
    return status_id


async def _require(session: AsyncSession, model, entity: str, entity_id: int) -> None:
    found = await session.scalar(select(model.id).where(model.id == entity_id))
    if found is None:
        raise RecordNotFound(entity, entity_id)


class RecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ---- expenses: reads ------------------------------------------------

    async def get_expenses(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> List[schemas.ExpenseOut]:
        stmt = _expense_select()
        if status:
            stmt = stmt.where(models.ExpenseStatus.name == status)
        if category:
            stmt = stmt.where(models.ExpenseCategory.name == category)
        if user_id is not None:
            stmt = stmt.where(models.Expense.user_id == user_id)
        stmt = stmt.order_by(models.Expense.created_at.desc(), models.Expense.id.desc())

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [schemas.ExpenseOut.model_validate(row) for row in rows]

    async def get_expense_by_id(self, expense_id: int) -> Optional[schemas.ExpenseOut]:
        stmt = _expense_select().where(models.Expense.id == expense_id)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).mappings().one_or_none()
        return schemas.ExpenseOut.model_validate(row) if row else None

    async def get_pending_expenses(self) -> List[schemas.ExpenseOut]:
        stmt = (
            _expense_select()
            .where(models.ExpenseStatus.name == SUBMITTED)
            .order_by(models.Expense.submitted_at.asc(), models.Expense.id.asc())
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [schemas.ExpenseOut.model_validate(row) for row in rows]

    async def get_expense_stats(self) -> schemas.ExpenseStats:
        def by_status(name: str):
            return (
                select(models.Expense.id)
                .join(models.ExpenseStatus, models.Expense.status_id == models.ExpenseStatus.id)
                .where(models.ExpenseStatus.name == name)
            )

        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(models.Expense))
            pending = await session.scalar(
                select(func.count()).select_from(by_status(SUBMITTED).subquery())
            )
            approved_count = await session.scalar(
                select(func.count()).select_from(by_status(APPROVED).subquery())
            )
            approved_minor = await session.scalar(
                select(func.coalesce(func.sum(models.Expense.amount_minor), 0))
                .join(models.ExpenseStatus, models.Expense.status_id == models.ExpenseStatus.id)
                .where(models.ExpenseStatus.name == APPROVED)
            )

        return schemas.ExpenseStats(
            total_expenses=total or 0,
            pending_approvals=pending or 0,
            approved_count=approved_count or 0,
            total_approved_amount_minor=int(approved_minor or 0),
        )

    # ---- expenses: writes -----------------------------------------------

    async def create_expense(
        self,
        user_id: int,
        category_id: int,
        amount_minor: int,
        currency: str,
        expense_date: date,
        description: Optional[str] = None,
        receipt_file: Optional[str] = None,
    ) -> int:
        if amount_minor < 0:
            raise RecordStoreError("amount_minor must be a non-negative integer")

        async with self._session_factory() as session:
            await _require(session, models.User, "User", user_id)
            await _require(session, models.ExpenseCategory, "Category", category_id)
            draft_id = await _status_id(session, DRAFT)

            expense = models.Expense(
                user_id=user_id,
                category_id=category_id,
                status_id=draft_id,
                amount_minor=amount_minor,
                currency=currency,
                expense_date=expense_date,
                description=description,
                receipt_file=receipt_file,
            )
            session.add(expense)
            await session.commit()
            logger.info("Created expense %s for user %s (%s minor units)", expense.id, user_id, amount_minor)
            return expense.id

    async def update_expense(
        self,
        expense_id: int,
        category_id: int,
        amount_minor: int,
        expense_date: date,
        description: Optional[str] = None,
        receipt_file: Optional[str] = None,
    ) -> None:
        if amount_minor < 0:
            raise RecordStoreError("amount_minor must be a non-negative integer")

        async with self._session_factory() as session:
            await _require(session, models.Expense, "Expense", expense_id)
            await _require(session, models.ExpenseCategory, "Category", category_id)
            values = {
                "category_id": category_id,
                "amount_minor": amount_minor,
                "expense_date": expense_date,
                "description": description,
            }
            # a missing receipt keeps the stored one
            if receipt_file is not None:
                values["receipt_file"] = receipt_file
            await session.execute(
                update(models.Expense).where(models.Expense.id == expense_id).values(**values)
            )
            await session.commit()

    async def delete_expense(self, expense_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(models.Expense).where(models.Expense.id == expense_id)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise RecordNotFound("Expense", expense_id)
            await session.commit()

    async def submit_expense(self, expense_id: int) -> None:
        await self._transition(expense_id, SUBMITTED, {"submitted_at": utcnow()})

    async def approve_expense(self, expense_id: int, reviewer_id: int) -> None:
        await self._transition(
            expense_id, APPROVED, {"reviewed_by": reviewer_id, "reviewed_at": utcnow()}, reviewer_id
        )

    async def reject_expense(self, expense_id: int, reviewer_id: int) -> None:
        await self._transition(
            expense_id, REJECTED, {"reviewed_by": reviewer_id, "reviewed_at": utcnow()}, reviewer_id
        )

    async def _transition(
        self,
        expense_id: int,
        target: str,
        values: dict,
        reviewer_id: Optional[int] = None,
    ) -> None:
        """Move an expense to ``target`` only if it holds the required prior status.

        The guard is part of the UPDATE itself, so two concurrent reviewers
        cannot both succeed.
        """
        async with self._session_factory() as session:
            if reviewer_id is not None:
                await _require(session, models.User, "Reviewer", reviewer_id)
            target_id = await _status_id(session, target)
            prior_id = await _status_id(session, REQUIRED_PRIOR_STATUS[target])

            result = await session.execute(
                update(models.Expense)
                .where(models.Expense.id == expense_id)
                .where(models.Expense.status_id == prior_id)
                .values(status_id=target_id, **values)
            )
            if result.rowcount == 1:
                await session.commit()
                logger.info("Expense %s moved to %s", expense_id, target)
                return

            await session.rollback()
            current = await session.scalar(
                select(models.ExpenseStatus.name)
                .join(models.Expense, models.Expense.status_id == models.ExpenseStatus.id)
                .where(models.Expense.id == expense_id)
            )
        if current is None:
            raise RecordNotFound("Expense", expense_id)
        raise InvalidStatusTransition(expense_id, current, target)

    # ---- reference data -------------------------------------------------

    async def get_categories(self) -> List[schemas.CategoryOut]:
        stmt = (
            select(models.ExpenseCategory)
            .where(models.ExpenseCategory.is_active.is_(True))
            .order_by(models.ExpenseCategory.name)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [schemas.CategoryOut.model_validate(row) for row in rows]

    async def get_statuses(self) -> List[schemas.StatusOut]:
        stmt = select(models.ExpenseStatus).order_by(models.ExpenseStatus.id)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [schemas.StatusOut.model_validate(row) for row in rows]

    async def get_roles(self) -> List[schemas.RoleOut]:
        stmt = select(models.Role).order_by(models.Role.name)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [schemas.RoleOut.model_validate(row) for row in rows]

    async def get_users(self) -> List[schemas.UserOut]:
        stmt = _user_select().where(models.User.is_active.is_(True)).order_by(models.User.name)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [schemas.UserOut.model_validate(row) for row in rows]

    async def get_user_by_id(self, user_id: int) -> Optional[schemas.UserOut]:
        stmt = _user_select().where(models.User.id == user_id)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).mappings().one_or_none()
        return schemas.UserOut.model_validate(row) if row else None
