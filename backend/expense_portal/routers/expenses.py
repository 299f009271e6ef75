from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from .. import schemas
from ..config import Settings
from ..dependencies import get_app_settings, get_degraded_provider, get_expense_service
from ..errors import ExpenseActionFailed
from ..services import DegradedModeProvider, ExpenseService
from ._fallback import ERROR_HEADER, collection_or_fallback, header_safe

router = APIRouter(prefix="/api/expenses", tags=["Expenses"])


def _failure(message: str, error: Optional[str]) -> ExpenseActionFailed:
    return ExpenseActionFailed(message, error)


@router.get("", response_model=List[schemas.ExpenseOut])
async def list_expenses(
    response: Response,
    status_filter: Optional[str] = Query(None, alias="status", description="Draft, Submitted, Approved, Rejected"),
    category: Optional[str] = Query(None, description="Travel, Meals, Supplies, Accommodation, Other"),
    user_id: Optional[int] = Query(None, alias="userId"),
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    """Get all expenses, newest first, with optional filtering."""
    expenses, error = await service.get_expenses(status_filter, category, user_id)
    return collection_or_fallback(response, expenses, error, provider, lambda p: p.expenses())


@router.get("/pending", response_model=List[schemas.ExpenseOut])
async def list_pending_expenses(
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    """Expenses awaiting approval, oldest submission first."""
    expenses, error = await service.get_pending_expenses()
    return collection_or_fallback(response, expenses, error, provider, lambda p: p.pending_expenses())


@router.get("/stats", response_model=schemas.ExpenseStats)
async def get_stats(
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    stats, error = await service.get_stats()
    if error:
        response.headers[ERROR_HEADER] = header_safe(error)
        return provider.stats() if provider else schemas.ExpenseStats()
    return stats


@router.get("/categories", response_model=List[schemas.CategoryOut])
async def list_categories(
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    categories, error = await service.get_categories()
    return collection_or_fallback(response, categories, error, provider, lambda p: p.categories())


@router.get("/statuses", response_model=List[schemas.StatusOut])
async def list_statuses(
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    statuses, error = await service.get_statuses()
    return collection_or_fallback(response, statuses, error, provider, lambda p: p.statuses())


@router.get("/{expense_id}", response_model=schemas.ExpenseOut)
async def get_expense(expense_id: int, service: ExpenseService = Depends(get_expense_service)):
    expense, error = await service.get_expense(expense_id)
    if expense is None:
        raise HTTPException(status_code=404, detail=error or "Expense not found")
    return expense


@router.post("", response_model=schemas.ExpenseCreated, status_code=status.HTTP_201_CREATED)
async def create_expense(
    data: schemas.ExpenseCreate,
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    settings: Settings = Depends(get_app_settings),
):
    """Create a Draft expense. ``user_id`` defaults to the configured submitter."""
    expense_id, error = await service.create_expense(
        user_id=data.user_id if data.user_id is not None else settings.default_submitter_id,
        category_id=data.category_id,
        amount=data.amount,
        expense_date=data.expense_date,
        description=data.description,
        receipt_file=data.receipt_file,
    )
    if expense_id is None:
        raise _failure("Failed to create expense", error)
    response.headers["Location"] = f"{router.prefix}/{expense_id}"
    return schemas.ExpenseCreated(expense_id=expense_id)


@router.put("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_expense(
    expense_id: int,
    data: schemas.ExpenseUpdate,
    service: ExpenseService = Depends(get_expense_service),
):
    ok, error = await service.update_expense(
        expense_id, data.category_id, data.amount, data.expense_date, data.description, data.receipt_file
    )
    if not ok:
        raise _failure("Failed to update expense", error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(expense_id: int, service: ExpenseService = Depends(get_expense_service)):
    ok, error = await service.delete_expense(expense_id)
    if not ok:
        raise _failure("Failed to delete expense", error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{expense_id}/submit", status_code=status.HTTP_204_NO_CONTENT)
async def submit_expense(expense_id: int, service: ExpenseService = Depends(get_expense_service)):
    """Submit a Draft expense for approval."""
    ok, error = await service.submit_expense(expense_id)
    if not ok:
        raise _failure("Failed to submit expense", error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{expense_id}/approve", status_code=status.HTTP_204_NO_CONTENT)
async def approve_expense(
    expense_id: int,
    reviewer_id: Optional[int] = Query(None, alias="reviewerId"),
    service: ExpenseService = Depends(get_expense_service),
    settings: Settings = Depends(get_app_settings),
):
    ok, error = await service.approve_expense(
        expense_id, reviewer_id if reviewer_id is not None else settings.default_reviewer_id
    )
    if not ok:
        raise _failure("Failed to approve expense", error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{expense_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_expense(
    expense_id: int,
    reviewer_id: Optional[int] = Query(None, alias="reviewerId"),
    service: ExpenseService = Depends(get_expense_service),
    settings: Settings = Depends(get_app_settings),
):
    ok, error = await service.reject_expense(
        expense_id, reviewer_id if reviewer_id is not None else settings.default_reviewer_id
    )
    if not ok:
        raise _failure("Failed to reject expense", error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
