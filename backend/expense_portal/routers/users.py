from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from .. import schemas
from ..dependencies import get_degraded_provider, get_expense_service
from ..services import DegradedModeProvider, ExpenseService
from ._fallback import collection_or_fallback

router = APIRouter(prefix="/api", tags=["Users"])


@router.get("/users", response_model=List[schemas.UserOut])
async def list_users(
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    users, error = await service.get_users()
    return collection_or_fallback(response, users, error, provider, lambda p: p.users())


@router.get("/users/{user_id}", response_model=schemas.UserOut)
async def get_user(user_id: int, service: ExpenseService = Depends(get_expense_service)):
    user, error = await service.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=error or "User not found")
    return user


@router.get("/roles", response_model=List[schemas.RoleOut])
async def list_roles(
    response: Response,
    service: ExpenseService = Depends(get_expense_service),
    provider: Optional[DegradedModeProvider] = Depends(get_degraded_provider),
):
    roles, error = await service.get_roles()
    return collection_or_fallback(response, roles, error, provider, lambda p: p.roles())
