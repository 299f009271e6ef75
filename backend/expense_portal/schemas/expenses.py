from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ExpenseOut(BaseModel):
    id: int
    user_id: int
    user_name: str
    user_email: Optional[str] = None
    category_id: int
    category_name: str
    status_id: int
    status_name: str
    amount_minor: int
    currency: str = "GBP"
    expense_date: date
    description: Optional[str] = None
    receipt_file: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    reviewer_name: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def amount(self) -> float:
        """Major-unit amount for display. ``amount_minor`` is authoritative."""
        return self.amount_minor / 100


class ExpenseCreate(BaseModel):
    user_id: Optional[int] = None
    category_id: int
    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    expense_date: date
    description: Optional[str] = Field(default=None, max_length=1000)
    receipt_file: Optional[str] = Field(default=None, max_length=500)


class ExpenseUpdate(BaseModel):
    category_id: int
    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    expense_date: date
    description: Optional[str] = Field(default=None, max_length=1000)
    receipt_file: Optional[str] = Field(default=None, max_length=500)


class ExpenseCreated(BaseModel):
    expense_id: int = Field(serialization_alias="expenseId")


class ExpenseStats(BaseModel):
    total_expenses: int = 0
    pending_approvals: int = 0
    approved_count: int = 0
    total_approved_amount_minor: int = 0

    @computed_field
    @property
    def total_approved_amount(self) -> float:
        return self.total_approved_amount_minor / 100


class ApiError(BaseModel):
    message: str
    details: Optional[str] = None
