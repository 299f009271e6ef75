from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CategoryOut(BaseModel):
    id: int
    name: str
    is_active: bool = True
    model_config = ConfigDict(from_attributes=True)


class StatusOut(BaseModel):
    id: int
    name: str
    model_config = ConfigDict(from_attributes=True)


class RoleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role_id: int
    role_name: str
    manager_id: Optional[int] = None
    manager_name: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
