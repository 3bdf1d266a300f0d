import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import OccurrenceType


class IncomeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    source: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    date: dt.date
    occurrence_type: OccurrenceType
    first_date: Optional[int] = Field(default=None, ge=1, le=31)
    second_date: Optional[int] = Field(default=None, ge=1, le=31)
    category_id: Optional[int] = None


class BillRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    day: Optional[int] = Field(default=None, ge=1, le=31)
    date: Optional[dt.date] = None
    category_id: int
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    is_one_time: bool = False
    is_yearly: bool = False
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    reminder_enabled: bool = False
    reminder_days: int = Field(default=7, ge=0, le=365)


class CategoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(default="#6b7280", max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)


class FieldErrorOut(BaseModel):
    field: str
    message: str


class CredentialsRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
