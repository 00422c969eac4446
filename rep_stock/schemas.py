from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from rep_stock.models import UserRole


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes; all stored values are UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SpecialtyIn(ApiModel):
    name: str
    description: Optional[str] = None


class SpecialtyUpdate(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None


class SpecialtyOut(ApiModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[UtcDatetime] = None


class CategoryIn(ApiModel):
    name: str
    color: str


class CategoryOut(ApiModel):
    id: int
    name: str
    color: str


class StockItemOut(ApiModel):
    id: int
    name: str
    category_id: int
    specialty_id: Optional[int] = None
    quantity: int
    price: int
    expiry: Optional[UtcDatetime] = None
    unique_number: Optional[str] = None
    image_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    created_by: int

    @computed_field(alias='priceDisplay')
    @property
    def price_display(self) -> str:
        return str((Decimal(self.price) / 100).quantize(Decimal('0.01')))


class AllocationOut(ApiModel):
    id: int
    user_id: int
    stock_item_id: int
    quantity: int
    allocated_at: Optional[UtcDatetime] = None
    allocated_by: int


class MovementIn(ApiModel):
    stock_item_id: int
    from_user_id: Optional[int] = None
    to_user_id: Optional[int] = None
    quantity: int
    notes: Optional[str] = None

    @field_validator('from_user_id', mode='before')
    @classmethod
    def _blank_source_is_central(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator('notes')
    @classmethod
    def _strip_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class MovementOut(ApiModel):
    id: int
    stock_item_id: int
    from_user_id: Optional[int] = None
    to_user_id: int
    quantity: int
    notes: Optional[str] = None
    moved_at: UtcDatetime
    moved_by: int


class RegisterIn(ApiModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    name: str = Field(min_length=1)
    region: Optional[str] = None


class LoginIn(ApiModel):
    username: str
    password: str


class UserUpdate(ApiModel):
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[UserRole] = None
    region: Optional[str] = None
    avatar: Optional[str] = None
    specialty_id: Optional[int] = None


class UserOut(ApiModel):
    id: int
    username: str
    name: str
    role: UserRole
    region: Optional[str] = None
    avatar: Optional[str] = None
    specialty_id: Optional[int] = None
    created_at: Optional[UtcDatetime] = None
