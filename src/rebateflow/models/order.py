"""Order data consumed from the portal's order service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from rebateflow.core.clock import ensure_utc


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    product_id: str
    category_id: Optional[str] = None
    quantity: int = 1
    total_price: Decimal = Decimal("0")


class Order(BaseModel):
    id: str
    dealer_id: str
    status: str
    created_at: datetime
    items: list[OrderItem] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)
