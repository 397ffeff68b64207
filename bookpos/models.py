from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .validation import (
    DeliveryType,
    OrderPaymentMethod,
    OrderStatus,
    PaymentMethod,
    TransactionStatus,
)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values and a trailing Z are treated as UTC."""
    raw = str(value or "").strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class WireModel(BaseModel):
    # Server JSON is camelCase; python code uses snake_case attribute names.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self, **kwargs) -> dict:
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class Product(WireModel):
    id: str
    name: str
    author: str = ""
    category: str = ""
    image: str = ""
    price: float = 0
    cost_price: float = 0
    stock: int = 0
    barcode: str = ""
    video_url: Optional[str] = None
    sort_order: Optional[int] = None


class ProductIn(WireModel):
    name: str
    author: str = ""
    category: str = ""
    image: str = ""
    price: float = Field(0, ge=0)
    cost_price: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    barcode: str = ""
    video_url: Optional[str] = None
    sort_order: Optional[int] = None


class ProductUpdate(WireModel):
    name: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    barcode: Optional[str] = None
    video_url: Optional[str] = None
    sort_order: Optional[int] = None


class Category(WireModel):
    id: str
    name: str
    icon: str = ""
    color: str = ""


class CategoryIn(WireModel):
    name: str
    icon: str = ""
    color: str = ""


class CategoryUpdate(WireModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class LineItem(WireModel):
    """A sold line. `product` is a copy taken at sale time, not a live reference."""

    model_config = ConfigDict(frozen=True)

    product: Product
    quantity: int = Field(ge=1)
    discount: float = Field(0, ge=0)

    @property
    def gross(self) -> float:
        return self.product.price * self.quantity

    @property
    def net(self) -> float:
        return self.gross - self.discount

    @property
    def profit(self) -> float:
        return (self.product.price - self.product.cost_price) * self.quantity - self.discount


class Transaction(WireModel):
    # Frozen: items and totals never change after creation. status/synced
    # changes go through the store and come back as new instances.
    model_config = ConfigDict(frozen=True)

    id: str
    date: str
    items: List[LineItem]
    total_amount: float
    total_profit: float = 0
    payment_method: PaymentMethod
    status: TransactionStatus = "completed"
    synced: bool = False

    def to_server_payload(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "items": [
                {
                    "productId": it.product.id,
                    "productName": it.product.name,
                    "quantity": it.quantity,
                    "price": it.product.price,
                }
                for it in self.items
            ],
            "totalAmount": self.total_amount,
            "paymentMethod": self.payment_method,
        }


class SyncMeta(WireModel):
    key: str
    value: str
    updated_at: str


class Order(WireModel):
    id: str
    customer_name: str
    customer_phone: str
    items: Any = None
    total_amount: float = 0
    status: OrderStatus = "new"
    payment_method: OrderPaymentMethod = "cash"
    delivery_type: DeliveryType = "pickup"
    address: Optional[str] = None
    created_at: Optional[str] = None


class Customer(WireModel):
    phone: str
    name: str
    order_count: int = 0
    total_spent: float = 0
    last_order_at: Optional[str] = None
