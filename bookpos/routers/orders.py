from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..cart import Cart
from ..deps import get_services, require_admin
from ..models import WireModel
from ..services import PosServices
from ..validation import DeliveryType, OrderPaymentMethod, OrderStatus, Phone

router = APIRouter(prefix="/api", tags=["orders"])


class OrderLineIn(WireModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class OrderIn(WireModel):
    customer_name: str
    customer_phone: Phone
    items: List[OrderLineIn]
    payment_method: OrderPaymentMethod = "cash"
    delivery_type: DeliveryType = "pickup"
    address: Optional[str] = None


class OrderStatusIn(WireModel):
    status: OrderStatus


@router.get("/orders")
def list_orders(services: PosServices = Depends(get_services)):
    return {"orders": [o.to_wire() for o in services.orders.list_orders()]}


@router.post("/orders")
def place_order(data: OrderIn, services: PosServices = Depends(get_services)):
    cart = Cart()
    for line in data.items:
        cart.add_product(services.products.get_product(line.product_id), line.quantity)
    order = services.orders.place_order(
        cart.items,
        data.customer_name,
        data.customer_phone,
        payment_method=data.payment_method,
        delivery_type=data.delivery_type,
        address=data.address,
    )
    return {"order": order.to_wire()}


@router.get("/orders/stats")
def order_stats(services: PosServices = Depends(get_services)):
    return {"stats": services.orders.stats()}


@router.patch("/orders/{order_id}/status", dependencies=[Depends(require_admin)])
def update_order_status(order_id: str, data: OrderStatusIn, services: PosServices = Depends(get_services)):
    return {"order": services.orders.update_status(order_id, data.status).to_wire()}


@router.get("/customers")
def list_customers(services: PosServices = Depends(get_services)):
    return {"customers": [c.to_wire() for c in services.orders.customers()]}
