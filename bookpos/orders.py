from typing import Iterable, List, Optional

from pydantic import ValidationError

from .errors import NetworkFailure, ValidationFailure
from .logs import json_log
from .models import Customer, Order
from .remote import RemoteClient

ORDER_STATUSES = {"new", "paid", "shipped", "cancelled"}
ORDER_PAYMENT_METHODS = {"cash", "card", "online", "click", "payme"}


def _order(raw: dict) -> Order:
    try:
        return Order.model_validate(raw)
    except ValidationError as ex:
        raise NetworkFailure(f"invalid order payload: {ex.error_count()} errors") from ex


def _order_items(cart_items: Iterable) -> List[dict]:
    items = []
    for it in cart_items or []:
        if isinstance(it, dict):
            items.append(it)
            continue
        items.append(
            {
                "productId": it.product.id,
                "productName": it.product.name,
                "quantity": it.quantity,
                "price": it.product.price,
            }
        )
    return items


class OrderManager:
    """
    Storefront orders. These live on the shop server only, so every call needs
    connectivity and a NetworkFailure reaches the caller.
    """

    def __init__(self, remote: RemoteClient):
        self.remote = remote

    def list_orders(self) -> List[Order]:
        return [_order(r) for r in self.remote.list_orders()]

    def place_order(
        self,
        cart_items: Iterable,
        customer_name: str,
        customer_phone: str,
        payment_method: str = "cash",
        delivery_type: str = "pickup",
        address: Optional[str] = None,
    ) -> Order:
        name = (customer_name or "").strip()
        phone = (customer_phone or "").strip()
        if not name:
            raise ValidationFailure("customer name is required")
        if not phone:
            raise ValidationFailure("customer phone is required")
        method = (payment_method or "").strip().lower()
        if method not in ORDER_PAYMENT_METHODS:
            raise ValidationFailure(f"unsupported payment method: {payment_method}")
        delivery = (delivery_type or "").strip().lower()
        if delivery not in {"pickup", "delivery"}:
            raise ValidationFailure(f"unsupported delivery type: {delivery_type}")
        addr = (address or "").strip() or None
        if delivery == "delivery" and not addr:
            raise ValidationFailure("address is required for delivery")

        items = _order_items(cart_items)
        if not items:
            raise ValidationFailure("empty order")
        total = sum(float(it.get("price") or 0) * int(it.get("quantity") or 0) for it in items)
        payload = {
            "customerName": name,
            "customerPhone": phone,
            "items": items,
            "totalAmount": round(total, 2),
            "paymentMethod": method,
            "deliveryType": delivery,
        }
        if addr:
            payload["address"] = addr
        order = _order(self.remote.create_order(payload))
        json_log("info", "order.placed", order_id=order.id, total=order.total_amount, delivery_type=delivery)
        return order

    def update_status(self, order_id: str, status: str) -> Order:
        status = (status or "").strip().lower()
        if status not in ORDER_STATUSES:
            raise ValidationFailure(f"invalid order status: {status}")
        order = _order(self.remote.update_order_status(order_id, status))
        json_log("info", "order.status", order_id=order_id, status=status)
        return order

    def stats(self, orders: Optional[List[Order]] = None) -> dict:
        orders = self.list_orders() if orders is None else orders
        return {
            "total_revenue": round(sum(o.total_amount for o in orders), 2),
            "total_orders": len(orders),
            "active_customers": len({o.customer_phone for o in orders}),
        }

    def customers(self, orders: Optional[List[Order]] = None) -> List[Customer]:
        orders = self.list_orders() if orders is None else orders
        by_phone = {}
        for o in orders:
            c = by_phone.get(o.customer_phone)
            if c is None:
                c = by_phone[o.customer_phone] = Customer(phone=o.customer_phone, name=o.customer_name)
            c.order_count += 1
            c.total_spent = round(c.total_spent + o.total_amount, 2)
            if o.created_at and (c.last_order_at is None or o.created_at > c.last_order_at):
                c.last_order_at = o.created_at
                # Latest order carries the most recent spelling of the name.
                c.name = o.customer_name
        return sorted(by_phone.values(), key=lambda c: (-c.total_spent, c.phone))
