from dataclasses import dataclass
from typing import List, Optional

from .errors import NotFound, ValidationFailure
from .models import Product, Transaction


@dataclass
class CartItem:
    product: Product
    quantity: int = 1
    discount: float = 0

    @property
    def line_total(self) -> float:
        return self.product.price * self.quantity


class Cart:
    """In-memory cart for the cashier screen. Nothing here is persisted."""

    def __init__(self):
        self.items: List[CartItem] = []

    def _find(self, product_id: str) -> Optional[CartItem]:
        for it in self.items:
            if it.product.id == product_id:
                return it
        return None

    def _require(self, product_id: str) -> CartItem:
        it = self._find(product_id)
        if it is None:
            raise NotFound("cart item", product_id)
        return it

    def add_product(self, product: Product, quantity: int = 1) -> CartItem:
        quantity = int(quantity)
        if quantity < 1:
            raise ValidationFailure("quantity must be at least 1")
        it = self._find(product.id)
        if it is not None:
            it.quantity += quantity
            return it
        it = CartItem(product=product, quantity=quantity)
        self.items.append(it)
        return it

    def set_quantity(self, product_id: str, quantity: int) -> CartItem:
        it = self._require(product_id)
        it.quantity = max(1, int(quantity))
        # A discount larger than the shrunken line would make the line negative.
        it.discount = min(it.discount, it.line_total)
        return it

    def change_quantity(self, product_id: str, delta: int) -> CartItem:
        it = self._require(product_id)
        return self.set_quantity(product_id, it.quantity + int(delta))

    def remove(self, product_id: str) -> None:
        self.items = [it for it in self.items if it.product.id != product_id]

    def set_discount(self, product_id: str, discount: float) -> CartItem:
        it = self._require(product_id)
        discount = float(discount or 0)
        if discount < 0:
            raise ValidationFailure("discount cannot be negative")
        if discount > it.line_total:
            raise ValidationFailure("discount exceeds line total")
        it.discount = discount
        return it

    @property
    def subtotal(self) -> float:
        return sum(it.line_total for it in self.items)

    @property
    def total_discount(self) -> float:
        return sum(it.discount for it in self.items)

    @property
    def total(self) -> float:
        return self.subtotal - self.total_discount

    @property
    def item_count(self) -> int:
        return sum(it.quantity for it in self.items)

    def clear(self) -> None:
        self.items = []

    def checkout(self, transactions, payment_method: str = "cash") -> Transaction:
        """Record the sale; the cart is emptied only when it was recorded."""
        txn = transactions.record_sale(self.items, total=self.total, payment_method=payment_method)
        self.clear()
        return txn
