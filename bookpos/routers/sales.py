from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..cart import Cart
from ..deps import get_services
from ..models import WireModel
from ..services import PosServices
from ..validation import PaymentMethod

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


class SaleLineIn(WireModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    discount: float = Field(0, ge=0)


class SaleIn(WireModel):
    items: List[SaleLineIn]
    payment_method: PaymentMethod = "cash"
    # Defaults to the sum of the lines after discounts.
    total_amount: Optional[float] = Field(None, ge=0)


@router.get("")
def list_transactions(services: PosServices = Depends(get_services)):
    return {"transactions": [t.to_wire() for t in services.transactions.list_transactions()]}


@router.post("")
def record_sale(data: SaleIn, services: PosServices = Depends(get_services)):
    cart = Cart()
    for line in data.items:
        item = cart.add_product(services.products.get_product(line.product_id), line.quantity)
        if line.discount:
            cart.set_discount(item.product.id, item.discount + line.discount)
    if data.total_amount is None:
        txn = cart.checkout(services.transactions, data.payment_method)
    else:
        txn = services.transactions.record_sale(cart.items, total=data.total_amount, payment_method=data.payment_method)
    return {"transaction": txn.to_wire()}


@router.get("/stats")
def stats(services: PosServices = Depends(get_services)):
    return {"stats": services.transactions.get_statistics()}


@router.get("/sold-items")
def sold_items(services: PosServices = Depends(get_services)):
    return {"items": services.transactions.sold_items_today()}


@router.get("/{txn_id}")
def get_transaction(txn_id: str, services: PosServices = Depends(get_services)):
    return {"transaction": services.transactions.get(txn_id).to_wire()}


@router.post("/{txn_id}/void")
def void_sale(txn_id: str, services: PosServices = Depends(get_services)):
    outcome, txn = services.transactions.void_sale(txn_id)
    return {"outcome": outcome, "transaction": txn.to_wire()}


@router.post("/{txn_id}/refund")
def refund_sale(txn_id: str, services: PosServices = Depends(get_services)):
    outcome, txn = services.transactions.refund_sale(txn_id)
    return {"outcome": outcome, "transaction": txn.to_wire()}
