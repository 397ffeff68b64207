from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BeforeValidator, StringConstraints


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _to_stripped_str(v):
    if v is None:
        return v
    return str(v).strip()


# The cashier only takes cash or card. Storefront orders also accept the
# online wallets the shop server knows about.
PaymentMethod = Annotated[Literal["cash", "card"], BeforeValidator(_to_lower_str)]
OrderPaymentMethod = Annotated[
    Literal["cash", "card", "online", "click", "payme"],
    BeforeValidator(_to_lower_str),
]

TransactionStatus = Annotated[Literal["completed", "voided", "refunded"], BeforeValidator(_to_lower_str)]
OrderStatus = Annotated[Literal["new", "paid", "shipped", "cancelled"], BeforeValidator(_to_lower_str)]
DeliveryType = Annotated[Literal["pickup", "delivery"], BeforeValidator(_to_lower_str)]

# Phone numbers are free-form (spaces and "+" are common) but must carry digits.
Phone = Annotated[
    str,
    BeforeValidator(_to_stripped_str),
    StringConstraints(min_length=3, max_length=32, pattern=r"^\+?[0-9][0-9 ()-]*$"),
]
