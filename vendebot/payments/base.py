from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class CheckoutItem:
    item_id: str
    title: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class CheckoutLink:
    link: str
    reference_id: str


class PaymentError(RuntimeError):
    pass


class PaymentGateway(Protocol):
    name: str

    async def create_checkout_link(
        self,
        *,
        access_token: str,
        order_id: int,
        items: list[CheckoutItem],
        notification_url: str,
    ) -> CheckoutLink:
        ...
