from __future__ import annotations

import uuid

from vendebot.payments.base import CheckoutItem, CheckoutLink


class MockPaymentGateway:
    name = "mock"

    def __init__(self) -> None:
        self.requests: list[dict] = []

    async def create_checkout_link(
        self,
        *,
        access_token: str,
        order_id: int,
        items: list[CheckoutItem],
        notification_url: str,
    ) -> CheckoutLink:
        reference_id = f"mock-pref-{uuid.uuid4().hex[:10]}"
        self.requests.append(
            {"order_id": order_id, "items": items, "notification_url": notification_url}
        )
        return CheckoutLink(
            link=f"https://mpago.test/checkout/{reference_id}",
            reference_id=reference_id,
        )
