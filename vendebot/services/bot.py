from __future__ import annotations

from dataclasses import dataclass

from vendebot.ai.base import LLMClient
from vendebot.ai.dispatcher import ToolDependencies
from vendebot.ai.engine import ConversationEngine
from vendebot.ai.owner_tools import build_owner_dispatcher
from vendebot.ai.prompts import build_owner_system_prompt, build_system_prompt
from vendebot.ai.service import build_llm_client
from vendebot.ai.tools import build_customer_dispatcher
from vendebot.payments.base import PaymentGateway
from vendebot.payments.service import get_payment_gateway
from vendebot.whatsapp.base import WhatsAppProvider
from vendebot.whatsapp.service import get_whatsapp_provider


@dataclass
class BotServices:
    llm: LLMClient
    whatsapp: WhatsAppProvider
    payment_gateway: PaymentGateway
    customer_engine: ConversationEngine
    owner_engine: ConversationEngine


def build_bot_services(
    *,
    llm: LLMClient | None = None,
    whatsapp: WhatsAppProvider | None = None,
    payment_gateway: PaymentGateway | None = None,
) -> BotServices:
    llm = llm or build_llm_client()
    whatsapp = whatsapp or get_whatsapp_provider()
    payment_gateway = payment_gateway or get_payment_gateway()
    dependencies = ToolDependencies(payment_gateway=payment_gateway, whatsapp=whatsapp)
    return BotServices(
        llm=llm,
        whatsapp=whatsapp,
        payment_gateway=payment_gateway,
        customer_engine=ConversationEngine(
            llm,
            build_customer_dispatcher(dependencies),
            prompt_builder=build_system_prompt,
            channel="customer",
        ),
        owner_engine=ConversationEngine(
            llm,
            build_owner_dispatcher(dependencies),
            prompt_builder=build_owner_system_prompt,
            channel="owner",
            grounding_guard=False,
        ),
    )
