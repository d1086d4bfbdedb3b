from vendebot.models.tenant import Tenant
from vendebot.models.product import Product
from vendebot.models.customer import Customer
from vendebot.models.conversation import Conversation
from vendebot.models.message import Message
from vendebot.models.order import Order
from vendebot.models.change_log import ChangeLog
from vendebot.models.processed_message import ProcessedMessage
from vendebot.models.ai_turn_log import AITurnLog
