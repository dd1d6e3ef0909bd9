from flowdesk.models.conversation import Conversation
from flowdesk.models.department import Department
from flowdesk.models.distribution_cursor import DistributionCursor
from flowdesk.models.flow import BotFlow
from flowdesk.models.flow_session import FlowSessionRecord
from flowdesk.models.operator import Operator, department_members

__all__ = [
    "BotFlow",
    "FlowSessionRecord",
    "Department",
    "Operator",
    "department_members",
    "DistributionCursor",
    "Conversation",
]
