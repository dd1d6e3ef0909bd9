from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from flowdesk.schemas.flow import ValidationKind

HISTORY_LIMIT = 50


class FlowSession(BaseModel):
    """Execution cursor of one conversation inside one flow."""

    conversation_id: str
    flow_id: str
    current_node_id: str
    variables: dict[str, str] = Field(default_factory=dict)
    awaiting_input: bool = False
    history: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    def moved_to(self, node_id: str, now: datetime) -> "FlowSession":
        history = (self.history + [node_id])[-HISTORY_LIMIT:]
        return self.model_copy(
            update={"current_node_id": node_id, "history": history, "updated_at": now},
            deep=True,
        )

    def touched(self, now: datetime) -> "FlowSession":
        return self.model_copy(update={"updated_at": now}, deep=True)


@dataclass(frozen=True)
class CaptureVariable:
    name: str
    value: str
    validated_as: ValidationKind

    def apply(self, session: FlowSession) -> FlowSession:
        variables = {**session.variables, self.name: self.value}
        return session.model_copy(update={"variables": variables, "awaiting_input": False}, deep=True)
