"""Persisted bot-flow schema.

The JSON shape (camelCase keys, node ``data`` payloads) is the one written by
the visual flow editor, so any change here is a breaking change for it.
Payloads are parsed into a closed union keyed on the node ``type``; unknown
types and malformed payloads fail validation instead of reaching the
interpreter.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class TriggerType(str, Enum):
    KEYWORD = "keyword"
    INTENT = "intent"  # no NLP behind it, matched like keyword
    ANY = "any"


class ValidationKind(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"
    DOCUMENT_ID = "document-id"


TRIGGER_TYPE_ALIASES = {"keywords": "keyword"}
VALIDATION_ALIASES = {"cpf": "document-id", "document_id": "document-id"}
TERMINAL_NODE_TYPES = {"end", "transfer"}


class FlowModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


def _split_keywords(raw: str) -> list[str]:
    parts = [part.strip().lower() for part in raw.split(",")]
    return [part for part in parts if part and part != "*"]


class Trigger(FlowModel):
    type: TriggerType = TriggerType.ANY
    value: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return TRIGGER_TYPE_ALIASES.get(value, value)
        return value

    @field_validator("value", mode="before")
    @classmethod
    def join_keywords(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ",".join(str(item) for item in value)
        return value

    @property
    def keywords(self) -> list[str]:
        return _split_keywords(self.value)


# === NODE PAYLOADS ===


class MessageData(FlowModel):
    label: str = ""
    delay_ms: Optional[int] = Field(default=None, alias="delayMs", ge=0)
    has_media: bool = Field(default=False, alias="hasMedia")
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")

    @model_validator(mode="before")
    @classmethod
    def convert_editor_delay(cls, data: Any) -> Any:
        # The editor stores the delay in seconds under "delay".
        if isinstance(data, dict) and data.get("delayMs") is None and data.get("delay_ms") is None:
            delay = data.get("delay")
            if delay:
                return {**data, "delayMs": int(float(delay) * 1000)}
        return data


class ConditionData(FlowModel):
    label: str = ""
    options: list[str] = Field(default_factory=list, validation_alias=AliasChoices("options", "conditions"))

    @field_validator("options", mode="before")
    @classmethod
    def stringify_options(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value]
        return value


class InputData(FlowModel):
    label: str = ""
    validation: ValidationKind = ValidationKind.TEXT
    variable: Optional[str] = None
    prompt: Optional[str] = None

    @field_validator("validation", mode="before")
    @classmethod
    def normalize_validation(cls, value: Any) -> Any:
        if value is None or value == "":
            return ValidationKind.TEXT
        if isinstance(value, str):
            value = value.strip().lower()
            return VALIDATION_ALIASES.get(value, value)
        return value


class TransferData(FlowModel):
    label: str = ""
    department: Optional[str] = None

    @field_validator("department", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TriggerData(FlowModel):
    label: str = ""
    trigger_type: str = Field(default="any", alias="triggerType")
    keywords: list[str] = Field(default_factory=list)


class EndData(FlowModel):
    label: str = ""


# === NODES ===


class MessageNode(FlowModel):
    id: str
    type: Literal["message"]
    data: MessageData = Field(default_factory=MessageData)


class ConditionNode(FlowModel):
    id: str
    type: Literal["condition"]
    data: ConditionData = Field(default_factory=ConditionData)


class InputNode(FlowModel):
    id: str
    type: Literal["input"]
    data: InputData = Field(default_factory=InputData)

    @property
    def variable_name(self) -> str:
        return self.data.variable or self.id

    @property
    def prompt(self) -> str:
        return self.data.prompt or self.data.label


class TransferNode(FlowModel):
    id: str
    type: Literal["transfer"]
    data: TransferData = Field(default_factory=TransferData)


class TriggerNode(FlowModel):
    id: str
    type: Literal["trigger"]
    data: TriggerData = Field(default_factory=TriggerData)


class EndNode(FlowModel):
    id: str
    type: Literal["end"]
    data: EndData = Field(default_factory=EndData)


Node = Annotated[
    Union[MessageNode, ConditionNode, InputNode, TransferNode, TriggerNode, EndNode],
    Field(discriminator="type"),
]


class Edge(FlowModel):
    id: str
    source: str
    target: str
    label: Optional[str] = None

    @field_validator("label", mode="before")
    @classmethod
    def normalize_label(cls, value: Any) -> Any:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class FlowDefinition(FlowModel):
    id: str
    name: str = ""
    is_active: bool = Field(default=False, alias="isActive")
    trigger: Trigger = Field(default_factory=Trigger)
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @model_validator(mode="before")
    @classmethod
    def derive_trigger_from_node(cls, data: Any) -> Any:
        """Fill ``trigger`` from the trigger node when the document has none."""
        if not isinstance(data, dict) or data.get("trigger"):
            return data
        for node in data.get("nodes") or []:
            if isinstance(node, dict) and node.get("type") == "trigger":
                node_data = node.get("data") or {}
                keywords = [str(k) for k in node_data.get("keywords") or []]
                trigger_type = node_data.get("triggerType") or ("keyword" if keywords else "any")
                if trigger_type == "any":
                    keywords = []
                return {**data, "trigger": {"type": trigger_type, "value": ",".join(keywords)}}
        return data

    def to_document(self) -> dict:
        """Serialize back to the editor JSON shape."""
        return self.model_dump(mode="json", by_alias=True)
