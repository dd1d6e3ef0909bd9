"""Starter flows shipped with the service, loaded from YAML."""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from flowdesk.schemas.flow import FlowDefinition
from flowdesk.services.flow_graph import FlowGraph, parse_flow

_TEMPLATES_PATH = Path(__file__).resolve().parents[1] / "templates" / "flow_templates.yaml"


@dataclass(frozen=True)
class FlowTemplate:
    id: str
    name: str
    description: str
    flow: FlowDefinition


@lru_cache(maxsize=4)
def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return data if isinstance(data, dict) else {}


def _build(item: dict[str, Any]) -> FlowTemplate:
    raw_flow = {"id": f"template-{item['id']}", "name": item.get("name", ""), **(item.get("flow") or {})}
    definition = parse_flow(raw_flow)
    FlowGraph(definition)  # templates must be runnable as shipped
    return FlowTemplate(
        id=item["id"],
        name=item.get("name", ""),
        description=item.get("description", ""),
        flow=definition,
    )


def load_flow_templates(path: Path = _TEMPLATES_PATH) -> list[FlowTemplate]:
    items = _load_yaml(path).get("flow_templates") or []
    return [_build(item) for item in items if isinstance(item, dict) and item.get("id")]
