import pytest

from flowdesk.schemas.flow import InputNode, TriggerType, ValidationKind
from flowdesk.services.flow_graph import MalformedFlow
from flowdesk.services.flow_templates import load_flow_templates


class TestShippedTemplates:
    def test_all_templates_load(self):
        templates = load_flow_templates()
        assert [t.id for t in templates] == ["welcome", "sales", "support"]

    def test_sales_captures_email(self):
        sales = {t.id: t for t in load_flow_templates()}["sales"]
        inputs = [node for node in sales.flow.nodes if isinstance(node, InputNode)]
        assert sales.flow.trigger.type == TriggerType.KEYWORD
        assert [node.variable_name for node in inputs] == ["nome", "email"]
        assert inputs[1].data.validation == ValidationKind.EMAIL

    def test_templates_are_inactive_drafts(self):
        assert all(not t.flow.is_active for t in load_flow_templates())


class TestCustomFile:
    def test_missing_file(self, tmp_path):
        assert load_flow_templates(tmp_path / "missing.yaml") == []

    def test_invalid_template_rejected(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text(
            "flow_templates:\n"
            "  - id: broken\n"
            "    name: Quebrado\n"
            "    flow:\n"
            "      nodes:\n"
            "        - {id: m, type: message, data: {label: oi}}\n",
            encoding="utf-8",
        )
        with pytest.raises(MalformedFlow):
            load_flow_templates(path)
