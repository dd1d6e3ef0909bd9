from datetime import timedelta

from conftest import T0, edge, end_node, flow_document, trigger_node

from flowdesk.schemas.flow import TriggerType
from flowdesk.services.flow_graph import parse_flow
from flowdesk.services.trigger_matcher import match, normalize_text, order_candidates


def _flow(flow_id, trigger_type="any", value="", updated_at=T0, is_active=True):
    return parse_flow(
        flow_document(
            flow_id,
            nodes=[trigger_node(), end_node("end-1")],
            edges=[edge("trigger-1", "end-1")],
            trigger={"type": trigger_type, "value": value},
            updated_at=updated_at,
            is_active=is_active,
        )
    )


class TestNormalize:
    def test_trims_and_lowercases(self):
        assert normalize_text("  Quero COMPRAR ") == "quero comprar"

    def test_none(self):
        assert normalize_text(None) == ""


class TestMatch:
    def test_keyword_substring(self):
        flow = _flow("vendas", "keyword", "comprar")
        assert match("Quero COMPRAR agora", [flow]) is flow

    def test_comma_separated_keywords(self):
        flow = _flow("suporte", "keyword", "ajuda, problema")
        assert match("tenho um problema", [flow]) is flow
        assert match("bom dia", [flow]) is None

    def test_keyword_beats_any_even_if_older(self):
        catch_all = _flow("geral", "any", updated_at=T0 + timedelta(days=1))
        specific = _flow("vendas", "keyword", "preço", updated_at=T0)
        assert match("qual o preço?", [catch_all, specific]) is specific

    def test_any_used_when_no_keyword_matches(self):
        catch_all = _flow("geral", "any")
        specific = _flow("vendas", "keyword", "preço")
        assert match("oi", [specific, catch_all]) is catch_all

    def test_inactive_flows_ignored(self):
        flow = _flow("geral", "any", is_active=False)
        assert match("oi", [flow]) is None

    def test_intent_matches_like_keyword(self):
        flow = _flow("cancelar", "intent", "cancelar")
        assert flow.trigger.type == TriggerType.INTENT
        assert match("quero cancelar", [flow]) is flow

    def test_most_recent_wins_between_keyword_flows(self):
        old = _flow("a-old", "keyword", "oi", updated_at=T0)
        new = _flow("b-new", "keyword", "oi", updated_at=T0 + timedelta(hours=1))
        assert match("oi", [old, new]) is new

    def test_one_microsecond_newer_wins(self):
        old = _flow("a-old", "keyword", "oi", updated_at=T0)
        new = _flow("b-new", "keyword", "oi", updated_at=T0 + timedelta(microseconds=1))
        assert match("oi", [old, new]).id == "b-new"
        assert match("oi", [new, old]).id == "b-new"

    def test_tie_broken_by_id(self):
        second = _flow("b", "any")
        first = _flow("a", "any")
        assert match("oi", [second, first]) is first

    def test_no_match(self):
        assert match("oi", []) is None


class TestOrdering:
    def test_naive_timestamp_read_as_utc(self):
        aware = _flow("a", updated_at=T0)
        naive = _flow("b", updated_at=T0.replace(tzinfo=None) + timedelta(microseconds=1))
        assert [flow.id for flow in order_candidates([aware, naive])] == ["b", "a"]

    def test_missing_timestamp_last(self):
        undated = _flow("a", updated_at=None)
        dated = _flow("z", updated_at=T0)
        assert [flow.id for flow in order_candidates([undated, dated])] == ["z", "a"]

    def test_deterministic_regardless_of_input_order(self):
        flows = [_flow("c"), _flow("a"), _flow("b", updated_at=T0 + timedelta(minutes=1))]
        expected = ["b", "a", "c"]
        assert [f.id for f in order_candidates(flows)] == expected
        assert [f.id for f in order_candidates(list(reversed(flows)))] == expected
