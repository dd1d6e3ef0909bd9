import threading
from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
from conftest import (
    T0,
    FakeConversationRepository,
    edge,
    end_node,
    flow_document,
    input_node,
    message_node,
    scenario_document,
    trigger_node,
)

from flowdesk.schemas.events import Outcome, QueueConversation, SendMessage, TransferConversation
from flowdesk.services.bot_service import BotService
from flowdesk.services.conversation_lock import ConversationLockManager
from flowdesk.services.distribution import Operator
from flowdesk.services.flow_graph import MalformedFlow
from flowdesk.services.state_machine import ConversationStatus

CONVERSATION = "5511988887777"


class RecordingDelivery:
    def __init__(self):
        self.sent = []

    def send(self, conversation_id, action):
        self.sent.append((conversation_id, action))


@pytest.fixture
def conversations():
    return FakeConversationRepository()


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def bot(interpreter, conversations, delivery, test_settings, flows):
    flows.add(scenario_document())
    return BotService(
        interpreter=interpreter,
        conversations=conversations,
        delivery=delivery,
        locks=ConversationLockManager(),
        commit=Mock(),
        config=test_settings,
    )


def _delivered_texts(delivery):
    return [action.text for _, action in delivery.sent if isinstance(action, SendMessage)]


class TestProcessInbound:
    def test_runs_flow_and_delivers(self, bot, delivery, conversations):
        turn = bot.process_inbound(CONVERSATION, "oi")

        assert turn.status == ConversationStatus.BOT
        assert turn.outcome == Outcome.AWAITING_CHOICE
        assert _delivered_texts(delivery) == ["Escolha 1 ou 2"]
        assert conversations.conversations[CONVERSATION].status == "bot"
        bot.commit.assert_called_once()

    def test_transfer_assigns_operator(self, bot, delivery, conversations, availability, test_settings):
        availability.operators["Vendas"] = [Operator(id="op-ana")]
        bot.process_inbound(CONVERSATION, "oi")
        delivery.sent.clear()

        turn = bot.process_inbound(CONVERSATION, "1")

        conversation = conversations.conversations[CONVERSATION]
        assert turn.status == ConversationStatus.HUMAN
        assert conversation.status == "human"
        assert conversation.assigned_operator_id == "op-ana"
        assert conversation.department == "Vendas"
        assert availability.assignments == ["op-ana"]
        assert _delivered_texts(delivery) == ["Vendas selecionado", test_settings.transfer_notice]
        assert isinstance(delivery.sent[-1][1], TransferConversation)

    def test_queue_moves_to_waiting(self, bot, delivery, conversations, test_settings):
        bot.process_inbound(CONVERSATION, "oi")
        turn = bot.process_inbound(CONVERSATION, "1")

        assert turn.status == ConversationStatus.WAITING
        assert turn.outcome == Outcome.QUEUED
        assert conversations.conversations[CONVERSATION].status == "waiting"
        assert test_settings.queue_notice in _delivered_texts(delivery)
        assert isinstance(delivery.sent[-1][1], QueueConversation)

    def test_human_conversation_is_left_alone(self, bot, delivery, conversations, session_repo):
        conversation = conversations.get_or_create(CONVERSATION, "whatsapp", None)
        conversation.status = "human"

        turn = bot.process_inbound(CONVERSATION, "oi")

        assert turn.outcome is None
        assert "Bot not active" in turn.message
        assert delivery.sent == []
        assert session_repo.writes == []

    def test_closed_conversation_reopens(self, bot, conversations):
        conversation = conversations.get_or_create(CONVERSATION, "whatsapp", None)
        conversation.status = "closed"

        turn = bot.process_inbound(CONVERSATION, "oi")

        assert turn.status == ConversationStatus.BOT
        assert turn.outcome == Outcome.AWAITING_CHOICE

    def test_missing_flow_ends_session_with_fallback(self, bot, delivery, flows, session_repo, test_settings):
        bot.process_inbound(CONVERSATION, "oi")
        flows.flows.clear()

        turn = bot.process_inbound(CONVERSATION, "1")

        assert turn.outcome is None
        assert _delivered_texts(delivery)[-1] == test_settings.fallback_message
        assert CONVERSATION not in session_repo.sessions

    @patch("flowdesk.services.bot_service.alert_error")
    def test_malformed_flow_alerts(self, mock_alert, bot, delivery, test_settings):
        bot.interpreter.handle = Mock(side_effect=MalformedFlow("menu", ["broken"]))

        turn = bot.process_inbound(CONVERSATION, "oi")

        assert "Malformed flow" in turn.message
        mock_alert.assert_called_once()
        assert _delivered_texts(delivery) == [test_settings.fallback_message]

    @patch("flowdesk.services.bot_service.alert_error")
    def test_malformed_session_flow_ends_session(self, mock_alert, bot, flows, session_repo, delivery, test_settings):
        bot.process_inbound(CONVERSATION, "oi")
        assert CONVERSATION in session_repo.sessions
        flows.add(
            flow_document(
                "menu",
                nodes=[trigger_node(), message_node("m", "sem saída")],
                edges=[edge("trigger-1", "m")],
                updated_at=T0 + timedelta(hours=1),
            )
        )

        turn = bot.process_inbound(CONVERSATION, "1")

        assert "Malformed flow" in turn.message
        mock_alert.assert_called_once()
        assert CONVERSATION not in session_repo.sessions
        assert _delivered_texts(delivery)[-1] == test_settings.fallback_message

    def test_delivery_happens_after_commit(self, bot, delivery):
        order = []
        bot.commit = lambda: order.append("commit")
        delivery.send = lambda conversation_id, action: order.append("send")

        bot.process_inbound(CONVERSATION, "oi")

        assert order == ["commit", "send"]

    def test_input_flow_through_service(self, bot, flows, delivery):
        flows.flows.clear()
        flows.add(
            flow_document(
                "nome",
                nodes=[
                    trigger_node(),
                    input_node("i", "Qual seu nome?", variable="nome"),
                    end_node("e", "Obrigado, {nome}!"),
                ],
                edges=[edge("trigger-1", "i"), edge("i", "e")],
            )
        )
        bot.process_inbound(CONVERSATION, "olá")
        turn = bot.process_inbound(CONVERSATION, "Maria")

        assert turn.outcome == Outcome.COMPLETED
        assert _delivered_texts(delivery) == ["Qual seu nome?", "Obrigado, Maria!"]


class TestConversationLock:
    def test_lock_entries_released(self):
        locks = ConversationLockManager()
        with locks.lock("a"):
            with locks.lock("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_same_conversation_serialized(self):
        locks = ConversationLockManager()
        inside = []
        overlaps = []

        def worker():
            for _ in range(50):
                with locks.lock("c1"):
                    inside.append(1)
                    if len(inside) > 1:
                        overlaps.append(True)
                    inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
        assert len(locks) == 0
