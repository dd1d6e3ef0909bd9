"""Runtime for user-authored bot flows.

One ``handle()`` call consumes one inbound event: it resumes the
conversation's session (or starts one through the trigger matcher), executes
nodes until one has to wait for the user or hands the conversation off, and
persists the session once at the end. Outbound effects are returned as
actions, never performed here.
"""

import re
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from flowdesk.config import Settings, settings
from flowdesk.logging_config import conversation_logger, get_logger
from flowdesk.schemas.events import (
    ExecutionResult,
    InboundEvent,
    OutboundAction,
    Outcome,
    QueueConversation,
    SendMessage,
    TransferConversation,
)
from flowdesk.schemas.flow import (
    ConditionNode,
    Edge,
    EndNode,
    FlowDefinition,
    InputNode,
    MessageNode,
    TransferNode,
    TriggerNode,
)
from flowdesk.schemas.session import CaptureVariable, FlowSession
from flowdesk.services import input_validator, trigger_matcher
from flowdesk.services.distribution import OperatorDistributor
from flowdesk.services.flow_graph import FlowCache, FlowEngineError, FlowGraph, MalformedFlow
from flowdesk.services.repositories import FlowRepository, OperatorAvailability
from flowdesk.services.session_store import SessionStore

logger = get_logger("flow_interpreter")

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}\s]+)\}")


class FlowExecutionLimitExceeded(FlowEngineError):
    def __init__(self, flow_id: str, max_steps: int):
        self.flow_id = flow_id
        self.max_steps = max_steps
        super().__init__(f"Flow {flow_id} exceeded {max_steps} steps in one turn")


def render_template(template: str, values: dict[str, str]) -> str:
    """Replace ``{key}`` placeholders; unknown keys are left untouched."""
    return PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), template or "")


def select_branch(node: ConditionNode, edges: Iterable[Edge], text: str) -> Optional[Edge]:
    """Pick the outgoing edge a reply selects.

    Exact label first, then the 1-based number of an option, then the longest
    label the reply starts with (followed by a non-alphanumeric character).
    """
    answer = (text or "").strip().casefold()
    if not answer:
        return None

    labelled = [(edge.label.casefold(), edge) for edge in edges if edge.label]

    for label, edge in labelled:
        if answer == label:
            return edge

    if answer.isdigit():
        index = int(answer) - 1
        if 0 <= index < len(node.data.options):
            option = node.data.options[index].casefold()
            for label, edge in labelled:
                if label == option:
                    return edge

    prefixed = [
        (label, edge)
        for label, edge in labelled
        if len(answer) > len(label) and answer.startswith(label) and not answer[len(label)].isalnum()
    ]
    if not prefixed:
        return None
    return max(prefixed, key=lambda item: len(item[0]))[1]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlowInterpreter:
    def __init__(
        self,
        flows: FlowRepository,
        sessions: SessionStore,
        availability: OperatorAvailability,
        distributor: OperatorDistributor,
        cache: Optional[FlowCache] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.flows = flows
        self.sessions = sessions
        self.availability = availability
        self.distributor = distributor
        self.config = config or settings
        self.cache = cache or FlowCache(self.config.flow_cache_size)
        self.clock = clock

    def handle(self, event: InboundEvent) -> ExecutionResult:
        """Process one inbound event. FlowNotFound and MalformedFlow propagate."""
        log = conversation_logger("flow_interpreter", event.conversation_id)
        stored = self.sessions.load(event.conversation_id)
        session = stored
        graph = None

        if stored is not None:
            graph = self.cache.graph_for(self.flows.get_flow(stored.flow_id))
            if graph.node_by_id(stored.current_node_id) is None:
                log.warning(
                    "Session points at a node missing from the flow, restarting",
                    context={"flow_id": stored.flow_id, "node_id": stored.current_node_id},
                )
                session = None

        try:
            if session is not None:
                result = self.step(session, graph, event)
            else:
                result = self.start(event)
        except FlowExecutionLimitExceeded as e:
            log.error(str(e), context={"flow_id": e.flow_id, "max_steps": e.max_steps})
            return ExecutionResult(
                actions=[SendMessage(conversation_id=event.conversation_id, text=self.config.fallback_message)],
                session_after=stored,
                outcome=Outcome.LIMIT_EXCEEDED,
                flow_id=e.flow_id,
            )

        self.sessions.commit(event.conversation_id, stored is not None, result.session_after)
        log.info(
            f"Handled inbound event: {result.outcome.value}",
            context={"flow_id": result.flow_id, "actions": len(result.actions)},
        )
        return result

    def start(self, event: InboundEvent) -> ExecutionResult:
        """Match a flow for a conversation without a session and run it."""
        candidates: list[FlowDefinition] = list(self.flows.get_active_flows())

        while candidates:
            flow = trigger_matcher.match(event.text, candidates)
            if flow is None:
                break
            try:
                graph = self.cache.graph_for(flow)
            except MalformedFlow as e:
                logger.error(f"Skipping malformed flow {flow.id}", extra={"context": {"violations": e.violations}})
                candidates = [c for c in candidates if c.id != flow.id]
                continue

            now = self.clock()
            trigger = graph.trigger_node()
            session = FlowSession(
                conversation_id=event.conversation_id,
                flow_id=flow.id,
                current_node_id=trigger.id,
                history=[trigger.id],
                created_at=now,
                updated_at=now,
            )
            session = session.moved_to(graph.successor(trigger.id), now)
            return self._execute(session, graph, [], now)

        return ExecutionResult(outcome=Outcome.NO_MATCH)

    def step(self, session: FlowSession, graph: FlowGraph, event: InboundEvent) -> ExecutionResult:
        """Advance an existing session with one inbound event."""
        now = self.clock()
        node = graph.node_by_id(session.current_node_id)

        if session.awaiting_input and isinstance(node, InputNode):
            return self._receive_input(session, node, graph, event, now)
        if isinstance(node, ConditionNode):
            return self._receive_choice(session, node, graph, event, now)
        return self._execute(session, graph, [], now)

    def _receive_input(
        self, session: FlowSession, node: InputNode, graph: FlowGraph, event: InboundEvent, now: datetime
    ) -> ExecutionResult:
        result = input_validator.validate(node.data.validation, event.text)
        if not result.ok:
            text = render_template(
                self.config.validation_failed_message,
                {"reason": result.error or "", "prompt": render_template(node.prompt, session.variables)},
            )
            return ExecutionResult(
                actions=[SendMessage(conversation_id=session.conversation_id, text=text, node_id=node.id)],
                session_after=session.touched(now),
                outcome=Outcome.VALIDATION_FAILED,
                flow_id=session.flow_id,
            )

        capture = CaptureVariable(name=node.variable_name, value=result.value, validated_as=node.data.validation)
        session = capture.apply(session).moved_to(graph.successor(node.id), now)
        return self._execute(session, graph, [], now)

    def _receive_choice(
        self, session: FlowSession, node: ConditionNode, graph: FlowGraph, event: InboundEvent, now: datetime
    ) -> ExecutionResult:
        edge = select_branch(node, graph.edges_from(node.id), event.text)
        if edge is None:
            text = render_template(
                self.config.unexpected_response_message,
                {"options": ", ".join(node.data.options), "label": node.data.label},
            )
            return ExecutionResult(
                actions=[SendMessage(conversation_id=session.conversation_id, text=text, node_id=node.id)],
                session_after=session.touched(now),
                outcome=Outcome.NO_MATCHING_BRANCH,
                flow_id=session.flow_id,
            )

        variables = {**session.variables, node.id: edge.label}
        session = session.model_copy(update={"variables": variables}).moved_to(edge.target, now)
        return self._execute(session, graph, [], now)

    def _execute(
        self, session: FlowSession, graph: FlowGraph, actions: list[OutboundAction], now: datetime
    ) -> ExecutionResult:
        conversation_id = session.conversation_id
        steps = 0

        while True:
            steps += 1
            if steps > self.config.max_flow_steps:
                raise FlowExecutionLimitExceeded(graph.flow_id, self.config.max_flow_steps)

            node = graph.node_by_id(session.current_node_id)

            if isinstance(node, MessageNode):
                actions.append(
                    SendMessage(
                        conversation_id=conversation_id,
                        text=render_template(node.data.label, session.variables),
                        delay_ms=node.data.delay_ms,
                        has_media=node.data.has_media,
                        media_url=node.data.media_url,
                        node_id=node.id,
                    )
                )
                session = session.moved_to(graph.successor(node.id), now)
                continue

            if isinstance(node, TriggerNode):
                session = session.moved_to(graph.successor(node.id), now)
                continue

            if isinstance(node, ConditionNode):
                session = session.model_copy(update={"awaiting_input": False})
                return ExecutionResult(
                    actions=actions, session_after=session, outcome=Outcome.AWAITING_CHOICE, flow_id=graph.flow_id
                )

            if isinstance(node, InputNode):
                actions.append(
                    SendMessage(
                        conversation_id=conversation_id,
                        text=render_template(node.prompt, session.variables),
                        node_id=node.id,
                    )
                )
                session = session.model_copy(update={"awaiting_input": True})
                return ExecutionResult(
                    actions=actions, session_after=session, outcome=Outcome.AWAITING_INPUT, flow_id=graph.flow_id
                )

            if isinstance(node, TransferNode):
                hand_off = self._hand_off(node, conversation_id)
                actions.append(hand_off)
                outcome = Outcome.TRANSFERRED if isinstance(hand_off, TransferConversation) else Outcome.QUEUED
                return ExecutionResult(actions=actions, session_after=None, outcome=outcome, flow_id=graph.flow_id)

            if isinstance(node, EndNode):
                closing = render_template(node.data.label, session.variables).strip()
                if closing:
                    actions.append(SendMessage(conversation_id=conversation_id, text=closing, node_id=node.id))
                return ExecutionResult(
                    actions=actions, session_after=None, outcome=Outcome.COMPLETED, flow_id=graph.flow_id
                )

            raise MalformedFlow(graph.flow_id, [f"unknown node '{session.current_node_id}'"])

    def _hand_off(self, node: TransferNode, conversation_id: str) -> OutboundAction:
        department = node.data.department
        if not department:
            return QueueConversation(conversation_id=conversation_id, department=None, reason="no_department")

        operators = self.availability.list_available(department)
        strategy = self.availability.strategy_for(department)
        operator_id = self.distributor.pick(department, operators, strategy)
        if operator_id is None:
            logger.info(f"No operator available in {department}, queueing {conversation_id}")
            return QueueConversation(conversation_id=conversation_id, department=department)

        return TransferConversation(conversation_id=conversation_id, operator_id=operator_id, department=department)
