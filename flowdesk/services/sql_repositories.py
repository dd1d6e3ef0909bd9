"""PostgreSQL implementations of the engine repositories.

Every class works on the request's SQLAlchemy ``Session``; committing is
left to the caller so one inbound event is one transaction.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from flowdesk.config import Settings, settings
from flowdesk.logging_config import get_logger
from flowdesk.models import BotFlow, Department, DistributionCursor, FlowSessionRecord
from flowdesk.models import Operator as OperatorAccount
from flowdesk.schemas.flow import FlowDefinition
from flowdesk.schemas.session import FlowSession
from flowdesk.services.distribution import DistributionStrategy, Operator
from flowdesk.services.flow_graph import FlowNotFound, MalformedFlow, parse_flow

logger = get_logger("sql_repositories")


class SqlFlowRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active_flows(self) -> list[FlowDefinition]:
        flows = []
        for row in self.db.query(BotFlow).filter(BotFlow.is_active.is_(True)).all():
            try:
                flows.append(parse_flow(row.to_document()))
            except MalformedFlow as e:
                logger.error(
                    f"Active flow {row.id} does not parse, skipped", extra={"context": {"violations": e.violations}}
                )
        return flows

    def get_flow(self, flow_id: str) -> FlowDefinition:
        row = self.db.query(BotFlow).filter(BotFlow.id == flow_id).first()
        if row is None:
            raise FlowNotFound(flow_id)
        return parse_flow(row.to_document())

    def save_flow(self, definition: FlowDefinition) -> FlowDefinition:
        """Upsert the flow and return it with the stored timestamps."""
        now = datetime.now(timezone.utc)
        document = definition.to_document()
        stmt = (
            insert(BotFlow)
            .values(
                id=definition.id,
                name=definition.name,
                is_active=definition.is_active,
                trigger=document["trigger"],
                nodes=document["nodes"],
                edges=document["edges"],
                created_at=definition.created_at or now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["id"],
                set_={
                    "name": definition.name,
                    "is_active": definition.is_active,
                    "trigger": document["trigger"],
                    "nodes": document["nodes"],
                    "edges": document["edges"],
                    "updated_at": now,
                },
            )
        )
        self.db.execute(stmt)
        self.db.flush()
        return self.get_flow(definition.id)


def _to_session(row: FlowSessionRecord) -> FlowSession:
    return FlowSession(
        conversation_id=row.conversation_id,
        flow_id=row.flow_id,
        current_node_id=row.current_node_id,
        variables=row.variables or {},
        awaiting_input=row.awaiting_input,
        history=row.history or [],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlSessionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, conversation_id: str) -> Optional[FlowSession]:
        row = self.db.get(FlowSessionRecord, conversation_id)
        return _to_session(row) if row else None

    def save(self, session: FlowSession) -> None:
        values = session.model_dump(mode="python")
        stmt = (
            insert(FlowSessionRecord)
            .values(**values)
            .on_conflict_do_update(
                index_elements=["conversation_id"],
                set_={key: value for key, value in values.items() if key != "conversation_id"},
            )
        )
        self.db.execute(stmt)

    def delete(self, conversation_id: str) -> None:
        self.db.query(FlowSessionRecord).filter(FlowSessionRecord.conversation_id == conversation_id).delete(
            synchronize_session=False
        )

    def list_idle(self, before: datetime) -> list[FlowSession]:
        rows = self.db.query(FlowSessionRecord).filter(FlowSessionRecord.updated_at < before).all()
        return [_to_session(row) for row in rows]


class SqlOperatorAvailability:
    """Departments are addressed by id or, as the editor stores them, by name."""

    def __init__(self, db: Session, config: Optional[Settings] = None):
        self.db = db
        self.config = config or settings

    def _department(self, key: str) -> Optional[Department]:
        return (
            self.db.query(Department)
            .filter(or_(Department.id == key, func.lower(Department.name) == key.strip().lower()))
            .first()
        )

    def list_available(self, department_id: str) -> list[Operator]:
        department = self._department(department_id)
        if department is None or not department.is_active:
            logger.warning(f"Department not found or inactive: {department_id}")
            return []

        limit_default = department.max_chats_per_operator or self.config.default_max_chats_per_operator
        available = []
        for account in department.operators:
            max_chats = account.max_chats or limit_default
            if account.status != "online" or account.current_chats >= max_chats:
                continue
            available.append(
                Operator(
                    id=account.id,
                    name=account.name or "",
                    active_chats=account.current_chats,
                    max_chats=max_chats,
                )
            )
        return available

    def strategy_for(self, department_id: str) -> DistributionStrategy:
        department = self._department(department_id)
        raw = department.distribution_strategy if department else None
        try:
            return DistributionStrategy(raw or self.config.default_distribution_strategy)
        except ValueError:
            logger.warning(f"Unknown distribution strategy {raw!r} for {department_id}, using default")
            return DistributionStrategy(self.config.default_distribution_strategy)

    def record_assignment(self, operator_id: str) -> None:
        self.db.query(OperatorAccount).filter(OperatorAccount.id == operator_id).update(
            {OperatorAccount.current_chats: OperatorAccount.current_chats + 1}, synchronize_session="fetch"
        )


class SqlCursorStore:
    """Sequential cursor advanced with a single upsert, safe across workers."""

    def __init__(self, db: Session):
        self.db = db

    def next_position(self, department_id: str) -> int:
        stmt = (
            insert(DistributionCursor)
            .values(department_id=department_id, position=1)
            .on_conflict_do_update(
                index_elements=["department_id"],
                set_={"position": DistributionCursor.position + 1, "updated_at": func.now()},
            )
            .returning(DistributionCursor.position)
        )
        return self.db.execute(stmt).scalar_one() - 1
