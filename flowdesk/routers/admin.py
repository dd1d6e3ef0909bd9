"""Admin API endpoints for bot flows, flow sessions and the waiting queue."""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from flowdesk.config import settings
from flowdesk.database import get_db
from flowdesk.logging_config import get_logger
from flowdesk.schemas.admin import (
    CloseInactiveResponse,
    FlowSaveResponse,
    FlowTemplateResponse,
    FlowValidationResponse,
    QueueAssignmentItem,
    QueueProcessResponse,
    SessionEndResponse,
)
from flowdesk.services.conversation_lock import ConversationLockManager
from flowdesk.services.flow_graph import FlowCache, FlowGraph, MalformedFlow, parse_flow
from flowdesk.services.flow_templates import load_flow_templates
from flowdesk.services.queue_service import QueueService, build_queue_service
from flowdesk.services.session_store import SessionStore
from flowdesk.services.sql_repositories import SqlFlowRepository, SqlSessionRepository

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


def get_flow_repository(db: Session = Depends(get_db)) -> SqlFlowRepository:
    return SqlFlowRepository(db)


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    return SessionStore(SqlSessionRepository(db))


def get_flow_cache(request: Request) -> FlowCache:
    return request.app.state.flow_cache


def get_conversation_locks(request: Request) -> ConversationLockManager:
    return request.app.state.conversation_locks


def get_queue_service(request: Request, db: Session = Depends(get_db)) -> QueueService:
    return build_queue_service(db, request.app.state)


# === FLOWS ===


@router.post("/flows/validate", response_model=FlowValidationResponse)
def validate_flow(document: dict[str, Any] = Body(...)):
    """Check a flow document without saving it."""
    try:
        definition = parse_flow(document)
        FlowGraph(definition)
    except MalformedFlow as e:
        return FlowValidationResponse(valid=False, flow_id=e.flow_id, violations=e.violations)
    return FlowValidationResponse(valid=True, flow_id=definition.id)


@router.put("/flows/{flow_id}", response_model=FlowSaveResponse)
def save_flow(
    flow_id: str,
    document: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    flows: SqlFlowRepository = Depends(get_flow_repository),
    cache: FlowCache = Depends(get_flow_cache),
):
    """Validate and store a flow. Invalid graphs are rejected, not stored."""
    try:
        definition = parse_flow({**document, "id": flow_id})
        FlowGraph(definition)
    except MalformedFlow as e:
        raise HTTPException(status_code=422, detail={"flow_id": flow_id, "violations": e.violations})

    stored = flows.save_flow(definition)
    db.commit()
    cache.invalidate(flow_id)
    logger.info(f"Saved flow {flow_id}", extra={"context": {"active": stored.is_active, "nodes": len(stored.nodes)}})
    return FlowSaveResponse(success=True, flow=stored.to_document())


@router.get("/flow-templates", response_model=list[FlowTemplateResponse])
def list_flow_templates():
    return [
        FlowTemplateResponse(
            id=template.id,
            name=template.name,
            description=template.description,
            flow=template.flow.to_document(),
        )
        for template in load_flow_templates()
    ]


# === SESSIONS ===


@router.delete("/sessions/{conversation_id}", response_model=SessionEndResponse)
def end_session(
    conversation_id: str,
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
    locks: ConversationLockManager = Depends(get_conversation_locks),
):
    with locks.lock(conversation_id):
        ended = sessions.end(conversation_id, reason="admin")
        db.commit()
    return SessionEndResponse(success=True, conversation_id=conversation_id, ended=ended)


@router.post("/sessions/close-inactive", response_model=CloseInactiveResponse)
def close_inactive_sessions(
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
    locks: ConversationLockManager = Depends(get_conversation_locks),
):
    """Called by the auto-close job."""
    timeout = settings.session_inactivity_minutes
    closed = sessions.close_inactive(datetime.now(timezone.utc), timeout, locks=locks, commit=db.commit)
    return CloseInactiveResponse(success=True, closed=closed, timeout_minutes=timeout)


# === QUEUE ===


@router.post("/queue/process", response_model=QueueProcessResponse)
def process_waiting_queue(limit: Optional[int] = None, queue: QueueService = Depends(get_queue_service)):
    """Assign waiting conversations to operators who became available. Called periodically."""
    report = queue.process_waiting_queue(limit)
    return QueueProcessResponse(
        success=True,
        assigned=[
            QueueAssignmentItem(
                conversation_id=item.conversation_id,
                operator_id=item.operator_id,
                department=item.department,
            )
            for item in report.assigned
        ],
        still_waiting=report.still_waiting,
    )
