from contextlib import nullcontext
from datetime import datetime, timedelta
from typing import Callable, Optional

from flowdesk.logging_config import get_logger
from flowdesk.schemas.session import FlowSession
from flowdesk.services.conversation_lock import ConversationLockManager
from flowdesk.services.repositories import SessionRepository

logger = get_logger("session_store")


class SessionStore:
    """Lifecycle of flow sessions on top of a SessionRepository."""

    def __init__(self, repository: SessionRepository):
        self.repository = repository

    def load(self, conversation_id: str) -> Optional[FlowSession]:
        return self.repository.get(conversation_id)

    def commit(self, conversation_id: str, had_session: bool, session_after: Optional[FlowSession]) -> None:
        """Single write for one handled event."""
        if session_after is not None:
            self.repository.save(session_after)
        elif had_session:
            self.repository.delete(conversation_id)

    def end(self, conversation_id: str, reason: str) -> bool:
        session = self.repository.get(conversation_id)
        if session is None:
            return False
        self.repository.delete(conversation_id)
        logger.info(
            f"Ended flow session for {conversation_id}",
            extra={"context": {"flow_id": session.flow_id, "node_id": session.current_node_id, "reason": reason}},
        )
        return True

    def close_inactive(
        self,
        now: datetime,
        timeout_minutes: int,
        locks: Optional[ConversationLockManager] = None,
        commit: Optional[Callable[[], None]] = None,
    ) -> list[str]:
        """Tear down sessions idle for longer than the timeout. Returns their conversation ids.

        With ``locks`` each teardown runs under the conversation lock and the
        session is re-read first, so one touched by a concurrent turn after
        the idle scan survives. ``commit`` runs before the lock is released.
        """
        if timeout_minutes <= 0:
            return []
        threshold = now - timedelta(minutes=timeout_minutes)
        closed = []
        for idle in self.repository.list_idle(threshold):
            conversation_id = idle.conversation_id
            with locks.lock(conversation_id) if locks else nullcontext():
                current = self.repository.get(conversation_id)
                if current is None or current.updated_at >= threshold:
                    continue
                self.repository.delete(conversation_id)
                if commit:
                    commit()
            closed.append(conversation_id)

        if closed:
            logger.info(f"Closed {len(closed)} inactive flow sessions", extra={"context": {"before": threshold}})
        return closed
