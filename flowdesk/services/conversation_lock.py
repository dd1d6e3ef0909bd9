"""Serializes handling of inbound events per conversation within one process."""

from contextlib import contextmanager
from threading import Lock
from typing import Iterator


class ConversationLockManager:
    """Per-conversation locks, dropped once nobody holds or waits on them."""

    def __init__(self):
        self._guard = Lock()
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def lock(self, conversation_id: str) -> Iterator[None]:
        with self._guard:
            conversation_lock = self._locks.setdefault(conversation_id, Lock())
            self._users[conversation_id] = self._users.get(conversation_id, 0) + 1

        conversation_lock.acquire()
        try:
            yield
        finally:
            conversation_lock.release()
            with self._guard:
                self._users[conversation_id] -= 1
                if self._users[conversation_id] == 0:
                    del self._users[conversation_id]
                    del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)
