"""Pick the operator who receives a transferred conversation."""

import random
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Optional, Protocol, Sequence

from flowdesk.logging_config import get_logger

logger = get_logger("distribution")


class DistributionStrategy(str, Enum):
    BALANCED = "balanced"
    SEQUENTIAL = "sequential"
    RANDOM = "random"


@dataclass(frozen=True)
class Operator:
    id: str
    name: str = ""
    active_chats: int = 0
    max_chats: int = 0


class CursorStore(Protocol):
    def next_position(self, department_id: str) -> int:
        """Atomically return the current cursor for the department and advance it."""
        ...


class InMemoryCursorStore:
    def __init__(self):
        self._positions: dict[str, int] = {}
        self._lock = Lock()

    def next_position(self, department_id: str) -> int:
        with self._lock:
            position = self._positions.get(department_id, 0)
            self._positions[department_id] = position + 1
            return position


class OperatorDistributor:
    def __init__(self, cursor_store: Optional[CursorStore] = None, rng: Optional[random.Random] = None):
        self.cursor_store = cursor_store or InMemoryCursorStore()
        self.rng = rng or random.Random()

    def pick(
        self,
        department_id: str,
        available_operators: Sequence[Operator],
        strategy: DistributionStrategy | str,
    ) -> Optional[str]:
        """Return the chosen operator id, or None when nobody is available."""
        if not available_operators:
            return None

        strategy = DistributionStrategy(strategy)
        operators = sorted(available_operators, key=lambda op: op.id)

        if strategy == DistributionStrategy.BALANCED:
            chosen = min(operators, key=lambda op: (op.active_chats, op.id))
        elif strategy == DistributionStrategy.SEQUENTIAL:
            position = self.cursor_store.next_position(department_id)
            chosen = operators[position % len(operators)]
        else:
            chosen = self.rng.choice(operators)

        logger.info(
            f"Selected operator {chosen.id} in {department_id} ({strategy.value})",
            extra={"context": {"department": department_id, "candidates": len(operators)}},
        )
        return chosen.id
