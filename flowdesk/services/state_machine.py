from enum import Enum


class ConversationStatus(str, Enum):
    BOT = "bot"
    WAITING = "waiting"
    HUMAN = "human"
    CLOSED = "closed"


VALID_TRANSITIONS = {
    ConversationStatus.BOT: [ConversationStatus.WAITING, ConversationStatus.HUMAN, ConversationStatus.CLOSED],
    ConversationStatus.WAITING: [ConversationStatus.HUMAN, ConversationStatus.BOT, ConversationStatus.CLOSED],
    ConversationStatus.HUMAN: [ConversationStatus.BOT, ConversationStatus.CLOSED],
    ConversationStatus.CLOSED: [ConversationStatus.BOT],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def queue(current: ConversationStatus) -> ConversationStatus:
    """Bot could not find an operator, conversation waits in the department queue."""
    return transition(current, ConversationStatus.WAITING)


def assign_operator(current: ConversationStatus) -> ConversationStatus:
    """An operator takes over from the bot or from the queue."""
    return transition(current, ConversationStatus.HUMAN)


def return_to_bot(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.BOT)


def close(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.CLOSED)


def reopen(current: ConversationStatus) -> ConversationStatus:
    """A closed conversation received a new message."""
    return transition(current, ConversationStatus.BOT)
