from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from flowdesk.database import get_db
from flowdesk.schemas.message import MessageRequest, MessageResponse
from flowdesk.services.bot_service import BotService, build_bot_service

router = APIRouter()


def get_bot_service(request: Request, db: Session = Depends(get_db)) -> BotService:
    return build_bot_service(db, request.app.state)


@router.post("/message", response_model=MessageResponse)
def handle_message(request: MessageRequest, bot: BotService = Depends(get_bot_service)):
    """Run one inbound chat message through the bot flows."""
    turn = bot.process_inbound(
        request.conversation_id,
        request.content,
        channel=request.channel,
        contact_id=request.contact_id,
        contact_name=request.contact_name,
        attachments=request.attachments,
    )

    return MessageResponse(
        success=True,
        conversation_id=turn.conversation_id,
        status=turn.status.value,
        outcome=turn.outcome.value if turn.outcome else None,
        actions=turn.actions,
        message=turn.message,
    )
