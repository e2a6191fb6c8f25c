import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.billing import UsageTicket, require_quota
from dreamcatcher.models.analysis import Analysis
from dreamcatcher.schemas.dreams import ChatRequest, ChatResponse
from dreamcatcher.services.dream_analyst import DreamAnalyst, get_dream_analyst

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    db: Session = Depends(get_db),
    ticket: UsageTicket = Depends(require_quota("chat_message")),
    analyst: DreamAnalyst = Depends(get_dream_analyst),
):
    history = [turn.model_dump() for turn in request.history]
    reply = analyst.chat_with_analyst(history, request.message)

    db.add(Analysis(
        user_id=ticket.user_id,
        type="chat",
        prompt=request.message,
        response=reply.text,
        model=reply.model,
    ))
    db.commit()

    ticket.commit()
    return ChatResponse(response=reply.text, model=reply.model, usage=ticket.usage())
