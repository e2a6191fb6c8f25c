import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import NotFoundError
from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.billing import UsageTicket, require_quota
from dreamcatcher.models.analysis import Analysis
from dreamcatcher.models.dream import Dream
from dreamcatcher.schemas.dreams import AnalysisRequest, AnalysisResponse
from dreamcatcher.services.dream_analyst import DreamAnalyst, get_dream_analyst

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=AnalysisResponse)
def analyze_dream(
    request: AnalysisRequest,
    db: Session = Depends(get_db),
    ticket: UsageTicket = Depends(require_quota("ai_analyze")),
    analyst: DreamAnalyst = Depends(get_dream_analyst),
):
    """Run a one-off AI analysis of a dream. A failed AI call does not use up quota."""
    if request.dreamId is not None:
        owned = db.query(Dream.id).filter(
            Dream.id == request.dreamId,
            Dream.user_id == ticket.user_id,
        ).first()
        if not owned:
            raise NotFoundError("Dream not found")

    reply = analyst.analyze_dream(request.content, premium=ticket.plan_state.is_premium)

    analysis = Analysis(
        user_id=ticket.user_id,
        dream_id=request.dreamId,
        type="immediate",
        prompt=request.content,
        response=reply.text,
        model=reply.model,
    )
    db.add(analysis)
    db.commit()
    db.refresh(analysis)

    ticket.commit()
    logger.info("User %s analysis %s via %s", ticket.user_id, analysis.id, reply.model)
    return analysis
