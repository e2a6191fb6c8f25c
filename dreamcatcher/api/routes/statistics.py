from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.auth import get_current_user_id
from dreamcatcher.services.journal_stats import dream_statistics, monthly_dream_counts, ranked, tag_counts

router = APIRouter()


@router.get("")
def statistics(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Totals, the last six months, common tags, moods and recurring themes."""
    return dream_statistics(user_id, db)


@router.get("/monthly")
def monthly(
    months: int = Query(12, ge=1, le=36),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return monthly_dream_counts(user_id, months, db)


@router.get("/tags")
def tags(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return {"userTags": ranked(tag_counts(user_id, db), "tag")}
