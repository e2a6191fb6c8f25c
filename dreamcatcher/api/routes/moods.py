import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import NotFoundError
from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.auth import get_current_user_id
from dreamcatcher.models.dream import Dream
from dreamcatcher.models.mood import MoodEntry
from dreamcatcher.schemas.moods import MoodCreate, MoodResponse
from dreamcatcher.services.journal_stats import mood_statistics

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=MoodResponse, status_code=status.HTTP_201_CREATED)
def log_mood(
    mood_data: MoodCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    dream = None
    if mood_data.dream_id is not None:
        dream = db.query(Dream).filter(Dream.id == mood_data.dream_id, Dream.user_id == user_id).first()
        if not dream:
            raise NotFoundError("Dream not found")

    entry = MoodEntry(user_id=user_id, mood=mood_data.mood, dream_id=mood_data.dream_id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return MoodResponse(
        id=entry.id,
        mood=entry.mood,
        dream_id=entry.dream_id,
        dream_title=dream.title if dream else None,
        created_at=entry.created_at,
    )


@router.get("")
def mood_history(
    limit: int = Query(30, ge=1, le=200),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Most recent mood entries first, with the title of the linked dream."""
    rows = (
        db.query(MoodEntry, Dream.title)
        .outerjoin(Dream, MoodEntry.dream_id == Dream.id)
        .filter(MoodEntry.user_id == user_id)
        .order_by(MoodEntry.created_at.desc(), MoodEntry.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "items": [
            MoodResponse(
                id=entry.id,
                mood=entry.mood,
                dream_id=entry.dream_id,
                dream_title=title,
                created_at=entry.created_at,
            )
            for entry, title in rows
        ]
    }


@router.get("/stats")
def mood_stats(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return mood_statistics(user_id, db)
