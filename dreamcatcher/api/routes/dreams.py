import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import NotFoundError
from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.auth import get_current_user_id
from dreamcatcher.dependencies.billing import UsageTicket, require_quota
from dreamcatcher.models.dream import Dream
from dreamcatcher.models.mood import MoodEntry
from dreamcatcher.schemas.dreams import DreamCreate, DreamResponse, DreamUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _join_tags(tags: Optional[List[str]]) -> Optional[str]:
    cleaned = [tag.strip() for tag in tags or [] if tag and tag.strip()]
    return ",".join(cleaned) if cleaned else None


def _to_response(dream: Dream) -> DreamResponse:
    return DreamResponse(
        id=dream.id,
        title=dream.title,
        content=dream.content,
        mood=dream.mood,
        tags=dream.tags.split(",") if dream.tags else [],
        dream_date=dream.dream_date,
        created_at=dream.created_at,
        updated_at=dream.updated_at,
    )


def _get_owned_dream(dream_id: int, user_id: int, db: Session) -> Dream:
    dream = db.query(Dream).filter(Dream.id == dream_id, Dream.user_id == user_id).first()
    if not dream:
        raise NotFoundError("Dream not found")
    return dream


@router.get("")
def list_dreams(
    q: Optional[str] = None,
    mood: Optional[str] = None,
    tag: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=5, le=100),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    query = db.query(Dream).filter(Dream.user_id == user_id)
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Dream.title.ilike(like), Dream.content.ilike(like)))
    if mood:
        query = query.filter(Dream.mood == mood)
    if tag:
        query = query.filter(Dream.tags.ilike(f"%{tag}%"))

    total = query.count()
    dreams = (
        query.order_by(Dream.created_at.desc(), Dream.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "items": [_to_response(dream) for dream in dreams],
        "page": page,
        "page_size": page_size,
        "total": total,
    }


@router.post("", response_model=DreamResponse, status_code=status.HTTP_201_CREATED)
def create_dream(
    dream_data: DreamCreate,
    db: Session = Depends(get_db),
    ticket: UsageTicket = Depends(require_quota("dream_create")),
):
    dream = Dream(
        user_id=ticket.user_id,
        title=dream_data.title,
        content=dream_data.content,
        mood=dream_data.mood,
        tags=_join_tags(dream_data.tags),
        dream_date=dream_data.dream_date,
    )
    db.add(dream)
    db.commit()
    db.refresh(dream)

    # Only a saved dream counts against the quota
    ticket.commit()
    logger.info("User %s created dream %s", ticket.user_id, dream.id)
    return _to_response(dream)


@router.get("/{dream_id}", response_model=DreamResponse)
def get_dream(
    dream_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return _to_response(_get_owned_dream(dream_id, user_id, db))


@router.put("/{dream_id}", response_model=DreamResponse)
def update_dream(
    dream_id: int,
    dream_data: DreamUpdate,
    db: Session = Depends(get_db),
    ticket: UsageTicket = Depends(require_quota("dream_edit")),
):
    dream = _get_owned_dream(dream_id, ticket.user_id, db)

    update_data = dream_data.model_dump(exclude_unset=True)
    if "tags" in update_data:
        update_data["tags"] = _join_tags(update_data["tags"])
    for field, value in update_data.items():
        setattr(dream, field, value)

    db.commit()
    db.refresh(dream)
    ticket.commit()
    return _to_response(dream)


@router.delete("/{dream_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_dream(
    dream_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    dream = _get_owned_dream(dream_id, user_id, db)
    db.query(MoodEntry).filter(MoodEntry.dream_id == dream.id).update(
        {"dream_id": None}, synchronize_session=False
    )
    db.delete(dream)
    db.commit()
    # Deleting a dream does not give back dream_create quota
    return Response(status_code=status.HTTP_204_NO_CONTENT)
