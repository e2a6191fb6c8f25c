import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import AppError, AuthenticationError, NotFoundError
from dreamcatcher.db.session import get_db
from dreamcatcher.dependencies.auth import get_current_user_id
from dreamcatcher.models.analysis import Analysis
from dreamcatcher.models.dream import Dream
from dreamcatcher.models.mood import MoodEntry
from dreamcatcher.models.usage_counter import UsageCounter
from dreamcatcher.models.user import User
from dreamcatcher.models.user_subscription import UserSubscription
from dreamcatcher.schemas.auth import AuthResponse, ProfileUpdate, UserCreate, UserLogin, UserResponse
from dreamcatcher.utils.auth import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_response(user: User) -> AuthResponse:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    # Normalize email to lowercase so the same address cannot register twice
    email = user_data.email.lower().strip()
    existing_user = db.query(User).filter(User.email.ilike(email)).first()
    if existing_user:
        raise AppError("Email already registered", status_code=status.HTTP_409_CONFLICT, code="CONFLICT_ERROR")

    user = User(
        email=email,
        hashed_password=hash_password(user_data.password),
        first_name=user_data.first_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email.ilike(credentials.email.lower().strip())).first()
    if not user or not verify_password(credentials.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")
    return _auth_response(user)


def _get_user(user_id: int, db: Session) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


@router.get("/profile", response_model=UserResponse)
def get_profile(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return _get_user(user_id, db)


@router.put("/profile", response_model=UserResponse)
def update_profile(
    profile: ProfileUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Update profile information"""
    user = _get_user(user_id, db)

    if profile.first_name is not None:
        user.first_name = profile.first_name
    if profile.email is not None:
        email = profile.email.lower().strip()
        existing_user = db.query(User).filter(User.email.ilike(email), User.id != user_id).first()
        if existing_user:
            raise AppError("Email already in use", status_code=status.HTTP_409_CONFLICT, code="CONFLICT_ERROR")
        user.email = email

    db.commit()
    db.refresh(user)
    return user


@router.delete("/account")
def delete_account(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """
    Delete the account and all of its data. Children are removed first so the
    order holds even where the database does not enforce ON DELETE CASCADE.
    A Stripe subscription is not canceled here; the billing portal does that.
    """
    user = _get_user(user_id, db)

    db.query(Analysis).filter(Analysis.user_id == user_id).delete(synchronize_session=False)
    db.query(MoodEntry).filter(MoodEntry.user_id == user_id).delete(synchronize_session=False)
    db.query(Dream).filter(Dream.user_id == user_id).delete(synchronize_session=False)
    db.query(UsageCounter).filter(UsageCounter.user_id == user_id).delete(synchronize_session=False)
    db.query(UserSubscription).filter(UserSubscription.user_id == user_id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("Deleted account %s", user_id)
    return {"message": "Account and all data deleted successfully"}
