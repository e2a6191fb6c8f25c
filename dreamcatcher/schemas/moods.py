from pydantic import BaseModel
from typing import Literal, Optional
from datetime import datetime

Mood = Literal[
    "Happy", "Sad", "Anxious", "Excited", "Confused", "Angry",
    "Peaceful", "Scared", "Curious", "Nostalgic", "Neutral",
]


class MoodCreate(BaseModel):
    mood: Mood
    dream_id: Optional[int] = None


class MoodResponse(BaseModel):
    id: int
    mood: str
    dream_id: Optional[int] = None
    dream_title: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
