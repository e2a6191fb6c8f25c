from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional
from datetime import datetime


class DreamCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    content: str = Field(min_length=1)
    mood: Optional[str] = None
    tags: Optional[List[str]] = None
    dream_date: Optional[str] = None


class DreamUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1)
    mood: Optional[str] = None
    tags: Optional[List[str]] = None
    dream_date: Optional[str] = None


class DreamResponse(BaseModel):
    id: int
    title: Optional[str] = None
    content: str
    mood: Optional[str] = None
    tags: List[str] = []
    dream_date: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnalysisRequest(BaseModel):
    dreamId: Optional[int] = None
    content: str = Field(min_length=1)


class AnalysisResponse(BaseModel):
    id: int
    dream_id: Optional[int] = None
    type: str
    prompt: str
    response: str
    model: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"] = "user"
    content: str


class ChatRequest(BaseModel):
    history: List[ChatTurn] = []
    message: str = Field(min_length=1)


class ChatResponse(BaseModel):
    response: str
    model: Optional[str] = None
    usage: Optional[Dict[str, object]] = None
