from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional


class UpgradeRequest(BaseModel):
    plan: Literal["free", "premium"]
    trial_days: int = Field(default=0, ge=0, le=14)


class IncrementRequest(BaseModel):
    metric: Literal["dream_create", "dream_edit", "ai_analyze", "chat_message"]


class AppleVerifyRequest(BaseModel):
    receiptData: str = Field(min_length=1)


class CheckoutRequest(BaseModel):
    priceId: Literal["monthly", "yearly"]
    trialDays: int = Field(default=0, ge=0, le=14)


class CancelRequest(BaseModel):
    immediately: bool = False


class BillingStatusResponse(BaseModel):
    plan: str
    trial_end: Optional[str] = None
    period: str  # current month key, YYYY-MM
    periods: Dict[str, str]
    usage: Dict[str, int]
    limits: Dict[str, Dict[str, Any]]


class UpgradeResponse(BaseModel):
    ok: bool
    plan: str
    trial_end: Optional[str] = None
