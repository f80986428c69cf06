"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from negotiation_engine.models.enums import ActorRole, EventAction, NegotiationStatus


# Requests
class NegotiationCreate(BaseModel):
    requester_id: str = Field(..., min_length=1)
    initial_amount: StrictInt
    note: Optional[str] = None


class OfferSubmit(BaseModel):
    requester_id: str = Field(..., min_length=1)
    amount: StrictInt
    note: Optional[str] = None


class DecisionSubmit(BaseModel):
    """Body for accept and reject."""
    requester_id: str = Field(..., min_length=1)
    note: Optional[str] = None


class NoteSubmit(BaseModel):
    requester_id: str = Field(..., min_length=1)
    note: str


# Responses
class EventResponse(BaseModel):
    version: int
    actor_role: ActorRole
    actor_id: str
    action: EventAction
    amount: Optional[int]
    note: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NegotiationSummary(BaseModel):
    id: str
    pairing_id: str
    provider_id: str
    seeker_id: str
    status: NegotiationStatus
    provider_expectation: int
    provider_offer: int
    seeker_offer: Optional[int]
    agreed_value: Optional[int]
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NegotiationResponse(NegotiationSummary):
    """A negotiation together with its full event log."""
    events: List[EventResponse] = []


# Error response
class RefusalResponse(BaseModel):
    """Response when an action is refused."""
    code: str
    message: str
