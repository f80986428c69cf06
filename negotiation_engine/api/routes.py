"""API routes for the negotiation engine."""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from negotiation_engine.database import get_db
from negotiation_engine.services.collaborators import DeferredNotifier, LoggingNotifier
from negotiation_engine.services.errors import (
    AmountInvalid,
    ConcurrencyExhausted,
    InvalidTransition,
    NegotiationNotFound,
    NegotiationRefusal,
    NoteRequired,
    NoteTooLong,
    NotParticipant,
    PairingInactive,
    PairingNotFound,
)
from negotiation_engine.services.negotiation_service import NegotiationService
from negotiation_engine.api.schemas import (
    NegotiationCreate,
    OfferSubmit,
    DecisionSubmit,
    NoteSubmit,
    NegotiationResponse,
    NegotiationSummary,
    RefusalResponse
)

router = APIRouter()

REFUSAL_STATUS = {
    NotParticipant: status.HTTP_403_FORBIDDEN,
    AmountInvalid: 422,
    NoteRequired: 422,
    NoteTooLong: 422,
    PairingInactive: 422,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ConcurrencyExhausted: status.HTTP_409_CONFLICT,
    NegotiationNotFound: status.HTTP_404_NOT_FOUND,
    PairingNotFound: status.HTTP_404_NOT_FOUND,
}

REFUSAL_RESPONSES = {
    403: {"model": RefusalResponse, "description": "Requester is not a participant"},
    404: {"model": RefusalResponse, "description": "Negotiation or pairing not found"},
    409: {"model": RefusalResponse, "description": "Action not allowed in the current status, or too much contention"},
    422: {"model": RefusalResponse, "description": "Invalid amount or note"},
}


def get_service(background_tasks: BackgroundTasks, db: Session = Depends(get_db)) -> NegotiationService:
    """Service whose notifications are delivered after the response is sent."""
    notifier = DeferredNotifier(background_tasks.add_task, LoggingNotifier())
    return NegotiationService(db, notifier=notifier)


def refuse(refusal: NegotiationRefusal) -> HTTPException:
    """Translate a refusal into an HTTP error carrying its stable code."""
    return HTTPException(
        status_code=REFUSAL_STATUS.get(type(refusal), status.HTTP_400_BAD_REQUEST),
        detail={"code": refusal.code, "message": refusal.message}
    )


# Creation and lookup by pairing
@router.post("/pairings/{pairing_id}/negotiation", response_model=NegotiationResponse,
             status_code=status.HTTP_201_CREATED, responses=REFUSAL_RESPONSES)
def create_negotiation(
    pairing_id: str,
    data: NegotiationCreate,
    response: Response,
    service: NegotiationService = Depends(get_service)
):
    """
    Open the negotiation for a pairing with the Provider's expected figure.
    Returns the existing negotiation (200) if the pairing already has one.
    """
    try:
        negotiation, created = service.create(
            pairing_id,
            requester_id=data.requester_id,
            initial_amount=data.initial_amount,
            note=data.note
        )
    except NegotiationRefusal as e:
        raise refuse(e)

    if not created:
        response.status_code = status.HTTP_200_OK
    return negotiation


@router.get("/pairings/{pairing_id}/negotiation", response_model=NegotiationResponse,
            responses=REFUSAL_RESPONSES)
def get_negotiation_for_pairing(
    pairing_id: str,
    requester_id: str,
    service: NegotiationService = Depends(get_service)
):
    """Get the negotiation of a pairing with its full history."""
    try:
        return service.get_by_pairing(pairing_id, requester_id=requester_id)
    except NegotiationRefusal as e:
        raise refuse(e)


# Negotiation endpoints
@router.get("/negotiations", response_model=List[NegotiationSummary])
def list_negotiations(participant_id: str, service: NegotiationService = Depends(get_service)):
    """List every negotiation the user takes part in, newest first."""
    return service.list_for_participant(participant_id)


@router.get("/negotiations/{negotiation_id}", response_model=NegotiationResponse,
            responses=REFUSAL_RESPONSES)
def get_negotiation(
    negotiation_id: str,
    requester_id: str,
    service: NegotiationService = Depends(get_service)
):
    """Get a negotiation with its full history."""
    try:
        return service.get(negotiation_id, requester_id=requester_id)
    except NegotiationRefusal as e:
        raise refuse(e)


@router.post("/negotiations/{negotiation_id}/offers", response_model=NegotiationResponse,
             responses=REFUSAL_RESPONSES)
def submit_offer(
    negotiation_id: str,
    data: OfferSubmit,
    service: NegotiationService = Depends(get_service)
):
    """Make or counter an offer. The Seeker answers a pending negotiation first."""
    try:
        return service.propose_or_counter(
            negotiation_id,
            requester_id=data.requester_id,
            amount=data.amount,
            note=data.note
        )
    except NegotiationRefusal as e:
        raise refuse(e)


@router.post("/negotiations/{negotiation_id}/accept", response_model=NegotiationResponse,
             responses=REFUSAL_RESPONSES)
def accept_offer(
    negotiation_id: str,
    data: DecisionSubmit,
    service: NegotiationService = Depends(get_service)
):
    """Accept the other party's latest figure, closing the negotiation as Agreed."""
    try:
        return service.accept(negotiation_id, requester_id=data.requester_id, note=data.note)
    except NegotiationRefusal as e:
        raise refuse(e)


@router.post("/negotiations/{negotiation_id}/reject", response_model=NegotiationResponse,
             responses=REFUSAL_RESPONSES)
def reject_negotiation(
    negotiation_id: str,
    data: DecisionSubmit,
    service: NegotiationService = Depends(get_service)
):
    """End the negotiation without agreement."""
    try:
        return service.reject(negotiation_id, requester_id=data.requester_id, note=data.note)
    except NegotiationRefusal as e:
        raise refuse(e)


@router.post("/negotiations/{negotiation_id}/notes", response_model=NegotiationResponse,
             responses=REFUSAL_RESPONSES)
def annotate_negotiation(
    negotiation_id: str,
    data: NoteSubmit,
    service: NegotiationService = Depends(get_service)
):
    """Add a message to the history without changing the status."""
    try:
        return service.annotate(negotiation_id, requester_id=data.requester_id, note=data.note)
    except NegotiationRefusal as e:
        raise refuse(e)
