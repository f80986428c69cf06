"""
Negotiation service - the public operation surface of the engine.

All negotiation mutations MUST go through here. Each operation authorizes
the caller against the pairing, asks the validator for a decision and
commits it through the store. A version conflict means someone else got
there first: the record is re-read and the decision recomputed.
"""
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from negotiation_engine.config import MAX_COMMIT_RETRIES
from negotiation_engine.logger import get_logger
from negotiation_engine.models.domain import Negotiation
from negotiation_engine.models.enums import ActorRole
from negotiation_engine.services.collaborators import (
    LoggingNotifier,
    MatchingDirectory,
    Notifier,
    SqlMatchingDirectory,
)
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
from negotiation_engine.services.store import (
    Committed,
    NegotiationStore,
    PairingTaken,
    to_record,
)
from negotiation_engine.services.validator import (
    Accept,
    Action,
    Annotate,
    CounterOffer,
    InitialOffer,
    Reject,
    Rejection,
    RejectionReason,
    is_valid_amount,
    replay,
    validate,
)

logger = get_logger(__name__)

MAX_NOTE_LENGTH = 500


class NegotiationService:
    """Authorizes, validates and commits negotiation actions."""

    def __init__(
        self,
        db: Session,
        matching: Optional[MatchingDirectory] = None,
        notifier: Optional[Notifier] = None,
        max_retries: int = MAX_COMMIT_RETRIES
    ):
        self.store = NegotiationStore(db)
        self.matching = matching or SqlMatchingDirectory(db)
        self.notifier = notifier or LoggingNotifier()
        self.max_retries = max_retries

    def create(
        self,
        pairing_id: str,
        requester_id: str,
        initial_amount: int,
        note: Optional[str] = None
    ) -> Tuple[Negotiation, bool]:
        """
        Open the negotiation for a pairing with the Provider's expectation.

        Returns (negotiation, created). If the pairing already has a
        negotiation it is returned unchanged with created=False.
        """
        pairing = self.matching.get_pairing(pairing_id)
        if pairing is None:
            raise PairingNotFound(pairing_id)

        if requester_id != pairing.provider_id:
            if requester_id == pairing.seeker_id:
                raise NotParticipant("Only the Provider of a pairing can open its negotiation")
            raise NotParticipant(f"User {requester_id} is not a participant of pairing {pairing_id}")

        if not is_valid_amount(initial_amount):
            raise AmountInvalid(initial_amount)
        note = self._clean_note(note)

        existing = self.store.load_by_pairing(pairing_id)
        if existing is not None:
            logger.info("Pairing %s already has negotiation %s", pairing_id, existing.id)
            return existing, False

        if not pairing.active:
            raise PairingInactive(pairing_id)

        action = InitialOffer(amount=initial_amount, note=note)
        result = validate(None, action, ActorRole.PROVIDER)
        if isinstance(result, Rejection):
            raise self._refusal(result, action)

        outcome = self.store.insert(str(uuid4()), pairing, result.record, result.event, requester_id)
        if isinstance(outcome, PairingTaken):
            # Lost a race with a concurrent create; the winner's negotiation stands
            return self.store.load_by_pairing(pairing_id), False

        logger.info(
            "Negotiation %s opened for pairing %s at %s",
            outcome.id, pairing_id, initial_amount
        )
        self._notify(outcome)
        return outcome, True

    def propose_or_counter(
        self,
        negotiation_id: str,
        requester_id: str,
        amount: int,
        note: Optional[str] = None
    ) -> Negotiation:
        def build():
            if not is_valid_amount(amount):
                raise AmountInvalid(amount)
            return CounterOffer(amount=amount, note=self._clean_note(note))

        return self._apply(negotiation_id, requester_id, build)

    def accept(self, negotiation_id: str, requester_id: str, note: Optional[str] = None) -> Negotiation:
        return self._apply(negotiation_id, requester_id, lambda: Accept(note=self._clean_note(note)))

    def reject(self, negotiation_id: str, requester_id: str, note: Optional[str] = None) -> Negotiation:
        return self._apply(negotiation_id, requester_id, lambda: Reject(note=self._clean_note(note)))

    def annotate(self, negotiation_id: str, requester_id: str, note: str) -> Negotiation:
        return self._apply(
            negotiation_id,
            requester_id,
            lambda: Annotate(note=self._clean_note(note, required=True))
        )

    def get(self, negotiation_id: str, requester_id: Optional[str] = None) -> Negotiation:
        """Fetch a negotiation. When requester_id is given, only participants may read it."""
        negotiation = self.store.load(negotiation_id)
        if negotiation is None:
            raise NegotiationNotFound(negotiation_id)
        if requester_id is not None:
            self._resolve_role(negotiation, requester_id)
        return negotiation

    def get_by_pairing(self, pairing_id: str, requester_id: Optional[str] = None) -> Negotiation:
        negotiation = self.store.load_by_pairing(pairing_id)
        if negotiation is None:
            raise NegotiationNotFound(f"pairing {pairing_id}")
        if requester_id is not None:
            self._resolve_role(negotiation, requester_id)
        return negotiation

    def list_for_participant(self, user_id: str) -> List[Negotiation]:
        return self.store.list_for_participant(user_id)

    def verify_history(self, negotiation_id: str) -> bool:
        """
        Replay the event log and compare it with the stored record.

        Raises HistoryCorrupted if the log itself cannot be replayed.
        """
        negotiation = self.get(negotiation_id)
        replayed = replay(self.store.events(negotiation_id))
        return replayed == to_record(negotiation)

    def _apply(
        self,
        negotiation_id: str,
        requester_id: str,
        build_action: Callable[[], Action]
    ) -> Negotiation:
        """
        Read, validate and commit; on a version conflict start over from a fresh read.

        The action is built only once the requester is known to be a
        participant, so outsiders are refused as such whatever they sent.
        """
        action = None
        for attempt in range(1, self.max_retries + 1):
            negotiation = self.store.load(negotiation_id)
            if negotiation is None:
                raise NegotiationNotFound(negotiation_id)

            role = self._resolve_role(negotiation, requester_id)
            if action is None:
                action = build_action()
            record = to_record(negotiation)

            result = validate(record, action, role)
            if isinstance(result, Rejection):
                logger.warning(
                    "Refused %s by %s on negotiation %s (%s): %s",
                    type(action).__name__, role.value, negotiation_id,
                    record.status.value, result.message
                )
                raise self._refusal(result, action)

            outcome = self.store.commit(
                negotiation_id, record.version, result.record, result.event, requester_id
            )
            if isinstance(outcome, Committed):
                negotiation = self.store.load(negotiation_id)
                logger.info(
                    "Negotiation %s: %s by %s committed as version %s (status %s)",
                    negotiation_id, result.event.action.value, role.value,
                    outcome.version, negotiation.status.value
                )
                self._notify(negotiation)
                return negotiation

            logger.debug(
                "Retrying %s on negotiation %s (attempt %s of %s)",
                type(action).__name__, negotiation_id, attempt, self.max_retries
            )

        raise ConcurrencyExhausted(negotiation_id, self.max_retries)

    def _resolve_role(self, negotiation: Negotiation, requester_id: str) -> ActorRole:
        if requester_id == negotiation.provider_id:
            return ActorRole.PROVIDER
        if requester_id == negotiation.seeker_id:
            return ActorRole.SEEKER
        raise NotParticipant(
            f"User {requester_id} is not a participant of negotiation {negotiation.id}"
        )

    def _refusal(self, rejection: Rejection, action: Action) -> NegotiationRefusal:
        if rejection.reason is RejectionReason.AMOUNT_INVALID:
            return AmountInvalid(getattr(action, "amount", None))
        return InvalidTransition(rejection.message)

    def _clean_note(self, note: Optional[str], required: bool = False) -> Optional[str]:
        if note is not None:
            note = note.strip() or None
        if note is None:
            if required:
                raise NoteRequired()
            return None
        if len(note) > MAX_NOTE_LENGTH:
            raise NoteTooLong(MAX_NOTE_LENGTH)
        return note

    def _notify(self, negotiation: Negotiation) -> None:
        # Delivery is best effort; a committed transition is never undone by it
        try:
            self.notifier.notify(negotiation.id, negotiation.status, negotiation.agreed_value)
        except Exception:
            logger.warning(
                "Notification for negotiation %s failed", negotiation.id, exc_info=True
            )
