"""
Transition validator for the negotiation protocol.

This is the only place that decides whether an action is legal. It is pure:
it takes a snapshot of the current record and returns either the next
snapshot plus the event to append, or a rejection. Nothing here touches the
database, so the service can re-run it freely after a version conflict.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Union

from negotiation_engine.models.enums import ActorRole, EventAction, NegotiationStatus

INITIAL_OFFER_NOTE = "Initial salary expectation"
ACCEPT_NOTE = "Offer accepted"
REJECT_NOTE = "Offer rejected"


@dataclass(frozen=True)
class NegotiationRecord:
    """Immutable snapshot of a negotiation's derived state."""
    status: NegotiationStatus
    provider_expectation: int
    provider_offer: int
    seeker_offer: Optional[int] = None
    agreed_value: Optional[int] = None
    version: int = 1


@dataclass(frozen=True)
class EventDraft:
    """An event the validator wants appended, before it has been persisted."""
    version: int
    actor_role: ActorRole
    action: EventAction
    amount: Optional[int] = None
    note: Optional[str] = None


# Actions - one variant per kind, matched exhaustively in validate()

@dataclass(frozen=True)
class InitialOffer:
    amount: int
    note: Optional[str] = None


@dataclass(frozen=True)
class CounterOffer:
    amount: int
    note: Optional[str] = None


@dataclass(frozen=True)
class Accept:
    note: Optional[str] = None


@dataclass(frozen=True)
class Reject:
    note: Optional[str] = None


@dataclass(frozen=True)
class Annotate:
    note: str


Action = Union[InitialOffer, CounterOffer, Accept, Reject, Annotate]


class RejectionReason(str, Enum):
    INVALID_TRANSITION = "INVALID_TRANSITION"
    AMOUNT_INVALID = "AMOUNT_INVALID"


@dataclass(frozen=True)
class Transition:
    record: NegotiationRecord
    event: EventDraft


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    message: str


ValidationResult = Union[Transition, Rejection]


class HistoryCorrupted(Exception):
    """Raised when an event log cannot be replayed through the validator."""


def is_valid_amount(amount) -> bool:
    """Amounts are positive integers. Booleans are ints in Python, so exclude them."""
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def _invalid(message: str) -> Rejection:
    return Rejection(RejectionReason.INVALID_TRANSITION, message)


def validate(
    record: Optional[NegotiationRecord],
    action: Action,
    actor_role: ActorRole
) -> ValidationResult:
    """
    Decide the outcome of `action` performed by `actor_role` against `record`.

    `record` is None when no negotiation exists yet; the only legal action
    then is the Provider's initial offer.
    """
    if isinstance(action, (InitialOffer, CounterOffer)) and not is_valid_amount(action.amount):
        return Rejection(
            RejectionReason.AMOUNT_INVALID,
            f"Amount must be a positive whole number, got {action.amount!r}"
        )

    if record is None:
        if not isinstance(action, InitialOffer):
            return _invalid("No negotiation exists yet; it must be opened with an initial offer")
        return _open(action, actor_role)

    if isinstance(action, InitialOffer):
        return _invalid("Negotiation is already open")

    if record.status.is_terminal:
        return _invalid(
            f"Negotiation is {record.status.value}; no further actions are accepted"
        )

    if isinstance(action, CounterOffer):
        return _counter_offer(record, action, actor_role)
    if isinstance(action, Accept):
        return _accept(record, action, actor_role)
    if isinstance(action, Reject):
        return _reject(record, action, actor_role)
    if isinstance(action, Annotate):
        return _annotate(record, action, actor_role)

    raise TypeError(f"Unknown negotiation action: {type(action).__name__}")


def _open(action: InitialOffer, actor_role: ActorRole) -> ValidationResult:
    if actor_role is not ActorRole.PROVIDER:
        return _invalid("Only the Provider can open a negotiation")

    record = NegotiationRecord(
        status=NegotiationStatus.PENDING,
        provider_expectation=action.amount,
        provider_offer=action.amount,
        version=1
    )
    event = EventDraft(
        version=1,
        actor_role=actor_role,
        action=EventAction.OFFER,
        amount=action.amount,
        note=action.note or INITIAL_OFFER_NOTE
    )
    return Transition(record, event)


def _counter_offer(
    record: NegotiationRecord,
    action: CounterOffer,
    actor_role: ActorRole
) -> ValidationResult:
    if record.status is NegotiationStatus.PENDING and actor_role is not ActorRole.SEEKER:
        return _invalid("Only the Seeker can respond to a pending negotiation")

    if actor_role is ActorRole.SEEKER:
        new_record = replace(record, seeker_offer=action.amount)
    else:
        new_record = replace(record, provider_offer=action.amount)

    new_record = replace(
        new_record,
        status=NegotiationStatus.NEGOTIATING,
        version=record.version + 1
    )
    event = EventDraft(
        version=new_record.version,
        actor_role=actor_role,
        action=EventAction.COUNTER_OFFER,
        amount=action.amount,
        note=action.note
    )
    return Transition(new_record, event)


def _accept(
    record: NegotiationRecord,
    action: Accept,
    actor_role: ActorRole
) -> ValidationResult:
    # Acceptance needs a counter-offer on the table; Pending has none
    if record.status is not NegotiationStatus.NEGOTIATING:
        return _invalid("Nothing to accept until the Seeker has made an offer")

    # The accepting party takes the other side's latest figure
    if actor_role is ActorRole.SEEKER:
        agreed_value = record.provider_offer
    else:
        agreed_value = record.seeker_offer

    new_record = replace(
        record,
        status=NegotiationStatus.AGREED,
        agreed_value=agreed_value,
        version=record.version + 1
    )
    event = EventDraft(
        version=new_record.version,
        actor_role=actor_role,
        action=EventAction.ACCEPT,
        note=action.note or ACCEPT_NOTE
    )
    return Transition(new_record, event)


def _reject(
    record: NegotiationRecord,
    action: Reject,
    actor_role: ActorRole
) -> ValidationResult:
    new_record = replace(
        record,
        status=NegotiationStatus.REJECTED,
        version=record.version + 1
    )
    event = EventDraft(
        version=new_record.version,
        actor_role=actor_role,
        action=EventAction.REJECT,
        note=action.note or REJECT_NOTE
    )
    return Transition(new_record, event)


def _annotate(
    record: NegotiationRecord,
    action: Annotate,
    actor_role: ActorRole
) -> ValidationResult:
    new_record = replace(record, version=record.version + 1)
    event = EventDraft(
        version=new_record.version,
        actor_role=actor_role,
        action=EventAction.ANNOTATE,
        note=action.note
    )
    return Transition(new_record, event)


def action_from_event(event) -> Action:
    """Rebuild the action that produced a stored (or drafted) event."""
    if event.action == EventAction.OFFER:
        return InitialOffer(amount=event.amount, note=event.note)
    if event.action == EventAction.COUNTER_OFFER:
        return CounterOffer(amount=event.amount, note=event.note)
    if event.action == EventAction.ACCEPT:
        return Accept(note=event.note)
    if event.action == EventAction.REJECT:
        return Reject(note=event.note)
    if event.action == EventAction.ANNOTATE:
        return Annotate(note=event.note)
    raise HistoryCorrupted(f"Unknown action in event log: {event.action!r}")


def replay(events: Iterable) -> NegotiationRecord:
    """
    Fold an ordered event log through validate() from empty state.

    Raises HistoryCorrupted if the log is empty, has gaps in its version
    sequence, or contains an event the protocol would have refused.
    """
    record: Optional[NegotiationRecord] = None
    for expected_version, event in enumerate(events, start=1):
        if event.version != expected_version:
            raise HistoryCorrupted(
                f"Event log out of sequence: expected version {expected_version}, "
                f"found {event.version}"
            )

        result = validate(record, action_from_event(event), ActorRole(event.actor_role))
        if isinstance(result, Rejection):
            raise HistoryCorrupted(
                f"Event {event.version} ({event.action}) does not replay: {result.message}"
            )
        record = result.record

    if record is None:
        raise HistoryCorrupted("Event log is empty")
    return record
