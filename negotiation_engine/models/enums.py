"""Enums for the negotiation engine - these define the valid values for statuses, roles and actions."""
from enum import Enum


class NegotiationStatus(str, Enum):
    """The four statuses a Negotiation can be in. Agreed and Rejected are terminal."""
    PENDING = "Pending"
    NEGOTIATING = "Negotiating"
    AGREED = "Agreed"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiationStatus.AGREED, NegotiationStatus.REJECTED)


class ActorRole(str, Enum):
    """Which side of the pairing performed an action."""
    PROVIDER = "Provider"
    SEEKER = "Seeker"

    @property
    def other(self) -> "ActorRole":
        return ActorRole.SEEKER if self is ActorRole.PROVIDER else ActorRole.PROVIDER


class EventAction(str, Enum):
    """Kinds of entries in a negotiation's event log."""
    OFFER = "offer"
    COUNTER_OFFER = "counter_offer"
    ACCEPT = "accept"
    REJECT = "reject"
    ANNOTATE = "annotate"


class PairingStatus(str, Enum):
    """Status of a pairing as owned by the matching subsystem."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
