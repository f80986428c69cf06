"""
Interfaces to the systems around the negotiation engine.

The matching subsystem tells us who the two parties of a pairing are; the
notification subsystem is told about every committed transition. Both are
Protocols so tests and other deployments can swap implementations.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from negotiation_engine.logger import get_logger
from negotiation_engine.models.domain import Pairing
from negotiation_engine.models.enums import NegotiationStatus, PairingStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class PairingInfo:
    pairing_id: str
    provider_id: str
    seeker_id: str
    active: bool


class MatchingDirectory(Protocol):
    def get_pairing(self, pairing_id: str) -> Optional[PairingInfo]: ...


class Notifier(Protocol):
    def notify(
        self,
        negotiation_id: str,
        status: NegotiationStatus,
        agreed_value: Optional[int]
    ) -> None: ...


class SqlMatchingDirectory:
    """Reads pairings from the matching subsystem's table. Never writes."""

    def __init__(self, db: Session):
        self.db = db

    def get_pairing(self, pairing_id: str) -> Optional[PairingInfo]:
        pairing = self.db.get(Pairing, pairing_id)
        if pairing is None:
            return None
        return PairingInfo(
            pairing_id=pairing.id,
            provider_id=pairing.provider_id,
            seeker_id=pairing.seeker_id,
            active=pairing.status == PairingStatus.ACCEPTED
        )


class LoggingNotifier:
    """Default sink: records each transition in the application log."""

    def notify(
        self,
        negotiation_id: str,
        status: NegotiationStatus,
        agreed_value: Optional[int]
    ) -> None:
        logger.info(
            "Negotiation %s is now %s (agreed_value=%s)",
            negotiation_id, status.value, agreed_value
        )


class DeferredNotifier:
    """
    Hands each notification to a scheduler instead of delivering it inline.

    The API wires this to FastAPI's BackgroundTasks.add_task so delivery
    happens after the response has been sent.
    """

    def __init__(self, schedule: Callable[..., None], inner: Notifier):
        self.schedule = schedule
        self.inner = inner

    def notify(
        self,
        negotiation_id: str,
        status: NegotiationStatus,
        agreed_value: Optional[int]
    ) -> None:
        self.schedule(_deliver, self.inner, negotiation_id, status, agreed_value)


def _deliver(
    notifier: Notifier,
    negotiation_id: str,
    status: NegotiationStatus,
    agreed_value: Optional[int]
) -> None:
    try:
        notifier.notify(negotiation_id, status, agreed_value)
    except Exception:
        logger.warning("Notification for negotiation %s failed", negotiation_id, exc_info=True)
