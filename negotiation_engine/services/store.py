"""
Persistence boundary for negotiations.

Every write to the negotiations and negotiation_events tables goes through
NegotiationStore. A record update and its event are committed in the same
transaction, guarded by a compare-and-swap on the record's version.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from negotiation_engine.logger import get_logger
from negotiation_engine.models.domain import Negotiation
from negotiation_engine.models.events import NegotiationEvent
from negotiation_engine.services.collaborators import PairingInfo
from negotiation_engine.services.validator import EventDraft, NegotiationRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class Committed:
    version: int


@dataclass(frozen=True)
class VersionConflict:
    expected_version: int


@dataclass(frozen=True)
class PairingTaken:
    pairing_id: str


CommitResult = Union[Committed, VersionConflict]


def to_record(negotiation: Negotiation) -> NegotiationRecord:
    """Snapshot the mutable ORM row for the validator."""
    return NegotiationRecord(
        status=negotiation.status,
        provider_expectation=negotiation.provider_expectation,
        provider_offer=negotiation.provider_offer,
        seeker_offer=negotiation.seeker_offer,
        agreed_value=negotiation.agreed_value,
        version=negotiation.version
    )


class NegotiationStore:
    """Reads negotiations and commits versioned updates."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, negotiation_id: str) -> Optional[Negotiation]:
        # populate_existing so a retry never sees a stale identity-map copy
        return self.db.get(Negotiation, negotiation_id, populate_existing=True)

    def load_by_pairing(self, pairing_id: str) -> Optional[Negotiation]:
        return self.db.execute(
            select(Negotiation)
            .where(Negotiation.pairing_id == pairing_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def events(self, negotiation_id: str) -> List[NegotiationEvent]:
        """The event log in commit order."""
        return list(self.db.execute(
            select(NegotiationEvent)
            .where(NegotiationEvent.negotiation_id == negotiation_id)
            .order_by(NegotiationEvent.version)
        ).scalars())

    def list_for_participant(self, user_id: str) -> List[Negotiation]:
        return list(self.db.execute(
            select(Negotiation)
            .where(or_(Negotiation.provider_id == user_id, Negotiation.seeker_id == user_id))
            .order_by(Negotiation.created_at.desc())
        ).scalars())

    def insert(
        self,
        negotiation_id: str,
        pairing: PairingInfo,
        record: NegotiationRecord,
        event: EventDraft,
        actor_id: str
    ) -> Union[Negotiation, PairingTaken]:
        """
        Create a negotiation together with its opening event.

        Returns PairingTaken if another negotiation already holds the pairing
        (unique pairing_id), in which case nothing is written.
        """
        now = datetime.utcnow()
        negotiation = Negotiation(
            id=negotiation_id,
            pairing_id=pairing.pairing_id,
            provider_id=pairing.provider_id,
            seeker_id=pairing.seeker_id,
            status=record.status,
            provider_expectation=record.provider_expectation,
            provider_offer=record.provider_offer,
            seeker_offer=record.seeker_offer,
            agreed_value=record.agreed_value,
            version=record.version,
            created_at=now,
            updated_at=now
        )
        self.db.add(negotiation)
        self.db.add(self._event_row(negotiation_id, event, actor_id, now))

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Pairing %s already has a negotiation", pairing.pairing_id)
            return PairingTaken(pairing.pairing_id)

        return self.load(negotiation_id)

    def commit(
        self,
        negotiation_id: str,
        expected_version: int,
        record: NegotiationRecord,
        event: EventDraft,
        actor_id: str
    ) -> CommitResult:
        """
        Apply `record` and append `event` if the stored version is still
        `expected_version`. Both land or neither does.
        """
        if record.version != expected_version + 1 or event.version != record.version:
            raise ValueError(
                f"Commit must advance version {expected_version} by exactly one "
                f"(record={record.version}, event={event.version})"
            )

        now = datetime.utcnow()
        result = self.db.execute(
            update(Negotiation)
            .where(Negotiation.id == negotiation_id, Negotiation.version == expected_version)
            .values(
                status=record.status,
                provider_offer=record.provider_offer,
                seeker_offer=record.seeker_offer,
                agreed_value=record.agreed_value,
                version=record.version,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning(
                "Version conflict on negotiation %s (expected version %s)",
                negotiation_id, expected_version
            )
            return VersionConflict(expected_version)

        self.db.add(self._event_row(negotiation_id, event, actor_id, now))
        try:
            self.db.commit()
        except IntegrityError:
            # Another writer appended this version first; the UPDATE above is undone too
            self.db.rollback()
            logger.warning(
                "Event version %s already taken on negotiation %s",
                event.version, negotiation_id
            )
            return VersionConflict(expected_version)

        return Committed(record.version)

    def _event_row(
        self,
        negotiation_id: str,
        event: EventDraft,
        actor_id: str,
        created_at: datetime
    ) -> NegotiationEvent:
        return NegotiationEvent(
            negotiation_id=negotiation_id,
            version=event.version,
            actor_role=event.actor_role,
            actor_id=actor_id,
            action=event.action,
            amount=event.amount,
            note=event.note,
            created_at=created_at
        )
