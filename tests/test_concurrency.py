"""
Tests for optimistic concurrency control.

Races are staged deterministically: a competing writer is run between a
request's read and its commit, so the request's commit meets a newer
version than the one it validated against.
"""
import pytest
from negotiation_engine.models.domain import Negotiation
from negotiation_engine.models.enums import ActorRole, EventAction, NegotiationStatus
from negotiation_engine.models.events import NegotiationEvent
from negotiation_engine.services.errors import ConcurrencyExhausted, InvalidTransition
from negotiation_engine.services.negotiation_service import NegotiationService
from negotiation_engine.services.store import (
    Committed,
    NegotiationStore,
    VersionConflict,
    to_record,
)
from negotiation_engine.services.validator import CounterOffer, validate

from conftest import PROVIDER, SEEKER


class InterleavingStore(NegotiationStore):
    """Runs `competitor` once, just before this store's first commit."""

    def __init__(self, db, competitor):
        super().__init__(db)
        self.competitor = competitor
        self.commit_calls = 0

    def commit(self, *args, **kwargs):
        self.commit_calls += 1
        if self.competitor is not None:
            competitor, self.competitor = self.competitor, None
            competitor()
        return super().commit(*args, **kwargs)


class AlwaysConflictingStore(NegotiationStore):
    """Every commit loses the race."""

    def __init__(self, db):
        super().__init__(db)
        self.commit_calls = 0

    def commit(self, negotiation_id, expected_version, record, event, actor_id):
        self.commit_calls += 1
        return VersionConflict(expected_version)


def racing_service(db_session, competitor):
    service = NegotiationService(db_session)
    service.store = InterleavingStore(db_session, competitor)
    return service


class TestStoreCompareAndSwap:
    """The store admits exactly one writer per version."""

    def test_second_writer_on_same_version_conflicts(self, db_session, open_negotiation):
        store = NegotiationStore(db_session)
        record = to_record(store.load(open_negotiation.id))

        first = validate(record, CounterOffer(amount=60000), ActorRole.SEEKER)
        second = validate(record, CounterOffer(amount=55000), ActorRole.SEEKER)

        assert store.commit(open_negotiation.id, 1, first.record, first.event, SEEKER) == Committed(2)
        assert store.commit(open_negotiation.id, 1, second.record, second.event, SEEKER) == VersionConflict(1)

        negotiation = store.load(open_negotiation.id)
        assert negotiation.version == 2
        assert negotiation.seeker_offer == 60000
        assert [e.version for e in store.events(open_negotiation.id)] == [1, 2]

    def test_record_and_event_commit_together(self, db_session, open_negotiation):
        """
        INVARIANT: A record never advances without its event.
        If the event version is already taken, the record update is undone too.
        """
        # Plant a stray event at version 2 behind the store's back
        db_session.add(NegotiationEvent(
            negotiation_id=open_negotiation.id,
            version=2,
            actor_role=ActorRole.SEEKER,
            actor_id=SEEKER,
            action=EventAction.ANNOTATE,
            note="stray"
        ))
        db_session.commit()

        store = NegotiationStore(db_session)
        result = validate(to_record(store.load(open_negotiation.id)), CounterOffer(amount=60000), ActorRole.SEEKER)

        assert store.commit(open_negotiation.id, 1, result.record, result.event, SEEKER) == VersionConflict(1)

        negotiation = store.load(open_negotiation.id)
        assert negotiation.version == 1
        assert negotiation.status == NegotiationStatus.PENDING
        assert negotiation.seeker_offer is None

    def test_commit_must_advance_by_one(self, db_session, open_negotiation):
        store = NegotiationStore(db_session)
        result = validate(to_record(store.load(open_negotiation.id)), CounterOffer(amount=60000), ActorRole.SEEKER)

        with pytest.raises(ValueError):
            store.commit(open_negotiation.id, 0, result.record, result.event, SEEKER)


class TestRetryOnConflict:
    """The loser of a race re-reads and recomputes its decision."""

    def test_simultaneous_counter_offers_both_land_in_order(self, db_session, active_negotiation):
        nid = active_negotiation.id
        rival = NegotiationService(db_session)
        service = racing_service(db_session, lambda: rival.propose_or_counter(nid, PROVIDER, 70000))

        negotiation = service.propose_or_counter(nid, SEEKER, 65000)

        # One conflict, then a successful retry on top of the rival's commit
        assert service.store.commit_calls == 2
        assert negotiation.version == 4
        assert negotiation.provider_offer == 70000
        assert negotiation.seeker_offer == 65000
        assert [(e.version, e.actor_role, e.amount) for e in negotiation.events[2:]] == [
            (3, ActorRole.PROVIDER, 70000),
            (4, ActorRole.SEEKER, 65000),
        ]

    def test_retry_is_recomputed_not_replayed(self, db_session, open_negotiation):
        """
        Seeker counters while Provider rejects. The Seeker's retry sees the
        rejection and is refused instead of being written over it.
        """
        nid = open_negotiation.id
        rival = NegotiationService(db_session)
        service = racing_service(db_session, lambda: rival.reject(nid, PROVIDER))

        with pytest.raises(InvalidTransition):
            service.propose_or_counter(nid, SEEKER, 60000)

        negotiation = service.get(nid)
        assert negotiation.status == NegotiationStatus.REJECTED
        assert negotiation.seeker_offer is None
        assert [e.action for e in negotiation.events] == [EventAction.OFFER, EventAction.REJECT]

    def test_accept_takes_the_figure_that_won_the_race(self, db_session, active_negotiation):
        """Provider accepts 60000 while Seeker moves to 65000: the agreement is at 65000."""
        nid = active_negotiation.id
        rival = NegotiationService(db_session)
        service = racing_service(db_session, lambda: rival.propose_or_counter(nid, SEEKER, 65000))

        negotiation = service.accept(nid, PROVIDER)

        assert negotiation.status == NegotiationStatus.AGREED
        assert negotiation.agreed_value == 65000

    def test_retries_are_bounded(self, db_session, active_negotiation):
        service = NegotiationService(db_session, max_retries=3)
        service.store = AlwaysConflictingStore(db_session)

        with pytest.raises(ConcurrencyExhausted) as exc_info:
            service.propose_or_counter(active_negotiation.id, PROVIDER, 70000)

        assert exc_info.value.attempts == 3
        assert service.store.commit_calls == 3
        assert db_session.query(NegotiationEvent).filter(
            NegotiationEvent.negotiation_id == active_negotiation.id
        ).count() == 2


class TestConcurrentCreate:
    """Two creates for one pairing: the unique pairing_id picks the winner."""

    def test_losing_create_returns_winner(self, db_session, service, pairing):
        rival = NegotiationService(db_session)
        store = service.store
        original_load_by_pairing = store.load_by_pairing
        calls = []

        def load_by_pairing(pairing_id):
            # The rival opens the negotiation right after our existence check
            result = original_load_by_pairing(pairing_id)
            if not calls:
                calls.append(pairing_id)
                rival.create(pairing_id, PROVIDER, 81000)
            return result

        store.load_by_pairing = load_by_pairing

        negotiation, created = service.create(pairing.id, PROVIDER, 80000)

        assert created is False
        assert negotiation.provider_expectation == 81000
        assert db_session.query(Negotiation).count() == 1
