"""Domain models - the pairing mirror and the negotiation record."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from negotiation_engine.database import Base
from negotiation_engine.models.enums import NegotiationStatus, PairingStatus


class Pairing(Base):
    """
    An accepted match between a Provider and a Seeker.

    Owned and written by the matching subsystem. The negotiation engine
    only reads it, and only when a negotiation is opened.
    """
    __tablename__ = "pairings"

    id = Column(String, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    seeker_id = Column(String, nullable=False, index=True)
    status = Column(SQLEnum(PairingStatus), nullable=False, default=PairingStatus.PENDING)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Negotiation(Base):
    """
    Projection of a negotiation's event log: the current status and offers.

    Invariants:
    - At most one Negotiation per pairing (unique pairing_id)
    - provider_expectation is written once, at creation
    - agreed_value is set if and only if status is Agreed
    - version equals the sequence number of the latest event and only
      moves forward through NegotiationStore.commit
    """
    __tablename__ = "negotiations"

    id = Column(String, primary_key=True)
    pairing_id = Column(String, nullable=False, unique=True, index=True)
    provider_id = Column(String, nullable=False, index=True)
    seeker_id = Column(String, nullable=False, index=True)
    status = Column(SQLEnum(NegotiationStatus), nullable=False, default=NegotiationStatus.PENDING)

    provider_expectation = Column(Integer, nullable=False)
    provider_offer = Column(Integer, nullable=False)  # Provider's latest figure
    seeker_offer = Column(Integer, nullable=True)
    agreed_value = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    events = relationship(
        "NegotiationEvent",
        back_populates="negotiation",
        order_by="NegotiationEvent.version",
        lazy="selectin",
    )
