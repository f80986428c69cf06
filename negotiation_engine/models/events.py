"""
Negotiation event log model.

Rows here are the source of truth for a negotiation; the Negotiation row
is a cache that can be rebuilt by replaying them in version order.
"""
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from negotiation_engine.database import Base
from negotiation_engine.models.enums import ActorRole, EventAction


class NegotiationEvent(Base):
    """
    Immutable negotiation event.

    Invariants:
    - Once written, never edited or deleted
    - Append-only, ordered by version (commit sequence), not by timestamp
    - No two events of one negotiation share a version
    """
    __tablename__ = "negotiation_events"
    __table_args__ = (
        UniqueConstraint("negotiation_id", "version", name="uq_negotiation_event_version"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    negotiation_id = Column(String, ForeignKey("negotiations.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    actor_role = Column(SQLEnum(ActorRole), nullable=False)
    actor_id = Column(String, nullable=False)
    action = Column(SQLEnum(EventAction), nullable=False)
    amount = Column(Integer, nullable=True)  # Only for offer / counter_offer
    note = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    negotiation = relationship("Negotiation", back_populates="events")
