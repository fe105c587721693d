"""
Event model with ticket inventory tracking.

Key design decisions:
- `max_attendees` is the attendee cap; NULL means unlimited
- `tickets_remaining` starts equal to max_attendees but is an independent
  counter: operators can adjust sellable inventory without touching the cap
- Every registration/cancellation moves tickets_remaining by exactly one,
  always while holding the event row lock
- CHECK constraints are the last line of defence (no negative inventory,
  end after start, non-negative price)
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from events_platform.db.base import Base, TimestampMixin, one_of

EVENT_STATUSES = ("draft", "published", "cancelled", "past")


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(String(20), nullable=False, default="draft")
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    max_attendees = Column(Integer, nullable=True)
    tickets_remaining = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True)

    team = relationship("Team")
    registrations = relationship(
        "EventRegistration",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_event_times"),
        CheckConstraint(
            "tickets_remaining IS NULL OR tickets_remaining >= 0",
            name="check_tickets_remaining_non_negative",
        ),
        CheckConstraint("price IS NULL OR price >= 0", name="check_event_price"),
        one_of("status", EVENT_STATUSES, "check_event_status"),
        Index("ix_events_start_time", "start_time"),
        Index("ix_events_status_start_time", "status", "start_time"),
    )

    @property
    def tracks_inventory(self) -> bool:
        return self.tickets_remaining is not None

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, status={self.status}, "
            f"remaining={self.tickets_remaining}/{self.max_attendees})>"
        )
