"""
EventRegistration: a user's claim on a seat at an event.

- UNIQUE (event_id, user_id): cancelling and registering again reactivates
  the same row, it never inserts a second one
- Rows are never deleted on cancellation; status flips instead
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from events_platform.db.base import Base, one_of

REGISTRATION_STATUSES = ("registered", "cancelled", "waitlisted", "attended")


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="registered")
    registration_time = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    event = relationship("Event", back_populates="registrations")
    user = relationship("User")
    tickets = relationship("Ticket", back_populates="registration", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registration_user"),
        one_of("status", REGISTRATION_STATUSES, "check_registration_status"),
    )

    def __repr__(self) -> str:
        return f"<EventRegistration(id={self.id}, event={self.event_id}, user={self.user_id}, status={self.status})>"
