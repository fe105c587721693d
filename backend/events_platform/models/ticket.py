"""
Ticket: the redeemable proof of a registration.

ticket_code is UNIQUE; issuance retries with a fresh code on the (very
unlikely) collision. Status moves forward only: valid -> used on
redemption, valid/pending_payment -> cancelled when the registration is
cancelled (a reactivated registration resets its ticket to valid).
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from events_platform.db.base import Base, TimestampMixin, one_of

TICKET_STATUSES = ("valid", "used", "cancelled", "expired", "pending_payment")


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_id = Column(
        Integer,
        ForeignKey("event_registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ticket_code = Column(String(64), nullable=False, unique=True)
    paid = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="valid")
    issued_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    used_at = Column(DateTime(timezone=True), nullable=True)
    payment_id = Column(Integer, ForeignKey("stripe_payments.id", ondelete="SET NULL"), nullable=True)

    registration = relationship("EventRegistration", back_populates="tickets")
    event = relationship("Event")
    user = relationship("User")

    __table_args__ = (
        one_of("status", TICKET_STATUSES, "check_ticket_status"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, code={self.ticket_code}, status={self.status})>"
