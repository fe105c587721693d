"""
Payment: one successful checkout session.

stripe_session_id is UNIQUE. Both the client sync call and the provider
webhook try to record the same session; the second writer either sees the
row under the event lock or loses on this constraint, never duplicates it.
Failure notifications arrive keyed by payment intent, not session.
"""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String

from events_platform.db.base import Base, TimestampMixin, one_of

PAYMENT_STATUSES = ("pending", "succeeded", "failed")


class Payment(Base, TimestampMixin):
    __tablename__ = "stripe_payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_session_id = Column(String(255), nullable=False, unique=True)
    stripe_payment_intent_id = Column(String(255), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="gbp")
    status = Column(String(20), nullable=False, default="pending")

    __table_args__ = (
        one_of("status", PAYMENT_STATUSES, "check_payment_status"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, session={self.stripe_session_id}, status={self.status})>"
