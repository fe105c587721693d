from events_platform.models.user import User
from events_platform.models.team import Team, TeamMember
from events_platform.models.event import Event
from events_platform.models.registration import EventRegistration
from events_platform.models.payment import Payment
from events_platform.models.ticket import Ticket

__all__ = [
    "User", "Team", "TeamMember", "Event",
    "EventRegistration", "Payment", "Ticket",
]
