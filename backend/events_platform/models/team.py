"""
Teams own events. Only team admins and event managers may create,
update or delete a team's events.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from events_platform.db.base import Base, TimestampMixin, one_of

TEAM_ROLES = ("team_admin", "event_manager", "team_member")
EVENT_MANAGING_ROLES = ("team_admin", "event_manager")


class Team(Base, TimestampMixin):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(String(1000), nullable=True)

    members = relationship("TeamMember", back_populates="team", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name})>"


class TeamMember(Base, TimestampMixin):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="team_member")

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        one_of("role", TEAM_ROLES, "check_team_member_role"),
    )

    @property
    def can_manage_events(self) -> bool:
        return self.role in EVENT_MANAGING_ROLES

    def __repr__(self) -> str:
        return f"<TeamMember(team={self.team_id}, user={self.user_id}, role={self.role})>"
