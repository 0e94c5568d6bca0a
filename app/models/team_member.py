from sqlalchemy import Column, Integer, String, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class TeamMember(Base):
    """
    A user's slot in a team.

    At most one member per team holds the owner role.

    Attributes:
        role: 'owner', 'admin' or 'collaborator'
        invited_by: User who sent the accepted invitation (None for the creator)
    """
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="collaborator")
    invited_by_id = Column("invited_by", Integer, ForeignKey("users.id"), nullable=True)
    joined_at = Column(UTCDateTime, default=utcnow)

    team = relationship("Team", back_populates="members")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
    invited_by = relationship("User", foreign_keys=[invited_by_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint('team_id', 'user_id', name='uq_team_member'),
        Index(
            "uq_team_owner",
            "team_id",
            unique=True,
            sqlite_where=text("role = 'owner'"),
            postgresql_where=text("role = 'owner'"),
        ),
    )

    def __repr__(self):
        return f"<TeamMember(team_id={self.team_id}, user_id={self.user_id}, role='{self.role}')>"
