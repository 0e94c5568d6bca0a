from sqlalchemy import Column, Integer, String, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class TeamInvitation(Base):
    """
    Invitation owned by the invitee.

    At most one pending invitation may exist per (user, team) pair.
    """
    __tablename__ = "team_invitations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    invited_by_id = Column("invited_by", Integer, ForeignKey("users.id"), nullable=True)
    role = Column(String(20), nullable=False, default="collaborator")
    status = Column(String(20), nullable=False, default="pending")  # pending, accepted, declined
    invited_at = Column(UTCDateTime, default=utcnow)
    responded_at = Column(UTCDateTime, nullable=True)

    team = relationship("Team", lazy="selectin")
    invited_by = relationship("User", foreign_keys=[invited_by_id], lazy="selectin")

    __table_args__ = (
        Index(
            "uq_pending_invitation",
            "user_id",
            "team_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self):
        return f"<TeamInvitation(user_id={self.user_id}, team_id={self.team_id}, status='{self.status}')>"
