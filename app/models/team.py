from sqlalchemy import Column, Integer, String, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class Team(Base):
    __tablename__ = "teams"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, index=True)
    description = Column(String(200), nullable=True)
    created_by_id = Column("created_by", Integer, ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    created_by = relationship("User", foreign_keys=[created_by_id], lazy="selectin")
    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamMember.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', active={self.is_active})>"

    def get_member(self, user_id):
        """Membership row for ``user_id``, or None."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def owner(self):
        for member in self.members:
            if member.role == "owner":
                return member
        return None
