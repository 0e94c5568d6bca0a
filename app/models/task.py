from datetime import timedelta
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Text, JSON
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow

DUE_SOON_WINDOW = timedelta(days=7)


class Task(Base):
    """
    A unit of work, personal (no team) or owned by a team.

    ``is_overdue``, ``is_due_soon`` and ``age`` are derived on read and never stored.
    """
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="todo", index=True)
    priority = Column(String(10), nullable=False, default="medium", index=True)

    assigned_to_id = Column("assigned_to", Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column("created_by", Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by_id = Column("assigned_by", Integer, ForeignKey("users.id"), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)

    due_date = Column(UTCDateTime, nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)
    archived = Column(Boolean, default=False, nullable=False, index=True)
    archived_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    assignment_date = Column(UTCDateTime, nullable=True)
    visibility = Column(String(10), nullable=False, default="personal")

    created_at = Column(UTCDateTime, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="selectin")
    created_by = relationship("User", foreign_keys=[created_by_id], lazy="selectin")
    assigned_by = relationship("User", foreign_keys=[assigned_by_id], lazy="selectin")
    team = relationship("Team", lazy="selectin")
    history = relationship(
        "AssignmentHistory",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="AssignmentHistory.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"

    @property
    def is_team_task(self) -> bool:
        return self.team_id is not None

    @property
    def is_overdue(self) -> bool:
        return is_overdue(self.status, self.due_date)

    @property
    def is_due_soon(self) -> bool:
        if self.status == "completed" or self.due_date is None:
            return False
        now = utcnow()
        return self.due_date >= now and self.due_date <= now + DUE_SOON_WINDOW

    @property
    def age(self) -> int:
        """Whole days since creation."""
        if self.created_at is None:
            return 0
        return (utcnow() - self.created_at).days


def is_overdue(status, due_date, now=None) -> bool:
    """Not completed, has a due date, and the due date has passed."""
    if status == "completed" or due_date is None:
        return False
    return due_date < (now or utcnow())
