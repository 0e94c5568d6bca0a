from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.db.types import UTCDateTime


class AssignmentHistory(Base):
    """Append-only log of assignment changes on a task."""
    __tablename__ = "assignment_history"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to_id = Column("assigned_to", Integer, ForeignKey("users.id"), nullable=True)
    assigned_by_id = Column("assigned_by", Integer, ForeignKey("users.id"), nullable=True)
    assignment_date = Column(UTCDateTime, nullable=True)
    unassigned_date = Column(UTCDateTime, nullable=True)
    note = Column(String(200), nullable=True)

    task = relationship("Task", back_populates="history")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="selectin")
    assigned_by = relationship("User", foreign_keys=[assigned_by_id], lazy="selectin")
