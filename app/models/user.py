from sqlalchemy import Boolean, Column, Integer, String, ForeignKey, Index, func, text
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    # Unique among non-deleted users, see uq_users_active_email
    email = Column(String(100), index=True, nullable=False)
    password = Column(String(150), nullable=False)
    role = Column(String(20), default="user", nullable=False)

    # Preferences
    theme = Column(String(10), default="system", nullable=False)
    notify_email = Column(Boolean, default=True, nullable=False)
    notify_push = Column(Boolean, default=False, nullable=False)
    notify_task_reminders = Column(Boolean, default=True, nullable=False)
    timezone = Column(String(50), default="UTC", nullable=False)

    # Usa use_alter=True para quebrar o ciclo users <-> teams
    current_team_id = Column(
        Integer,
        ForeignKey("teams.id", use_alter=True, name="fk_users_current_team_id", ondelete="SET NULL"),
        nullable=True,
    )
    last_active_at = Column(UTCDateTime, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', deleted={self.is_deleted})>"


# Case-insensitive; deleted accounts release their address
Index(
    "uq_users_active_email",
    func.lower(User.__table__.c.email),
    unique=True,
    sqlite_where=text("is_deleted = 0"),
    postgresql_where=text("is_deleted = false"),
)
