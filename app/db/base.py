from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import the models so they are registered with Base
from app.models import (  # noqa: E402,F401
    user,
    team,
    team_member,
    team_invitation,
    task,
    assignment_history,
    password_reset,
)
