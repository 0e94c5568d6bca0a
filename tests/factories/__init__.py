"""
Data factories for test data generation.

Factories use factory-boy to create realistic test data with sensible defaults.
All factories support async creation via create_async() method.

Usage:
    from tests.factories import UserFactory, TeamFactory, TaskFactory

    # Create user
    user = await UserFactory.create_async(db_session, email="custom@test.com")

    # Create team with its owner slot
    team = await TeamFactory.create_with_owner_async(db_session, owner=user)

    # Create a team task
    task = await TaskFactory.create_async(db_session, created_by_id=user.id, team_id=team.id)
"""

from tests.factories.user import UserFactory
from tests.factories.team import TeamFactory
from tests.factories.team_member import TeamMemberFactory
from tests.factories.task import TaskFactory

__all__ = [
    "UserFactory",
    "TeamFactory",
    "TeamMemberFactory",
    "TaskFactory",
]
