"""Database models package."""
from models.database import Base, get_session, init_db, close_db, get_pool_status, get_engine
from models.repository import Repository
from models.commit import Commit
from models.work_item import WorkItem
from models.pull_request import PullRequest
from models.team_member import TeamMember
from models.sprint import Sprint

__all__ = [
    "Base",
    "get_session",
    "init_db",
    "close_db",
    "get_pool_status",
    "get_engine",
    "Repository",
    "Commit",
    "WorkItem",
    "PullRequest",
    "TeamMember",
    "Sprint",
]
