"""User Repository - Read access to the user directory and team membership"""
from typing import List, Optional
from pymongo.collection import Collection

from .mongo_client import get_collection, to_document
from ..domain.models import User, TeamMember
from ..domain.enums import Role
from ..domain.errors import UserNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class UserRepository:
    """Repository for directory lookups"""

    def __init__(self):
        self._users: Collection = get_collection("users")
        self._team_members: Collection = get_collection("team_members")

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        doc = self._users.find_one({"user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return User.model_validate(doc)
        return None

    def get_user_or_raise(self, user_id: str) -> User:
        """Get user by ID or raise error"""
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    def get_users(self, user_ids: List[str]) -> List[User]:
        """Bulk lookup, unknown IDs are skipped"""
        if not user_ids:
            return []
        users = []
        for doc in self._users.find({"user_id": {"$in": list(user_ids)}}):
            doc.pop("_id", None)
            users.append(User.model_validate(doc))
        return users

    def get_team_member_ids(self, team_id: str, role: Optional[Role] = None) -> List[str]:
        """User IDs of a team's members, optionally filtered by role"""
        query = {"team_id": team_id}
        if role:
            query["role"] = role.value
        return [doc["user_id"] for doc in self._team_members.find(query, {"user_id": 1})]

    def is_team_member(self, team_id: str, user_id: str) -> bool:
        """Check team membership"""
        return self._team_members.count_documents(
            {"team_id": team_id, "user_id": user_id}, limit=1
        ) > 0

    def upsert_user(self, user: User) -> User:
        """Insert or replace a directory entry (seeding and sync)"""
        self._users.replace_one({"user_id": user.user_id}, to_document(user, user.user_id), upsert=True)
        return user

    def add_team_member(self, member: TeamMember) -> TeamMember:
        """Insert or replace a membership row (seeding and sync)"""
        self._team_members.replace_one(
            {"team_id": member.team_id, "user_id": member.user_id},
            to_document(member),
            upsert=True
        )
        return member
