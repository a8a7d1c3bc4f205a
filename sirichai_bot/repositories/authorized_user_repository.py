"""Authorized user allow-list queries."""

from typing import List, Optional

from sqlmodel import Session, select

from sirichai_bot.models.authorized_user import AuthorizedUser


class AuthorizedUserRepository:
    """Queries on the authorized_users table"""

    def __init__(self, db: Session):
        self.db = db

    def list_user_ids(self) -> List[str]:
        return list(self.db.exec(select(AuthorizedUser.user_id)).all())

    def contains(self, user_id: str) -> bool:
        """True when user_id contains any stored identifier (blank entries never match)"""
        if not user_id:
            return False
        return any(stored and stored in user_id for stored in self.list_user_ids())

    def add(self, user_id: str, note: Optional[str] = None) -> AuthorizedUser:
        entry = AuthorizedUser(user_id=user_id, note=note)
        self.db.add(entry)
        self.db.flush()
        return entry
