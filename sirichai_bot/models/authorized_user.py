"""Allow-list of users permitted to generate quotations."""

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from sirichai_bot.utils.clock import utc_now


class AuthorizedUser(SQLModel, table=True):
    """
    Allow-list entry.

    A requesting user id is authorized when it contains user_id as a
    substring (LINE ids are stored as-is, so prefixed ids still match).
    """
    __tablename__ = "authorized_users"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    note: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utc_now)
