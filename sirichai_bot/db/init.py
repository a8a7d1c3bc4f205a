"""Initialize database tables."""
import logging

from sqlmodel import SQLModel

from sirichai_bot.db.config import Database
from sirichai_bot.models.authorized_user import AuthorizedUser  # noqa: F401
from sirichai_bot.models.conversation import Conversation  # noqa: F401
from sirichai_bot.models.message import Message  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(database: Database) -> None:
    """Create all tables in the database."""
    logger.info("Creating all tables...")
    SQLModel.metadata.create_all(database.engine)
    logger.info("Tables created successfully.")
