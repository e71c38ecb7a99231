"""Database models package."""
from models.database import Base, get_session, close_db, get_pool_status, get_engine
from models.user import User, ROLE_ADMIN, ROLE_USER
from models.result import Result

__all__ = [
    "Base",
    "get_session",
    "close_db",
    "get_pool_status",
    "get_engine",
    "User",
    "ROLE_ADMIN",
    "ROLE_USER",
    "Result",
]
