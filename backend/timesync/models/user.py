"""User model for authentication."""

from sqlalchemy import Column, Integer, String, Boolean
from timesync.database import Base


class User(Base):
    """Application user; owns time entries, goals, mappings and a remote connection."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"
