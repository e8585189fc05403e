"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text

from messagely.storage import Base


class User(Base):
    """
    A registered account.

    Table: users
    Primary Key: username (uniqueness is enforced here, not in Python)
    """
    __tablename__ = "users"

    username = Column(String(64), primary_key=True)
    password = Column(String(255), nullable=False)  # bcrypt hash, never plaintext
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(32), nullable=False)
    join_at = Column(DateTime, nullable=False)
    last_login_at = Column(DateTime, nullable=True)


class Message(Base):
    """
    A direct message between two users.

    Table: messages
    read_at moves from NULL to a timestamp once and never changes again.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_username = Column(String(64), ForeignKey("users.username"), nullable=False, index=True)
    to_username = Column(String(64), ForeignKey("users.username"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    sent_at = Column(DateTime, nullable=False)
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("read_at IS NULL OR read_at >= sent_at", name="ck_messages_read_after_sent"),
    )
