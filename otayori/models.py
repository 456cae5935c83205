"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Boolean, Column, Date, Integer, String, Text
from sqlalchemy.orm import declarative_base

# Base class for SQLAlchemy models
Base = declarative_base()


class Theme(Base):
    """
    A topic students can write in about, with an optional open window.

    Table: themes
    Themes are never deleted; ``is_active`` is the soft-delete flag.
    """
    __tablename__ = "themes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(String, nullable=False, index=True)  # Server time ISO-8601 UTC
    is_active = Column(Boolean, nullable=False, default=True, index=True)


class Message(Base):
    """
    A student submission (お便り).

    Table: messages
    ``theme_id`` is a plain column on purpose: references to unknown themes
    are accepted and resolve to a null theme title.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_name = Column(String, nullable=True)
    radio_name = Column(String, nullable=False)
    school_class = Column(String, nullable=True)
    theme_id = Column(Integer, nullable=True, index=True)
    content = Column(Text, nullable=False)
    share_name = Column(Boolean, nullable=False, default=False)
    share_class = Column(Boolean, nullable=False, default=False)
    share_theme = Column(Boolean, nullable=False, default=False)
    ip_address = Column(String, nullable=True)
    created_at = Column(String, nullable=False, index=True)  # Server time ISO-8601 UTC
    is_read = Column(Boolean, nullable=False, default=False)


class AccessToken(Base):
    """
    The shared staff access token.

    Table: access_token
    At most one row exists; rotation deletes every row before inserting.
    """
    __tablename__ = "access_token"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String, nullable=False, unique=True)
    created_at = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
