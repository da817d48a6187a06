from sqlalchemy import (
    Boolean, Column, String, DateTime, ForeignKey, JSON, Table, Text, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from .session import Base
from .types import EncryptedString
import uuid


def gen_uuid():
    return str(uuid.uuid4())

def utcnow():
    return datetime.now(timezone.utc)

class Team(Base):
    __tablename__ = "teams"
    id = Column(String, primary_key=True, default=gen_uuid)
    name = Column(String, nullable=False)
    owner_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=gen_uuid)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=True)
    current_team_id = Column(String, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SocialIntegration(Base):
    """One linked social account of a team. Disconnecting only clears ``is_active``."""
    __tablename__ = "social_integrations"
    __table_args__ = (
        UniqueConstraint("team_id", "platform", "platform_user_id", name="uq_social_integrations_team_platform_user"),
        Index("ix_social_integrations_team_platform_active", "team_id", "platform", "is_active"),
    )
    id = Column(String, primary_key=True, default=gen_uuid)
    team_id = Column(String, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    platform = Column(String, nullable=False)
    platform_user_id = Column(String, nullable=False)
    platform_username = Column(String, nullable=True)
    access_token = Column(EncryptedString, nullable=False)
    refresh_token = Column(EncryptedString, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    scopes = Column(JSON, nullable=True)
    profile_data = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


content_piece_media = Table(
    "content_piece_media",
    Base.metadata,
    Column("content_piece_id", String, ForeignKey("content_pieces.id", ondelete="CASCADE"), primary_key=True),
    Column("media_id", String, ForeignKey("media.id", ondelete="CASCADE"), primary_key=True),
)


class Media(Base):
    __tablename__ = "media"
    id = Column(String, primary_key=True, default=gen_uuid)
    team_id = Column(String, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String, nullable=False)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ContentPiece(Base):
    __tablename__ = "content_pieces"
    __table_args__ = (
        Index("ix_content_pieces_publish_status_schedule", "publish_status", "scheduled_publish_at"),
    )
    id = Column(String, primary_key=True, default=gen_uuid)
    team_id = Column(String, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    internal_name = Column(String, nullable=False)
    briefing_text = Column(Text, nullable=True)
    research_text = Column(Text, nullable=True)
    edited_text = Column(Text, nullable=True)
    publish_to_platforms = Column(JSON, nullable=True)
    published_platforms = Column(JSON, nullable=True)
    scheduled_publish_at = Column(DateTime(timezone=True), nullable=True)
    publish_status = Column(String, nullable=False, default="not_published")
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    media = relationship("Media", secondary=content_piece_media, lazy="selectin")
