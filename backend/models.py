# models.py — Database models for BoardFlow
# Ownership chain: Workspace -> Board -> Group -> Item -> (Comment, ChecklistItem)
# - UUID string primary keys everywhere
# - Deletes cascade through ON DELETE CASCADE foreign keys (storage-enforced)
# - ActivityLog is append-only; Notification belongs to exactly one user

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Column, String, DateTime, Boolean, Float, Text,
    Enum as SQLEnum, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    return ensure_utc(dt).isoformat() if dt else None


# ============================================================
# ENUMS
# ============================================================

class ItemPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationType(str, PyEnum):
    ASSIGNMENT = "assignment"
    STATUS = "status"
    REMINDER = "reminder"


class EntityKind(str, PyEnum):
    WORKSPACE = "workspace"
    BOARD = "board"
    GROUP = "group"
    ITEM = "item"
    COMMENT = "comment"
    CHECKLIST_ITEM = "checklist_item"


# Item status is an open set
DEFAULT_STATUS = "todo"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False, default="")
    avatar_url = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    groq_api_key = Column(String, nullable=True)
    groq_api_key_last4 = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# WORKSPACES (root of the access tree)
# ============================================================

class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner = relationship("User", foreign_keys=[owner_id])


class WorkspaceMember(Base):
    """Membership grants access; role is advisory only"""
    __tablename__ = "workspace_members"

    id = Column(String, primary_key=True, default=new_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default="member")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )


# ============================================================
# BOARDS / GROUPS / ITEMS
# ============================================================

class Board(Base):
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    workspace_id = Column(String, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_retainer = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Group(Base):
    """Ordered bucket of items within a board"""
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=True)
    position = Column(Float, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_group_board_pos", "board_id", "position"),
    )


class Item(Base):
    """Atomic task unit; status/is_archived/completed_at/retainer_hours move together"""
    __tablename__ = "items"

    id = Column(String, primary_key=True, default=new_uuid)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    position = Column(Float, nullable=False, default=1)
    status = Column(String, nullable=False, default=DEFAULT_STATUS, index=True)
    priority = Column(SQLEnum(ItemPriority), nullable=False, default=ItemPriority.MEDIUM)
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    assigned_to = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    retainer_hours = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    assignee = relationship("User", foreign_keys=[assigned_to])

    __table_args__ = (
        Index("idx_item_group_pos", "group_id", "position"),
        Index("idx_item_assignee_archived", "assigned_to", "is_archived"),
    )


class ChecklistItem(Base):
    __tablename__ = "checklist_items"

    id = Column(String, primary_key=True, default=new_uuid)
    item_id = Column(String, ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(String, nullable=False)
    position = Column(Float, nullable=False, default=1)
    is_done = Column(Boolean, nullable=False, default=False)
    hours = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Comment(Base):
    """Comment on an item; only its author may edit or delete it"""
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=new_uuid)
    item_id = Column(String, ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    author = relationship("User")


# ============================================================
# ACTIVITY LOG (append-only: never updated or deleted)
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False)
    # No FK: entries keep their item reference after the item is deleted
    item_id = Column(String, nullable=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action = Column(String, nullable=False)  # "created", "updated", "moved", "deleted", "commented"
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User")

    __table_args__ = (
        Index("idx_activity_board_time", "board_id", "created_at"),
    )


# ============================================================
# NOTIFICATIONS
# ============================================================

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False, default=NotificationType.ASSIGNMENT.value)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    item_id = Column(String, ForeignKey("items.id", ondelete="SET NULL"), nullable=True)
    board_id = Column(String, ForeignKey("boards.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("idx_notification_user_time", "user_id", "created_at"),
        Index("idx_notification_reminder", "user_id", "item_id", "type", "created_at"),
    )
