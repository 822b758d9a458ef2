# routers/comments.py — Item comments (author-only edit/delete)
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_control import EntityRef, require_access, require_comment_author
from activity_recorder import ActivityRecorder, get_activity_recorder
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound
from models import Board, Comment, Group, Item, User, isoformat_utc, utcnow

router = APIRouter(prefix="/api/v1/comments", tags=["Comments"])


class CommentCreate(BaseModel):
    item_id: str
    content: str = Field(..., min_length=1, max_length=10000)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class CommentOut(BaseModel):
    id: str
    item_id: str
    user_id: str
    author_name: str
    author_avatar: Optional[str] = None
    content: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _comment_out(c: Comment, author: Optional[User]) -> dict:
    return CommentOut(
        id=c.id,
        item_id=c.item_id,
        user_id=c.user_id,
        author_name=author.name if author else "Unknown",
        author_avatar=author.avatar_url if author else None,
        content=c.content,
        created_at=isoformat_utc(c.created_at),
        updated_at=isoformat_utc(c.updated_at),
    ).model_dump()


@router.post("", status_code=201)
async def add_comment(
    data: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    await require_access(db, user.id, EntityRef.item(data.item_id))

    row = (await db.execute(
        select(Item.title, Board.id)
        .join(Group, Item.group_id == Group.id)
        .join(Board, Group.board_id == Board.id)
        .where(Item.id == data.item_id)
    )).first()
    if row is None:
        raise NotFound("Item", data.item_id)
    item_title, board_id = row

    comment = Comment(item_id=data.item_id, user_id=user.id, content=data.content)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)

    await activity.record(
        user.id, "commented", "item", data.item_id, f'Commented on "{item_title}"',
        board_id=board_id, item_id=data.item_id,
    )
    return _comment_out(comment, await db.get(User, user.id))


@router.get("")
async def list_comments(
    item_id: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Oldest first"""
    await require_access(db, user.id, EntityRef.item(item_id))
    result = await db.execute(
        select(Comment)
        .where(Comment.item_id == item_id)
        .options(selectinload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    return [_comment_out(c, c.author) for c in result.scalars().all()]


@router.patch("/{comment_id}")
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await require_comment_author(db, user.id, comment_id)
    comment.content = data.content
    comment.updated_at = utcnow()
    await db.commit()
    await db.refresh(comment)
    return _comment_out(comment, await db.get(User, user.id))


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_comment_author(db, user.id, comment_id)
    await db.execute(delete(Comment).where(Comment.id == comment_id))
    await db.commit()
    return {"status": "deleted", "comment_id": comment_id}
