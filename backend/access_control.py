# access_control.py — Workspace-chain access checks
# Every check re-walks the live ownership chain up to the workspace:
#   comment / checklist_item -> item -> group -> board -> workspace
# Nothing is cached between checks, and an unresolvable link denies access.
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AccessDenied, NotFound
from models import (
    Board, ChecklistItem, Comment, EntityKind, Group, Item,
    Workspace, WorkspaceMember,
)


@dataclass(frozen=True)
class EntityRef:
    kind: EntityKind
    id: str

    @classmethod
    def workspace(cls, entity_id: str) -> "EntityRef":
        return cls(EntityKind.WORKSPACE, entity_id)

    @classmethod
    def board(cls, entity_id: str) -> "EntityRef":
        return cls(EntityKind.BOARD, entity_id)

    @classmethod
    def group(cls, entity_id: str) -> "EntityRef":
        return cls(EntityKind.GROUP, entity_id)

    @classmethod
    def item(cls, entity_id: str) -> "EntityRef":
        return cls(EntityKind.ITEM, entity_id)

    @classmethod
    def comment(cls, entity_id: str) -> "EntityRef":
        return cls(EntityKind.COMMENT, entity_id)

    @classmethod
    def checklist_item(cls, entity_id: str) -> "EntityRef":
        return cls(EntityKind.CHECKLIST_ITEM, entity_id)


@dataclass(frozen=True)
class AccessGrant:
    workspace_id: str
    owner_id: str
    is_owner: bool


# kind -> (model, parent-id column, parent kind, label)
_PARENT_LINKS = {
    EntityKind.BOARD: (Board, Board.workspace_id, EntityKind.WORKSPACE, "Board"),
    EntityKind.GROUP: (Group, Group.board_id, EntityKind.BOARD, "Group"),
    EntityKind.ITEM: (Item, Item.group_id, EntityKind.GROUP, "Item"),
    EntityKind.COMMENT: (Comment, Comment.item_id, EntityKind.ITEM, "Comment"),
    EntityKind.CHECKLIST_ITEM: (ChecklistItem, ChecklistItem.item_id, EntityKind.ITEM, "Checklist item"),
}


async def ancestor_workspace_of(db: AsyncSession, ref: EntityRef) -> str:
    """Resolve the owning workspace id by walking parent links; raises NotFound"""
    current = ref
    while current.kind != EntityKind.WORKSPACE:
        model, parent_col, parent_kind, label = _PARENT_LINKS[current.kind]
        result = await db.execute(select(parent_col).where(model.id == current.id))
        parent_id = result.scalar_one_or_none()
        if parent_id is None:
            raise NotFound(label, current.id)
        current = EntityRef(parent_kind, parent_id)
    return current.id


async def _grant_for(db: AsyncSession, actor_id: str, workspace_id: str) -> Optional[AccessGrant]:
    result = await db.execute(select(Workspace.owner_id).where(Workspace.id == workspace_id))
    owner_id = result.scalar_one_or_none()
    if owner_id is None:
        raise NotFound("Workspace", workspace_id)
    if owner_id == actor_id:
        return AccessGrant(workspace_id, owner_id, True)

    member = await db.execute(
        select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == actor_id,
        )
    )
    if member.scalar_one_or_none() is None:
        return None
    return AccessGrant(workspace_id, owner_id, False)


async def can_access(db: AsyncSession, actor_id: str, ref: EntityRef) -> bool:
    try:
        workspace_id = await ancestor_workspace_of(db, ref)
        return await _grant_for(db, actor_id, workspace_id) is not None
    except NotFound:
        return False


async def require_access(db: AsyncSession, actor_id: str, ref: EntityRef) -> AccessGrant:
    """Gate for reads and writes below a workspace.

    A missing entity or a broken link anywhere in the chain is reported as
    NotFound; an intact chain the actor is not part of is AccessDenied.
    """
    workspace_id = await ancestor_workspace_of(db, ref)
    grant = await _grant_for(db, actor_id, workspace_id)
    if grant is None:
        raise AccessDenied("You do not have access to this workspace")
    return grant


async def require_owner(db: AsyncSession, actor_id: str, ref: EntityRef) -> AccessGrant:
    """Destructive workspace/board operations need the workspace owner"""
    grant = await require_access(db, actor_id, ref)
    if not grant.is_owner:
        raise AccessDenied("Only the workspace owner can perform this action")
    return grant


async def require_comment_author(db: AsyncSession, actor_id: str, comment_id: str) -> Comment:
    await require_access(db, actor_id, EntityRef.comment(comment_id))
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment", comment_id)
    if comment.user_id != actor_id:
        raise AccessDenied("Only the author can modify this comment")
    return comment
