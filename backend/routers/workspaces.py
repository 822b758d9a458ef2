# routers/workspaces.py — Workspaces, membership and the workspace roadmap
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_control import EntityRef, require_access, require_owner
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import Conflict, NotFound, ValidationError
from models import Board, User, Workspace, WorkspaceMember, isoformat_utc, utcnow
from roadmap import workspace_roadmap

router = APIRouter(prefix="/api/v1/workspaces", tags=["Workspaces"])


# ============================================================
# SCHEMAS
# ============================================================

class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class WorkspaceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None


class MemberAdd(BaseModel):
    email: EmailStr
    role: str = Field(default="member", min_length=1, max_length=50)


class UserBrief(BaseModel):
    id: str
    email: str
    name: str
    avatar_url: Optional[str] = None


class MemberOut(BaseModel):
    id: str
    user_id: str
    role: str
    user: Optional[UserBrief] = None
    created_at: Optional[str] = None


class WorkspaceOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_id: str
    is_owner: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _user_brief(u: Optional[User]) -> Optional[dict]:
    if u is None:
        return None
    return UserBrief(id=u.id, email=u.email, name=u.name or "", avatar_url=u.avatar_url).model_dump()


def _workspace_out(ws: Workspace, user_id: str) -> dict:
    return WorkspaceOut(
        id=ws.id,
        name=ws.name,
        description=ws.description,
        owner_id=ws.owner_id,
        is_owner=ws.owner_id == user_id,
        created_at=isoformat_utc(ws.created_at),
        updated_at=isoformat_utc(ws.updated_at),
    ).model_dump()


def _member_out(m: WorkspaceMember) -> dict:
    return MemberOut(
        id=m.id, user_id=m.user_id, role=m.role,
        user=_user_brief(m.user), created_at=isoformat_utc(m.created_at),
    ).model_dump()


async def _load_workspace(db: AsyncSession, workspace_id: str) -> Workspace:
    ws = await db.get(Workspace, workspace_id)
    if not ws:
        raise NotFound("Workspace", workspace_id)
    return ws


async def _members(db: AsyncSession, workspace_id: str) -> List[WorkspaceMember]:
    result = await db.execute(
        select(WorkspaceMember)
        .where(WorkspaceMember.workspace_id == workspace_id)
        .options(selectinload(WorkspaceMember.user))
        .order_by(WorkspaceMember.created_at.asc())
    )
    return list(result.scalars().all())


# ============================================================
# WORKSPACES
# ============================================================

@router.post("", status_code=201)
async def create_workspace(
    data: WorkspaceCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    ws = Workspace(name=data.name.strip(), description=data.description, owner_id=user.id)
    db.add(ws)
    await db.commit()
    await db.refresh(ws)
    return _workspace_out(ws, user.id)


@router.get("")
async def list_workspaces(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Workspaces the caller owns or belongs to, newest first"""
    member_of = select(WorkspaceMember.workspace_id).where(WorkspaceMember.user_id == user.id)
    result = await db.execute(
        select(Workspace)
        .where(or_(Workspace.owner_id == user.id, Workspace.id.in_(member_of)))
        .order_by(Workspace.created_at.desc())
    )
    return [_workspace_out(ws, user.id) for ws in result.scalars().all()]


@router.get("/{workspace_id}")
async def get_workspace(
    workspace_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.workspace(workspace_id))
    ws = await _load_workspace(db, workspace_id)

    boards = (await db.execute(
        select(Board).where(Board.workspace_id == workspace_id).order_by(Board.created_at.desc())
    )).scalars().all()
    owner = await db.get(User, ws.owner_id)

    out = _workspace_out(ws, user.id)
    out["owner"] = _user_brief(owner)
    out["members"] = [_member_out(m) for m in await _members(db, workspace_id)]
    out["boards"] = [
        {
            "id": b.id, "name": b.name, "description": b.description,
            "is_retainer": b.is_retainer, "created_at": isoformat_utc(b.created_at),
        }
        for b in boards
    ]
    return out


@router.patch("/{workspace_id}")
async def update_workspace(
    workspace_id: str,
    data: WorkspaceUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_owner(db, user.id, EntityRef.workspace(workspace_id))
    ws = await _load_workspace(db, workspace_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "name":
            if value is None:
                continue
            value = value.strip()
        setattr(ws, field, value)
    ws.updated_at = utcnow()

    await db.commit()
    await db.refresh(ws)
    return _workspace_out(ws, user.id)


@router.delete("/{workspace_id}")
async def delete_workspace(
    workspace_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Owner only; boards and everything below go with it"""
    await require_owner(db, user.id, EntityRef.workspace(workspace_id))
    await db.execute(delete(Workspace).where(Workspace.id == workspace_id))
    await db.commit()
    return {"status": "deleted", "workspace_id": workspace_id}


# ============================================================
# MEMBERS
# ============================================================

@router.get("/{workspace_id}/members")
async def list_members(
    workspace_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    grant = await require_access(db, user.id, EntityRef.workspace(workspace_id))
    owner = await db.get(User, grant.owner_id)
    return {
        "owner": _user_brief(owner),
        "members": [_member_out(m) for m in await _members(db, workspace_id)],
    }


@router.post("/{workspace_id}/members", status_code=201)
async def add_member(
    workspace_id: str,
    data: MemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    grant = await require_owner(db, user.id, EntityRef.workspace(workspace_id))

    invitee = (await db.execute(
        select(User).where(User.email == data.email.lower())
    )).scalar_one_or_none()
    if not invitee:
        raise NotFound("User")
    if invitee.id == grant.owner_id:
        raise ValidationError("The workspace owner is already part of the workspace")

    existing = await db.execute(
        select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == invitee.id,
        )
    )
    if existing.scalar_one_or_none():
        raise Conflict("User is already a member of this workspace")

    member = WorkspaceMember(workspace_id=workspace_id, user_id=invitee.id, role=data.role.strip())
    db.add(member)
    await db.commit()
    await db.refresh(member)
    member.user = invitee
    return _member_out(member)


@router.delete("/{workspace_id}/members/{member_id}")
async def remove_member(
    workspace_id: str,
    member_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_owner(db, user.id, EntityRef.workspace(workspace_id))
    member = await db.get(WorkspaceMember, member_id)
    if not member or member.workspace_id != workspace_id:
        raise NotFound("Member", member_id)
    await db.execute(delete(WorkspaceMember).where(WorkspaceMember.id == member_id))
    await db.commit()
    return {"status": "removed", "member_id": member_id}


# ============================================================
# ROADMAP
# ============================================================

@router.get("/{workspace_id}/roadmap")
async def get_roadmap(
    workspace_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.workspace(workspace_id))
    entries = await workspace_roadmap(db, workspace_id)
    return [
        {**e, "start": isoformat_utc(e["start"]), "end": isoformat_utc(e["end"])}
        for e in entries
    ]
