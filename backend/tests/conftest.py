# tests/conftest.py — Shared test fixtures
import os
from datetime import datetime, timezone

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("GROQ_API_KEY", None)

from models import Board, Group, Item, User, Workspace, WorkspaceMember
from auth import AuthService
from database import Database
from main import app

TEST_PASSWORD = "Password123!"
# bcrypt is slow on purpose; hash once for every fixture user
_PASSWORD_HASH = AuthService.hash_password(TEST_PASSWORD)


@pytest_asyncio.fixture(scope="function")
async def database():
    db = Database(TEST_DB_URL, echo=False).connect()
    await db.drop_all()
    await db.create_all()
    app.state.database = db
    yield db
    await db.drop_all()
    await db.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(database):
    async with database.session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(database):
    """HTTP test client against the app's own Database"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_user(db_session, email: str, name: str) -> User:
    user = User(email=email, name=name, password_hash=_PASSWORD_HASH)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def owner_user(db_session):
    """Owns the test workspace"""
    return await make_user(db_session, "owner@boardflow.dev", "Olivia Owner")


@pytest_asyncio.fixture
async def member_user(db_session):
    """Plain member of the test workspace"""
    return await make_user(db_session, "member@boardflow.dev", "Max Member")


@pytest_asyncio.fixture
async def outsider_user(db_session):
    """No relation to the test workspace"""
    return await make_user(db_session, "outsider@boardflow.dev", "Oscar Outsider")


@pytest_asyncio.fixture
async def workspace(db_session, owner_user, member_user):
    ws = Workspace(name="Client Work", description="Agency workspace", owner_id=owner_user.id)
    db_session.add(ws)
    await db_session.commit()
    db_session.add(WorkspaceMember(workspace_id=ws.id, user_id=member_user.id, role="member"))
    await db_session.commit()
    await db_session.refresh(ws)
    return ws


async def make_board(db_session, workspace, name: str = "Website", is_retainer: bool = False) -> Board:
    board = Board(workspace_id=workspace.id, name=name, is_retainer=is_retainer)
    db_session.add(board)
    await db_session.commit()
    await db_session.refresh(board)
    return board


async def make_group(db_session, board, name: str = "This week", position: float = 1) -> Group:
    group = Group(board_id=board.id, name=name, position=position)
    db_session.add(group)
    await db_session.commit()
    await db_session.refresh(group)
    return group


async def make_item(db_session, group, title: str, position: float = 1, **fields) -> Item:
    item = Item(group_id=group.id, title=title, position=position, **fields)
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest_asyncio.fixture
async def board(db_session, workspace):
    return await make_board(db_session, workspace)


@pytest_asyncio.fixture
async def retainer_board(db_session, workspace):
    return await make_board(db_session, workspace, name="Monthly retainer", is_retainer=True)


@pytest_asyncio.fixture
async def group(db_session, board):
    return await make_group(db_session, board)


@pytest_asyncio.fixture
async def retainer_group(db_session, retainer_board):
    return await make_group(db_session, retainer_board, name="Retainer tasks")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token({"sub": user.id, "email": user.email})
    return {"Authorization": f"Bearer {token}"}
