import asyncio
import os
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Dict, List

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.main import app
from app.auth.models import User
from app.auth.schemas import TenantContext
from app.auth.security import create_access_token
from app.core.enums import UserRole
from app.core.models import Branch, FeeTemplate, SchoolClass, Student
from app.db.session import Base, get_db


@pytest.fixture()
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite file database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Independent sessions on the test database, one per simulated request."""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class Interleave:
    """
    Drive two requests so both finish a read before either writes, then let
    the first commit before the second continues from what it read.
    """

    def __init__(self) -> None:
        self._sessions: List[AsyncSession] = []
        self._both_read = asyncio.Event()
        self._first_done = asyncio.Event()

    def after(self, read, when=lambda *args, **kwargs: True):
        async def gated(db, *args, **kwargs):
            result = await read(db, *args, **kwargs)
            if when(*args, **kwargs):
                self._sessions.append(db)
                if len(self._sessions) == 2:
                    self._both_read.set()
                await self._both_read.wait()
                if db is not self._sessions[0]:
                    await self._first_done.wait()
            return result

        return gated

    async def run(self, *calls):
        async def one(db, call):
            try:
                return await call
            finally:
                if self._sessions and db is self._sessions[0]:
                    self._first_done.set()

        return await asyncio.wait_for(
            asyncio.gather(*(one(db, call) for db, call in calls), return_exceptions=True), timeout=30
        )


@pytest.fixture()
def interleave() -> Interleave:
    return Interleave()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# --- Seed data ---
async def _add(db: AsyncSession, obj):
    db.add(obj)
    await db.commit()
    return obj


@pytest.fixture()
async def branch(db_session: AsyncSession) -> Branch:
    return await _add(db_session, Branch(name="Main Campus", location="Pune"))


@pytest.fixture()
async def other_branch(db_session: AsyncSession) -> Branch:
    return await _add(db_session, Branch(name="North Campus", location="Nashik"))


@pytest.fixture()
async def registrar(db_session: AsyncSession, branch: Branch) -> User:
    return await _add(
        db_session,
        User(branch_id=branch.id, name="Asha Registrar", email="asha@school.test", role=UserRole.REGISTRAR.value),
    )


@pytest.fixture()
async def other_registrar(db_session: AsyncSession, other_branch: Branch) -> User:
    return await _add(
        db_session,
        User(branch_id=other_branch.id, name="Vikram Registrar", email="vikram@school.test", role=UserRole.REGISTRAR.value),
    )


@pytest.fixture()
def ctx(registrar: User) -> TenantContext:
    return TenantContext(branch_id=registrar.branch_id, actor_id=registrar.id, actor_name=registrar.name)


@pytest.fixture()
def other_ctx(other_registrar: User) -> TenantContext:
    return TenantContext(
        branch_id=other_registrar.branch_id,
        actor_id=other_registrar.id,
        actor_name=other_registrar.name,
    )


def _auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(
        subject={"sub": str(user.id), "branch_id": str(user.branch_id), "role": user.role}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers(registrar: User) -> Dict[str, str]:
    return _auth_headers(registrar)


@pytest.fixture()
def other_auth_headers(other_registrar: User) -> Dict[str, str]:
    return _auth_headers(other_registrar)


@pytest.fixture()
async def fee_template(db_session: AsyncSession, branch: Branch) -> FeeTemplate:
    return await _add(
        db_session,
        FeeTemplate(branch_id=branch.id, name="Grade 5 Standard", amount=Decimal("12000"), grade_level=5),
    )


@pytest.fixture()
async def school_class(db_session: AsyncSession, branch: Branch, fee_template: FeeTemplate) -> SchoolClass:
    return await _add(
        db_session,
        SchoolClass(branch_id=branch.id, grade_level=5, section="A", fee_template_id=fee_template.id),
    )


@pytest.fixture()
async def student(db_session: AsyncSession, branch: Branch, school_class: SchoolClass) -> Student:
    return await _add(
        db_session,
        Student(
            branch_id=branch.id,
            name="Ravi Kumar",
            class_id=school_class.id,
            admitted_at=datetime(2024, 6, 10),
        ),
    )


@pytest.fixture()
async def second_student(db_session: AsyncSession, branch: Branch, school_class: SchoolClass) -> Student:
    return await _add(
        db_session,
        Student(
            branch_id=branch.id,
            name="Meera Shah",
            class_id=school_class.id,
            admitted_at=datetime(2024, 6, 10),
        ),
    )


@pytest.fixture()
async def unclassed_student(db_session: AsyncSession, branch: Branch) -> Student:
    """Student with no class, so no fee template."""
    return await _add(
        db_session,
        Student(branch_id=branch.id, name="Kabir Rao", admitted_at=datetime(2024, 6, 10)),
    )


@pytest.fixture()
async def other_branch_student(db_session: AsyncSession, other_branch: Branch) -> Student:
    return await _add(
        db_session,
        Student(branch_id=other_branch.id, name="Outsider", admitted_at=datetime(2024, 6, 10)),
    )
