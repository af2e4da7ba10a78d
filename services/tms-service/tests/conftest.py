"""
TMS - Test Configuration and Fixtures
"""
import os
from datetime import date, timedelta
from typing import AsyncGenerator
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from faker import Faker

# Set testing environment
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite://'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['ENV_MODE'] = 'test'
os.environ['REMINDERS_ENABLED'] = 'false'
os.environ['NOTIFICATIONS_TRANSPORT'] = 'inline'

from app.main import app
from app import models
from app.database import Base, get_db
from app.notifications import get_notifier
from tms_common.security import get_password_hash, create_access_token

fake = Faker()

TODAY = date.today()


class FakeNotifier:
    """Records every message instead of sending it."""

    def __init__(self):
        self.sent = []

    async def send(self, message) -> bool:
        self.sent.append(message)
        return True

    def subjects(self):
        return [m.subject for m in self.sent]


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        'sqlite+aiosqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database for each test"""
    session_factory = sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
async def client(db_session: AsyncSession, notifier: FakeNotifier) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database and notifier overrides"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


# --- ENTIDADES ---

@pytest.fixture
async def department(db_session: AsyncSession) -> models.Department:
    department = models.Department(name='engineering', description='Builds things')
    db_session.add(department)
    await db_session.commit()
    await db_session.refresh(department)
    return department


async def _create_user(db_session: AsyncSession, role: str, department_id: int) -> models.User:
    user = models.User(
        first_name='Test',
        last_name='User',
        email=f'{fake.unique.user_name()}@example.com'.lower(),
        hashed_password=get_password_hash('testpassword123'),
        role=role,
        department_id=department_id,
        is_verified=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def admin_user(db_session: AsyncSession, department: models.Department) -> models.User:
    return await _create_user(db_session, models.UserRole.ADMIN.value, department.id)


@pytest.fixture
async def test_user(db_session: AsyncSession, department: models.Department) -> models.User:
    return await _create_user(db_session, models.UserRole.USER.value, department.id)


def _headers(user: models.User) -> dict:
    token = create_access_token({'sub': user.email, 'role': user.role, 'user_id': user.id})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(admin_user: models.User) -> dict:
    """Authentication headers for the admin user"""
    return _headers(admin_user)


@pytest.fixture
def auth_headers(test_user: models.User) -> dict:
    """Authentication headers for a regular user"""
    return _headers(test_user)


@pytest.fixture
async def client_record(db_session: AsyncSession) -> models.Client:
    record = models.Client(
        name='Acme Corp',
        email='contact@acme.example.com',
        address=fake.address(),
        phone_number_one='+584121234567',
    )
    db_session.add(record)
    await db_session.commit()
    await db_session.refresh(record)
    return record


@pytest.fixture
def make_project(db_session: AsyncSession, client_record, department, test_user):
    """Factory: project with one department and the regular user as member"""
    async def _make(**overrides) -> models.Project:
        data = {
            'name': fake.catch_phrase(),
            'client_id': client_record.id,
            'start_date': TODAY - timedelta(days=5),
            'due_date': TODAY + timedelta(days=30),
            'status': models.Status.PENDING.value,
            'priority': models.Priority.MEDIUM.value,
            'project_budget': 1000.0,
        }
        data.update(overrides)
        project = models.Project(**data, departments=[department], members=[test_user])
        db_session.add(project)
        await db_session.commit()
        return project
    return _make


@pytest.fixture
def make_task(db_session: AsyncSession, department, test_user):
    """Factory: task assigned to the regular user"""
    async def _make(project: models.Project, **overrides) -> models.Task:
        data = {
            'title': fake.sentence(nb_words=4),
            'project_id': project.id,
            'status': models.Status.PENDING.value,
            'priority': models.Priority.MEDIUM.value,
            'start_date': TODAY,
            'due_date': project.due_date,
        }
        data.update(overrides)
        task = models.Task(**data, departments=[department], assignees=[test_user])
        db_session.add(task)
        await db_session.commit()
        return task
    return _make
