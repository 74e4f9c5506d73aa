"""
Bulwark 服务端测试基础配置

提供 SQLite in-memory 异步数据库、可控时钟、FastAPI 应用和 httpx 异步客户端等通用 fixture。
每个测试使用独立的内存数据库，不依赖外部 PostgreSQL。
"""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.core.config import Settings
from bulwark_server.core.database import Base, create_engine, create_sessionmaker
from bulwark_server.main import create_app
from bulwark_server.models import CheckDefinition, Endpoint

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
AGENT_SECRET = "test-agent-secret"
T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """可手动推进的时钟。"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings(
        agent_secret=AGENT_SECRET,
        database_dsn=TEST_DATABASE_URL,
        offline_threshold_minutes=10,
    )


@pytest_asyncio.fixture
async def engine():
    """每个测试一个全新的内存数据库。"""
    engine = create_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def db_session(sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """提供一个数据库会话，用于准备数据和断言。"""
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(settings, sessionmaker, clock):
    return create_app(settings, sessionmaker=sessionmaker, clock=clock)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """通过 ASGITransport 直连应用的异步 HTTP 测试客户端。"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def agent_headers() -> dict:
    return {"X-Agent-Secret": AGENT_SECRET}


@pytest_asyncio.fixture
async def registered_endpoint(client: AsyncClient, agent_headers) -> str:
    """通过注册接口创建的端点，返回 endpoint_id 字符串。"""
    resp = await client.post("/api/agent/register", headers=agent_headers, json={
        "hostname": "web-01", "os": "Linux", "os_version": "6.1",
        "agent_version": "0.1.0", "ip_addresses": ["10.0.0.5"],
    })
    assert resp.status_code == 200
    return resp.json()["endpoint_id"]


@pytest_asyncio.fixture
async def sample_checks(db_session: AsyncSession) -> list[CheckDefinition]:
    checks = [
        CheckDefinition(name="ssh-config", check_type="config_setting",
                        parameters={"file": "/etc/ssh/sshd_config", "key": "PermitRootLogin", "expected": "no"},
                        severity="high"),
        CheckDefinition(name="auditd-running", check_type="process_running",
                        parameters={"name": "auditd"}),
        CheckDefinition(name="legacy-telnet", check_type="port_open",
                        parameters={"port": 23}, enabled=False),
    ]
    db_session.add_all(checks)
    await db_session.commit()
    return checks


@pytest.fixture
def load_endpoint(sessionmaker):
    """按主机名读取端点；每次用新会话，避免读到缓存的旧状态。"""

    async def _load(hostname: str) -> Endpoint:
        async with sessionmaker() as session:
            result = await session.execute(select(Endpoint).where(Endpoint.hostname == hostname))
            return result.scalar_one()

    return _load
