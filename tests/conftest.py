import asyncio
import os

# Settings() 在匯入時就會讀取環境變數
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy.pool import NullPool

from marketplace.client import MarketplaceClient


def run(awaitable):
    """在新的 event loop 中執行 coroutine 或 Query"""

    async def main():
        return await awaitable

    return asyncio.run(main())


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}"


@pytest.fixture
def client(database_url):
    # NullPool：每個操作都用新的連線，測試之間 (不同的 event loop) 不共用連線
    db = MarketplaceClient(database_url, engine_options={"poolclass": NullPool})
    run(db.push_schema())
    yield db
    run(db.disconnect())


@pytest.fixture
def seed(client):
    """兩位使用者 (雇主 / 工作者)、一個案件、一個提案"""

    async def create():
        alice = await client.user.create(
            data={"name": "Alice", "email": "alice@example.com", "password": "x", "role": "client"}
        )
        bob = await client.user.create(
            data={
                "name": "Bob",
                "email": "bob@example.com",
                "password": "x",
                "role": "freelancer",
                "skills": ["python", "fastapi"],
                "hourly_rate": 40.0,
            }
        )
        project = await client.project.create(
            data={
                "client_id": alice["id"],
                "title": "Build an API",
                "description": "REST backend",
                "category": "web",
                "budget_min": 500.0,
                "budget_max": 1500.0,
                "deadline": "2030-01-01T00:00:00",
                "required_skills": ["python"],
            }
        )
        proposal = await client.proposal.create(
            data={
                "project_id": project["id"],
                "freelancer_id": bob["id"],
                "cover_letter": "I can do it",
                "proposed_price": 1200.0,
                "estimated_duration": 14,
            }
        )
        return {"alice": alice, "bob": bob, "project": project, "proposal": proposal}

    return run(create())
