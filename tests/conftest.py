import os

# Must be set before anything imports `config`
os.environ["MODE"] = "test"

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from main import app as fastapi_app
import db as project_db
from db_base import Base
from db_models.business import Business, Transaction
from db_models.user import User
from core.business_context import business_cache
from core.security import get_password_hash, create_access_token


# A Monday; its verification window is 2026-02-23 .. 2026-03-01
CYCLE_WEEK = date(2026, 3, 2)

REGULAR_PHONE = "+46701234567"
LANDLINE_PHONE = "+4681234567"

# (phone, amount, transaction time); every business rewards 5%
WINDOW_TRANSACTIONS = [
    (REGULAR_PHONE, "200.00", datetime(2026, 2, 24, 10, 0, tzinfo=timezone.utc)),
    (REGULAR_PHONE, "100.00", datetime(2026, 2, 25, 12, 30, tzinfo=timezone.utc)),
    (LANDLINE_PHONE, "50.00", datetime(2026, 2, 26, 9, 15, tzinfo=timezone.utc)),
]
OUTSIDE_WINDOW = ("+46709999999", "80.00", datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
    """A fresh SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        future=True,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    business_cache.clear()
    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )
    business_cache.clear()
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory):
    # Each request gets its own session, like in production
    async def override_get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[project_db.get_session] = override_get_session
    fastapi_app.dependency_overrides[project_db.get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    # Clean up
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def business(db_session) -> Business:
    business = Business(name="Kafé Test", email="billing@kafe.test")
    db_session.add(business)
    await db_session.commit()
    return business


@pytest.fixture
async def transactions(db_session, business) -> list[Transaction]:
    """Three transactions inside the CYCLE_WEEK window and one just after it."""
    rows = []
    for phone, amount, when in WINDOW_TRANSACTIONS + [OUTSIDE_WINDOW]:
        rows.append(
            Transaction(
                business_id=business.id,
                phone_number=phone,
                amount=Decimal(amount),
                reward_percentage=Decimal("5.00"),
                transaction_date=when,
            )
        )
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.fixture
async def admin_user(db_session) -> User:
    user = User(
        email="admin@test.com",
        hashed_password=get_password_hash("adminpass"),
        full_name="Test Admin",
        role="ADMIN",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def business_user(db_session, business) -> User:
    user = User(
        email="owner@test.com",
        hashed_password=get_password_hash("ownerpass"),
        full_name="Test Owner",
        role="BUSINESS",
        business_id=business.id,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def admin_headers(admin_user):
    """Authorization headers for the admin user."""
    token = create_access_token(data={"sub": str(admin_user.id), "role": admin_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def business_headers(business_user):
    """Authorization headers for the business user."""
    token = create_access_token(data={"sub": str(business_user.id), "role": business_user.role})
    return {"Authorization": f"Bearer {token}"}


class WorkflowDriver:
    """Walks a cycle through the admin and business endpoints."""

    def __init__(self, client: AsyncClient, admin_headers: dict, business_headers: dict):
        self.client = client
        self.admin_headers = admin_headers
        self.business_headers = business_headers

    async def create_cycle(self, cycle_week: date = CYCLE_WEEK) -> dict:
        resp = await self.client.post(
            "/api/admin/verification/cycles",
            json={"cycle_week": cycle_week.isoformat()},
            headers=self.admin_headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    async def prepare(self, cycle_id: str) -> dict:
        """Start preparation; the background job has finished when this returns."""
        resp = await self.client.post(
            f"/api/admin/verification/cycles/{cycle_id}/prepare",
            headers=self.admin_headers,
        )
        assert resp.status_code == 202, resp.text
        resp = await self.client.get(
            f"/api/admin/verification/cycles/{cycle_id}/preparation-status",
            headers=self.admin_headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    async def advance(self, cycle_id: str, *statuses: str) -> dict:
        body = {}
        for status in statuses:
            resp = await self.client.put(
                f"/api/admin/verification/cycles/{cycle_id}/status",
                json={"status": status},
                headers=self.admin_headers,
            )
            assert resp.status_code == 200, resp.text
            body = resp.json()
        return body

    async def databases(self, cycle_id: str) -> list[dict]:
        resp = await self.client.get(
            f"/api/admin/verification/cycles/{cycle_id}/databases",
            headers=self.admin_headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    async def submit(self, database_id: str, fake_phones: tuple[str, ...] = ()) -> dict:
        """Verify every record except those of `fake_phones`, which are marked fake."""
        resp = await self.client.get(
            f"/api/business/verification/databases/{database_id}/records",
            headers=self.business_headers,
        )
        assert resp.status_code == 200, resp.text
        decisions = [
            {
                "record_id": record["id"],
                "verification_status": "fake" if record["phone_number"] in fake_phones else "verified",
            }
            for record in resp.json()
        ]
        resp = await self.client.post(
            f"/api/business/verification/databases/{database_id}/submit",
            json={"records": decisions},
            headers=self.business_headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    async def processing_cycle(self) -> tuple[str, dict]:
        """A cycle whose only database is submitted and which is `processing`."""
        cycle = await self.create_cycle()
        await self.prepare(cycle["id"])
        await self.advance(cycle["id"], "distributed")
        database = (await self.databases(cycle["id"]))[0]
        await self.submit(database["id"])
        await self.advance(cycle["id"], "processing")
        return cycle["id"], database

    async def invoiced_cycle(self) -> tuple[str, dict]:
        """A `processing` cycle after invoice generation; returns the single invoice."""
        cycle_id, _ = await self.processing_cycle()
        resp = await self.client.post(
            f"/api/admin/verification/cycles/{cycle_id}/invoices",
            headers=self.admin_headers,
        )
        assert resp.status_code == 201, resp.text
        resp = await self.client.get(
            f"/api/admin/verification/invoices?cycle_id={cycle_id}",
            headers=self.admin_headers,
        )
        assert resp.status_code == 200, resp.text
        return cycle_id, resp.json()["data"][0]

    async def mark_paid(self, invoice_id: str, payment_date: str = "2026-03-20") -> dict:
        resp = await self.client.put(
            f"/api/admin/verification/invoices/{invoice_id}/payment",
            json={"status": "paid", "payment_date": payment_date},
            headers=self.admin_headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()


@pytest.fixture
def workflow(async_client, admin_headers, business_headers, transactions):
    return WorkflowDriver(async_client, admin_headers, business_headers)
