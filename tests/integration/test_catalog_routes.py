"""
Catalog routes: categories, subcategories, payment methods and /me.

Same override setup as test_api_routes; flush assigns ids to added rows
the way the database default would.
"""

from unittest.mock import AsyncMock, MagicMock
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError

from expense_api.main import app
from expense_api.middleware.tenant import get_current_tenant, get_db_with_tenant
from expense_api.models.category import Category
from fakes import TENANT_ID


@pytest.fixture
def session():
    session = AsyncMock()
    added = []
    session.add = MagicMock(side_effect=added.append)

    async def flush():
        for obj in added:
            if obj.id is None:
                obj.id = uuid.uuid4()

    session.flush.side_effect = flush
    return session


@pytest.fixture
async def client(session, tenant_user):
    app.dependency_overrides[get_db_with_tenant] = lambda: session
    app.dependency_overrides[get_current_tenant] = lambda: tenant_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_create_category_strips_name(client, session):
    response = await client.post("/api/v1/categories", json={"name": "  Food "})

    assert response.status_code == 201
    assert response.json()["name"] == "Food"
    created = session.add.call_args.args[0]
    assert isinstance(created, Category)
    assert created.tenant_id == TENANT_ID


@pytest.mark.asyncio
async def test_create_category_blank_name_is_422(client, session):
    response = await client.post("/api/v1/categories", json={"name": "   "})

    assert response.status_code == 422
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_duplicate_category_is_409(client, session):
    session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    response = await client.post("/api/v1/categories", json={"name": "Food"})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DUPLICATE_NAME"


@pytest.mark.asyncio
async def test_subcategory_for_unknown_category_is_404(client, session):
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    session.execute.return_value = result

    response = await client.post(
        "/api/v1/subcategories",
        json={"category_id": str(uuid.uuid4()), "name": "Groceries"},
    )

    assert response.status_code == 404
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_me_returns_resolved_tenant(client):
    response = await client.get("/api/v1/me")

    assert response.status_code == 200
    assert response.json()["tenant_id"] == TENANT_ID
