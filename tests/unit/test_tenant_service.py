"""
Unit tests for expense_api/services/tenant_service.py

Session results are queued in call order: membership lookup, default tenant
lookup, membership insert, profile insert, membership re-read.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from expense_api.exceptions import TenantUnavailable
from expense_api.models.tenant import Tenant, TenantUser
from expense_api.services.tenant_service import get_or_create_membership
from fakes import TENANT_ID, USER_ID


def _result(value=None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _session(*values) -> AsyncMock:
    session = AsyncMock()
    session.execute.side_effect = [_result(v) for v in values]
    return session


@pytest.mark.asyncio
async def test_existing_membership_is_returned():
    membership = TenantUser(user_id=USER_ID, tenant_id=TENANT_ID)
    session = _session(membership)

    assert await get_or_create_membership(session, USER_ID) is membership
    assert session.execute.await_count == 1


@pytest.mark.asyncio
async def test_new_user_joins_default_tenant():
    tenant = Tenant(id=uuid.UUID(TENANT_ID), name="Household", is_default=True)
    joined = TenantUser(user_id=USER_ID, tenant_id=tenant.id)
    session = _session(None, tenant, None, None, joined)

    membership = await get_or_create_membership(session, USER_ID, "Ana")

    assert membership is joined
    assert session.execute.await_count == 5
    insert_sql = str(session.execute.call_args_list[2].args[0])
    assert insert_sql.startswith("INSERT INTO tenant_users")


@pytest.mark.asyncio
async def test_no_default_tenant_is_tenant_unavailable():
    session = _session(None, None)

    with pytest.raises(TenantUnavailable) as exc_info:
        await get_or_create_membership(session, USER_ID)

    assert exc_info.value.status_code == 403
    assert session.execute.await_count == 2
