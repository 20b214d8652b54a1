"""
Tenant membership.

A user belongs to exactly one tenant. Users signing in for the first time
are joined to the default tenant; without one there is nothing to join and
the request fails with TenantUnavailable.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.exceptions import TenantUnavailable
from expense_api.models.tenant import Profile, Tenant, TenantUser

logger = structlog.get_logger()


async def _find_membership(session: AsyncSession, user_id: str) -> Optional[TenantUser]:
    result = await session.execute(
        select(TenantUser).where(TenantUser.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def ensure_profile(
    session: AsyncSession, user_id: str, display_name: Optional[str]
) -> None:
    await session.execute(
        insert(Profile)
        .values(id=user_id, display_name=display_name)
        .on_conflict_do_nothing(index_elements=[Profile.id])
    )


async def get_or_create_membership(
    session: AsyncSession,
    user_id: str,
    display_name: Optional[str] = None,
) -> TenantUser:
    membership = await _find_membership(session, user_id)
    if membership is not None:
        return membership

    result = await session.execute(
        select(Tenant)
        .where(Tenant.is_default.is_(True))
        .order_by(Tenant.created_at)
        .limit(1)
    )
    tenant = result.scalar_one_or_none()
    if tenant is None:
        logger.warning("default_tenant_missing", user_id=str(user_id))
        raise TenantUnavailable("No tenant is available for this user")

    # Two first requests from the same user may race; the second insert is a no-op.
    await session.execute(
        insert(TenantUser)
        .values(user_id=user_id, tenant_id=tenant.id)
        .on_conflict_do_nothing(index_elements=[TenantUser.user_id])
    )
    await ensure_profile(session, user_id, display_name)

    membership = await _find_membership(session, user_id)
    if membership is None:
        raise TenantUnavailable("Tenant membership could not be created")

    logger.info(
        "tenant_joined", user_id=str(user_id), tenant_id=str(membership.tenant_id)
    )
    return membership
