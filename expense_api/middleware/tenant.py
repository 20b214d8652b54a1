from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.database import get_db, set_tenant_context
from expense_api.middleware.auth import get_current_user
from expense_api.services.tenant_service import get_or_create_membership

logger = structlog.get_logger()


async def get_current_tenant(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """FastAPI dependency: resolve the user's tenant, joining the default one if needed."""
    membership = await get_or_create_membership(
        db, current_user["user_id"], current_user.get("display_name")
    )
    structlog.contextvars.bind_contextvars(tenant_id=str(membership.tenant_id))
    return {**current_user, "tenant_id": str(membership.tenant_id)}


async def get_db_with_tenant(
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
) -> AsyncSession:
    """FastAPI dependency: get DB session with RLS tenant context set."""
    await set_tenant_context(db, current_user["tenant_id"])
    return db
