"""
Service dependencies.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from assetdesk.core.config import settings
from assetdesk.rbac.guard import RouteGuard
from assetdesk.rbac.service import RBACService
from assetdesk.rbac.stores.sqlalchemy import SQLAlchemyRBACStore
from .database import get_db


async def get_rbac_service(db: AsyncSession = Depends(get_db)) -> RBACService:
    """RBAC service bound to the request's session."""
    return RBACService(
        SQLAlchemyRBACStore(db),
        top_role_name=settings.rbac.top_role_name,
    )


async def get_route_guard(rbac: RBACService = Depends(get_rbac_service)) -> RouteGuard:
    return RouteGuard(rbac)


RBAC = Annotated[RBACService, Depends(get_rbac_service)]
Guard = Annotated[RouteGuard, Depends(get_route_guard)]
