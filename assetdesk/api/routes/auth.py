"""
Authentication routes.
"""

from fastapi import APIRouter

from assetdesk.api.dependencies.permissions import CurrentAuth
from assetdesk.schemas.rbac import AuthContextResponse

router = APIRouter()


@router.get("/me", response_model=AuthContextResponse)
async def get_current_context(auth: CurrentAuth):
    """Who am I, which roles do I hold and what may I do."""
    return AuthContextResponse(**auth.to_dict())
