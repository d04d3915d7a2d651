"""
Authentication routes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.utils.responses import success_response
from services.identity_service import IdentityService, get_identity_service

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request models
class LoginRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


@auth_router.post("/login")
async def login(
    request: LoginRequest,
    identity: IdentityService = Depends(get_identity_service),
):
    """Resolve the user for an email, creating a free account on first login"""
    user = await identity.resolve_or_create_user(request.email, request.name)
    return success_response(user.to_public())
