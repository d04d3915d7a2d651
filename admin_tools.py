"""
Admin Tools - password check for the admin dashboard
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.utils.errors import AuthenticationError, ConfigurationError
from config.settings import settings

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


class VerifyRequest(BaseModel):
    password: Optional[str] = None


def verify_admin_password(candidate: Optional[str]) -> None:
    """
    Raise unless ``candidate`` matches ADMIN_PASSWORD.
    Nothing is issued on success; the caller only learns valid/invalid.
    """
    expected = settings.admin_password
    if not expected:
        raise ConfigurationError("Admin password not configured")
    if not candidate or not hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError("Invalid password")


def _verify(candidate: Optional[str]) -> JSONResponse:
    try:
        verify_admin_password(candidate)
    except AuthenticationError as e:
        logger.warning("Rejected admin password attempt")
        return JSONResponse(status_code=e.status_code, content={"valid": False, "error": e.message})
    return JSONResponse(status_code=200, content={"valid": True})


@admin_router.get("/verify")
async def verify_get(key: Optional[str] = Query(default=None)):
    return _verify(key)


@admin_router.post("/verify")
async def verify_post(request: VerifyRequest):
    return _verify(request.password)
