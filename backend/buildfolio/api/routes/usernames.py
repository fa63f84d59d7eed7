"""
Username availability and suggestions. No authentication.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from buildfolio.database.connection import get_db
from buildfolio.services import portfolio_service
from buildfolio.services.errors import ValidationFailed
from buildfolio.utils.validators import is_blank

router = APIRouter()


@router.get("/check-username")
async def check_username(
    username: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Format, length and reserved-word rules first, then the database."""
    if username is None:
        raise ValidationFailed("Username is required")
    available, error = await portfolio_service.check_username_availability(db, username)
    return {"success": True, "available": available, "error": error}


@router.get("/suggest-username")
async def suggest_username(
    full_name: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    if is_blank(full_name):
        raise ValidationFailed("Full name is required")
    username = await portfolio_service.suggest_username(db, full_name)
    return {"success": True, "username": username}
