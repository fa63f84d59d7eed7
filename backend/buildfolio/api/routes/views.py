"""
View counter ping from public portfolio pages.
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from buildfolio.api.middleware.rate_limit import check_views_rate_limit
from buildfolio.database.connection import get_db
from buildfolio.services import portfolio_service
from buildfolio.services.errors import ValidationFailed
from buildfolio.utils.validators import is_blank

router = APIRouter()


class ViewPing(BaseModel):
    username: str = Field(default="", max_length=50)


@router.post("/views")
async def record_view(
    body: ViewPing,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    check_views_rate_limit(request)
    if is_blank(body.username):
        raise ValidationFailed("Username is required")
    count = await portfolio_service.increment_view_count(db, body.username.strip())
    return {"count": count}
