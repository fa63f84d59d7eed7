"""
Contact form messages addressed to a portfolio owner.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from buildfolio.api.middleware.rate_limit import check_contact_rate_limit
from buildfolio.database.connection import get_db
from buildfolio.schemas.portfolio import ContactMessageIn
from buildfolio.services import portfolio_service

router = APIRouter()


@router.post("/contact")
async def send_contact_message(
    body: ContactMessageIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    check_contact_rate_limit(request)
    await portfolio_service.create_contact_message(db, body)
    return {"success": True}
