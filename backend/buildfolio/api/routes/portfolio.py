"""
Portfolio create, read, update and edit hydration; the caller's own portfolios.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from buildfolio.api.deps import Capabilities
from buildfolio.api.middleware.auth import CurrentIdentity, OptionalIdentity
from buildfolio.config import get_settings
from buildfolio.database.connection import get_db
from buildfolio.schemas.portfolio import PortfolioCreate, PortfolioUpdate
from buildfolio.services import portfolio_service
from buildfolio.services.form_state import hydrate_for_edit
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


def portfolio_url(username: str) -> str:
    return f"{get_settings().public_base_url.rstrip('/')}/{username}"


@router.post("/portfolio", status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    body: PortfolioCreate,
    capabilities: Capabilities,
    db: AsyncSession = Depends(get_db),
):
    portfolio = await portfolio_service.create_portfolio(db, body, capabilities)
    return {
        "success": True,
        "username": portfolio.username,
        "portfolio_url": portfolio_url(portfolio.username),
    }


@router.get("/portfolio/{username}")
async def get_portfolio(
    username: str,
    capabilities: Capabilities,
    db: AsyncSession = Depends(get_db),
):
    """Public aggregate with experiences and projects in display order."""
    portfolio = await portfolio_service.get_public_portfolio(db, username, capabilities)
    return portfolio.model_dump(mode="json")


@router.patch("/portfolio/{username}")
async def update_portfolio(
    username: str,
    body: PortfolioUpdate,
    capabilities: Capabilities,
    identity: OptionalIdentity,
    db: AsyncSession = Depends(get_db),
):
    portfolio = await portfolio_service.update_portfolio(
        db,
        username,
        body,
        capabilities,
        identity=identity,
        require_owner=get_settings().require_owner_for_update,
    )
    return {"success": True, "portfolio": portfolio.model_dump(mode="json")}


@router.get("/portfolio/{username}/edit")
async def get_edit_form(
    username: str,
    capabilities: Capabilities,
    identity: OptionalIdentity,
    db: AsyncSession = Depends(get_db),
):
    """Form state for the owner. 401/403 responses carry redirect_to."""
    portfolio = await portfolio_service.get_portfolio_for_owner(db, username, capabilities)
    form = hydrate_for_edit(portfolio, identity)
    return {"success": True, "form": form.to_dict()}


@router.get("/my-portfolios")
async def my_portfolios(
    identity: CurrentIdentity,
    db: AsyncSession = Depends(get_db),
):
    if not identity.normalized_email:
        return {"success": True, "portfolios": []}
    summaries = await portfolio_service.list_portfolios_for_email(db, identity.normalized_email)
    return {"success": True, "portfolios": [s.model_dump(mode="json") for s in summaries]}
