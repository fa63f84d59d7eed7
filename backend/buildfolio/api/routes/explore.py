"""
Public directory of portfolios and projects.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from buildfolio.database.connection import get_db
from buildfolio.services import directory, portfolio_service

router = APIRouter()


def _directory_query(
    search: str = Query("", max_length=100),
    skill: str = Query("all", max_length=50),
    availability: directory.AvailabilityFilter = Query("all"),
    sort: directory.SortOrder = Query("newest"),
    page: int = Query(1),
) -> directory.DirectoryQuery:
    return directory.DirectoryQuery(
        search=search, skill=skill, availability=availability, sort=sort, page=page
    )


def _page_body(page: directory.Page, skills: list[str]) -> dict:
    return {
        "success": True,
        "items": [item.model_dump(mode="json") for item in page.items],
        "page": page.page,
        "total_pages": page.total_pages,
        "total": page.total,
        "skills": skills,
    }


@router.get("/explore")
async def explore_portfolios(
    query: directory.DirectoryQuery = Depends(_directory_query),
    db: AsyncSession = Depends(get_db),
):
    portfolios = await portfolio_service.list_public_portfolios(db)
    page = directory.query_portfolios(portfolios, query)
    return _page_body(page, directory.collect_skills(portfolios))


@router.get("/explore/projects")
async def explore_projects(
    query: directory.DirectoryQuery = Depends(_directory_query),
    db: AsyncSession = Depends(get_db),
):
    projects = await portfolio_service.list_public_projects(db)
    page = directory.query_projects(projects, query)
    return _page_body(page, directory.collect_tech(projects))
