"""
Explore page: search, filter, sort and paginate public portfolios (or their
projects) in memory. The directory is small, so every query is a single pass
over the full list.
"""
import math
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Literal, Sequence, TypeVar

from buildfolio.schemas.portfolio import PortfolioCard, ProjectCard

PORTFOLIO_PAGE_SIZE = 9
PROJECT_PAGE_SIZE = 12

SortOrder = Literal["newest", "most_viewed", "alphabetical"]
AvailabilityFilter = Literal["all", "available"]

AVAILABLE_STATUSES = frozenset(("open_fulltime", "freelance"))
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

T = TypeVar("T")


@dataclass(frozen=True)
class DirectoryQuery:
    search: str = ""
    skill: str = "all"
    availability: AvailabilityFilter = "all"
    sort: SortOrder = "newest"
    page: int = 1

    @property
    def normalized_search(self) -> str:
        return self.search.strip().lower()


@dataclass
class Page(Generic[T]):
    items: list[T]
    page: int
    total_pages: int
    total: int


def paginate(items: Sequence[T], page: int, page_size: int) -> Page[T]:
    """Clamp page into 1..total_pages; an empty result still has one page."""
    total_pages = max(1, math.ceil(len(items) / page_size))
    current = min(max(page, 1), total_pages)
    start = (current - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=current,
        total_pages=total_pages,
        total=len(items),
    )


def _name_key(name: str) -> tuple[str, str, str]:
    """Accent- and case-insensitive collation key; the raw name breaks ties."""
    folded = (name or "").casefold()
    decomposed = unicodedata.normalize("NFKD", folded)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base, folded, name or ""


def _timestamp(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        # SQLite hands back naive datetimes
        return value.replace(tzinfo=timezone.utc)
    return value


def is_available(portfolio: PortfolioCard) -> bool:
    return portfolio.open_to_work or portfolio.availability_status in AVAILABLE_STATUSES


def _skill_names(portfolio: PortfolioCard) -> list[str]:
    return [skill.name.lower() for skill in portfolio.skills]


def _matches_search(fields: Sequence[str | None], tags: Sequence[str], term: str) -> bool:
    if not term:
        return True
    if any(field and term in field.lower() for field in fields):
        return True
    return any(term in tag for tag in tags)


def query_portfolios(
    portfolios: Sequence[PortfolioCard], query: DirectoryQuery
) -> Page[PortfolioCard]:
    term = query.normalized_search
    skill = query.skill.lower()
    matched = []
    for portfolio in portfolios:
        skills = _skill_names(portfolio)
        fields = (
            portfolio.full_name,
            portfolio.job_title,
            portfolio.location,
            portfolio.tagline,
            portfolio.bio,
        )
        if not _matches_search(fields, skills, term):
            continue
        if skill != "all" and skill not in skills:
            continue
        if query.availability == "available" and not is_available(portfolio):
            continue
        matched.append(portfolio)

    if query.sort == "most_viewed":
        matched.sort(key=lambda p: p.view_count or 0, reverse=True)
    elif query.sort == "alphabetical":
        matched.sort(key=lambda p: _name_key(p.full_name))
    else:
        matched.sort(key=lambda p: _timestamp(p.created_at), reverse=True)
    return paginate(matched, query.page, PORTFOLIO_PAGE_SIZE)


def query_projects(projects: Sequence[ProjectCard], query: DirectoryQuery) -> Page[ProjectCard]:
    """Availability does not apply to projects and is ignored."""
    term = query.normalized_search
    skill = query.skill.lower()
    matched = []
    for project in projects:
        tags = [tech.lower() for tech in project.tech_stack]
        fields = (
            project.name,
            project.description,
            project.owner_full_name,
            project.owner_job_title,
        )
        if not _matches_search(fields, tags, term):
            continue
        if skill != "all" and skill not in tags:
            continue
        matched.append(project)

    if query.sort == "most_viewed":
        matched.sort(key=lambda p: p.owner_view_count or 0, reverse=True)
    elif query.sort == "alphabetical":
        matched.sort(key=lambda p: _name_key(p.name))
    else:
        matched.sort(key=lambda p: _timestamp(p.owner_created_at), reverse=True)
    return paginate(matched, query.page, PROJECT_PAGE_SIZE)


def collect_skills(portfolios: Sequence[PortfolioCard]) -> list[str]:
    """Unique skill names for the filter bar, sorted by name."""
    names = {skill.name for portfolio in portfolios for skill in portfolio.skills}
    return sorted(names, key=_name_key)


def collect_tech(projects: Sequence[ProjectCard]) -> list[str]:
    names = {tech for project in projects for tech in project.tech_stack if tech}
    return sorted(names, key=_name_key)
