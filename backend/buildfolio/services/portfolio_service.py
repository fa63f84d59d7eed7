"""
Portfolio reads and writes. Each write is one database transaction: the
portfolio row and its child collections commit together or not at all.
Unique constraints on username and email decide conflicts; the pre-checks
below only exist to produce a friendlier message first.
"""
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import CompileError, IntegrityError, NotSupportedError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from buildfolio.database.connection import SchemaCapabilities, transaction
from buildfolio.models import ContactMessage, Experience, Portfolio, Project
from buildfolio.schemas.portfolio import (
    MAX_EXPERIENCES,
    MAX_PROJECTS,
    ContactMessageIn,
    ExperienceIn,
    PortfolioCard,
    PortfolioCreate,
    PortfolioOut,
    PortfolioSummary,
    PortfolioUpdate,
    ProjectCard,
    ProjectIn,
    normalize_template,
)
from buildfolio.services.errors import (
    AccessDenied,
    AuthenticationRequired,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationFailed,
)
from buildfolio.services.usernames import base_username, generate_unique_username, username_error
from buildfolio.utils.logger import get_logger, mask_email
from buildfolio.utils.security import AuthIdentity
from buildfolio.utils.validators import is_blank, validate_email

logger = get_logger(__name__)

EXPERIENCE_TEXT_FIELDS = ("company", "role", "description")
PROJECT_TEXT_FIELDS = ("name", "description", "github_url", "demo_url")

# Columns that may be cleared to NULL by an update
_NULLABLE_FIELDS = frozenset(("profile_photo_url", "linkedin_url", "github_username", "resume_url"))


def validation_issues(exc: ValidationError, prefix: tuple = ()) -> list[dict[str, Any]]:
    """JSON-safe issue list from a pydantic ValidationError."""
    return [
        {"loc": [*prefix, *e["loc"]], "msg": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def email_conflict_message(username: str) -> str:
    return (
        f"You already have a portfolio (@{username}). You can only have one portfolio. "
        "Please edit your existing portfolio instead."
    )


def username_conflict_message(username: str) -> str:
    return f'The username "@{username}" is already taken. Please choose a different one.'


# ---------------------------------------------------------------------------
# Child collections
# ---------------------------------------------------------------------------

def has_content(entry: Any, text_fields: Iterable[str]) -> bool:
    """An entry counts if any of its free-text fields is non-blank."""
    if not isinstance(entry, dict):
        return False
    return any(not is_blank(entry.get(name)) for name in text_fields)


def _prepare(
    raw: list[dict[str, Any]],
    model: type[BaseModel],
    text_fields: tuple[str, ...],
    limit: int,
    label: str,
) -> list[Any]:
    entries = [e for e in raw if has_content(e, text_fields)]
    if len(entries) > limit:
        raise ValidationFailed(f"You can add at most {limit} {label}")
    prepared = []
    for index, entry in enumerate(entries):
        try:
            item = model.model_validate(entry)
        except ValidationError as e:
            raise ValidationFailed(
                f"Invalid {label[:-1]} entry", details=validation_issues(e, (label, index))
            ) from e
        prepared.append(item.model_copy(update={"order_index": index}))
    return prepared


def prepare_experiences(raw: list[dict[str, Any]]) -> list[ExperienceIn]:
    """Drop empty entries, validate the rest, re-index in submitted order."""
    prepared = _prepare(raw, ExperienceIn, EXPERIENCE_TEXT_FIELDS, MAX_EXPERIENCES, "experiences")
    return [
        e.model_copy(update={"end_date": ""}) if e.is_current else e for e in prepared
    ]


def prepare_projects(raw: list[dict[str, Any]]) -> list[ProjectIn]:
    """Same as prepare_experiences; at most one project stays featured."""
    prepared = _prepare(raw, ProjectIn, PROJECT_TEXT_FIELDS, MAX_PROJECTS, "projects")
    seen_featured = False
    result = []
    for project in prepared:
        if project.is_featured and seen_featured:
            project = project.model_copy(update={"is_featured": False})
        seen_featured = seen_featured or project.is_featured
        result.append(project)
    return result


def _experience_rows(entries: list[ExperienceIn]) -> list[Experience]:
    return [Experience(**e.model_dump()) for e in entries]


def _project_rows(entries: list[ProjectIn]) -> list[Project]:
    return [Project(**p.model_dump()) for p in entries]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def _username_for_email(
    db: AsyncSession, email: str, exclude_username: Optional[str] = None
) -> Optional[str]:
    stmt = select(Portfolio.username).where(func.lower(Portfolio.email) == email.strip().lower())
    if exclude_username:
        stmt = stmt.where(Portfolio.username != exclude_username)
    return (await db.execute(stmt)).scalars().first()


async def username_exists(db: AsyncSession, username: str) -> bool:
    result = await db.execute(select(Portfolio.id).where(Portfolio.username == username))
    return result.first() is not None


def _load_options(capabilities: SchemaCapabilities, with_children: bool = True) -> list:
    if not with_children:
        return [noload(Portfolio.experiences), noload(Portfolio.projects)]
    experiences = (
        selectinload(Portfolio.experiences) if capabilities.experiences
        else noload(Portfolio.experiences)
    )
    return [experiences, selectinload(Portfolio.projects)]


async def _load_portfolio(
    db: AsyncSession, username: str, capabilities: SchemaCapabilities
) -> Optional[Portfolio]:
    result = await db.execute(
        select(Portfolio)
        .where(Portfolio.username == username)
        .options(*_load_options(capabilities))
    )
    return result.scalar_one_or_none()


async def _conflict_after_integrity_error(
    db: AsyncSession,
    email: Optional[str],
    username: Optional[str],
    own_username: Optional[str] = None,
) -> Optional[ConflictError]:
    """The conflict a unique-constraint failure stands for, or None if it was something else."""
    if email:
        existing = await _username_for_email(db, email, exclude_username=own_username)
        if existing and existing != username:
            return ConflictError(email_conflict_message(existing))
    if username and await username_exists(db, username):
        return ConflictError(username_conflict_message(username))
    return None


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_portfolio(
    db: AsyncSession, payload: PortfolioCreate, capabilities: SchemaCapabilities
) -> Portfolio:
    """
    Create a portfolio with its experiences and projects.

    Raises ValidationFailed for a bad username or child entry, ConflictError
    when the email already owns a portfolio or the username is taken, and
    PersistenceError when the write fails for any other reason.
    """
    # One portfolio per email outranks any username problem
    existing = await _username_for_email(db, payload.email)
    if existing:
        raise ConflictError(email_conflict_message(existing))

    error = username_error(payload.username)
    if error:
        raise ValidationFailed(error, details=[{"loc": ["username"], "msg": error}])
    if await username_exists(db, payload.username):
        raise ConflictError(username_conflict_message(payload.username))

    experiences = prepare_experiences(payload.experiences)
    projects = prepare_projects(payload.projects)

    fields = payload.model_dump(exclude={"experiences", "projects"})
    portfolio = Portfolio(**fields)
    if capabilities.experiences:
        portfolio.experiences = _experience_rows(experiences)
    elif experiences:
        logger.warning(
            "Experiences table unavailable; skipping experience entries",
            extra={"username": payload.username, "count": len(experiences)},
        )
    portfolio.projects = _project_rows(projects)

    try:
        async with transaction(db):
            db.add(portfolio)
            await db.flush()
    except IntegrityError as e:
        logger.info("Portfolio create hit a unique constraint", extra={"username": payload.username})
        conflict = await _conflict_after_integrity_error(db, payload.email, payload.username)
        raise (conflict or PersistenceError("Failed to create portfolio")) from e
    except SQLAlchemyError as e:
        logger.error("Portfolio create failed", extra={"username": payload.username, "error": str(e)[:200]})
        raise PersistenceError("Failed to create portfolio") from e

    logger.info(
        "Portfolio created",
        extra={
            "username": portfolio.username,
            "email": mask_email(portfolio.email),
            "experiences": len(experiences) if capabilities.experiences else 0,
            "projects": len(projects),
        },
    )
    return portfolio


def ensure_owner(portfolio_email: str, identity: Optional[AuthIdentity]) -> None:
    if identity is None:
        raise AuthenticationRequired("Not authenticated")
    if (portfolio_email or "").strip().lower() != identity.normalized_email:
        raise AccessDenied("You can only edit your own portfolio.")


async def update_portfolio(
    db: AsyncSession,
    username: str,
    payload: PortfolioUpdate,
    capabilities: SchemaCapabilities,
    identity: Optional[AuthIdentity] = None,
    require_owner: bool = True,
) -> PortfolioOut:
    """
    Replace the provided scalar fields and, when present, fully replace the
    experiences and/or projects collections. Username cannot change here.
    """
    portfolio = await _load_portfolio(db, username, capabilities)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    if require_owner:
        ensure_owner(portfolio.email, identity)
    if payload.email is not None:
        taken_by = await _username_for_email(db, payload.email, exclude_username=username)
        if taken_by:
            raise ConflictError(email_conflict_message(taken_by))

    experiences = (
        prepare_experiences(payload.experiences) if payload.experiences is not None else None
    )
    projects = prepare_projects(payload.projects) if payload.projects is not None else None

    changes = payload.model_dump(exclude_unset=True, exclude={"experiences", "projects"})
    for name, value in changes.items():
        if value is None and name not in _NULLABLE_FIELDS:
            continue
        if name == "template":
            value = normalize_template(value)
        setattr(portfolio, name, value)
    portfolio.updated_at = _utcnow()

    if experiences is not None:
        if capabilities.experiences:
            portfolio.experiences = _experience_rows(experiences)
        else:
            logger.warning(
                "Experiences table unavailable; skipping experience entries",
                extra={"username": username, "count": len(experiences)},
            )
    if projects is not None:
        portfolio.projects = _project_rows(projects)

    try:
        async with transaction(db):
            await db.flush()
    except IntegrityError as e:
        conflict = await _conflict_after_integrity_error(
            db, changes.get("email"), None, own_username=username
        )
        raise (conflict or PersistenceError("Failed to update portfolio")) from e
    except SQLAlchemyError as e:
        logger.error("Portfolio update failed", extra={"username": username, "error": str(e)[:200]})
        raise PersistenceError("Failed to update portfolio") from e

    logger.info("Portfolio updated", extra={"username": username})
    return to_portfolio_out(portfolio, capabilities)


def to_portfolio_out(portfolio: Portfolio, capabilities: SchemaCapabilities) -> PortfolioOut:
    if capabilities.experiences:
        return PortfolioOut.model_validate(portfolio)
    # Never touch the experiences relationship when its table is missing
    data = {name: getattr(portfolio, name) for name in PortfolioOut.model_fields if name != "experiences"}
    return PortfolioOut.model_validate(data, from_attributes=True)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_public_portfolio(
    db: AsyncSession, username: str, capabilities: SchemaCapabilities
) -> PortfolioOut:
    portfolio = await _load_portfolio(db, username, capabilities)
    if portfolio is None or not portfolio.is_public:
        raise NotFoundError("Portfolio not found")
    return to_portfolio_out(portfolio, capabilities)


async def get_portfolio_for_owner(
    db: AsyncSession, username: str, capabilities: SchemaCapabilities
) -> PortfolioOut:
    """Any visibility. Callers check ownership before exposing it."""
    portfolio = await _load_portfolio(db, username, capabilities)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    return to_portfolio_out(portfolio, capabilities)


async def list_portfolios_for_email(db: AsyncSession, email: str) -> list[PortfolioSummary]:
    result = await db.execute(
        select(Portfolio)
        .where(func.lower(Portfolio.email) == email.strip().lower())
        .options(*_load_options(SchemaCapabilities(), with_children=False))
        .order_by(Portfolio.updated_at.desc())
    )
    return [PortfolioSummary.model_validate(p) for p in result.scalars().all()]


async def check_username_availability(
    db: AsyncSession, username: str
) -> tuple[bool, Optional[str]]:
    """(available, error). Format rules are checked before touching the database."""
    error = username_error(username)
    if error:
        return False, error
    if await username_exists(db, username):
        return False, "Username is already taken"
    return True, None


async def suggest_username(db: AsyncSession, full_name: str) -> str:
    base = base_username(full_name)
    result = await db.execute(
        select(Portfolio.username).where(Portfolio.username.startswith(base, autoescape=True))
    )
    return generate_unique_username(full_name, existing_usernames=set(result.scalars().all()))


async def increment_view_count(db: AsyncSession, username: str) -> int:
    """
    Atomic UPDATE ... RETURNING where the database supports it, otherwise
    read-modify-write (concurrent increments may be lost). Unknown username -> 0.
    """
    stmt = (
        update(Portfolio)
        .where(Portfolio.username == username)
        .values(view_count=Portfolio.view_count + 1)
        .returning(Portfolio.view_count)
        .execution_options(synchronize_session=False)
    )
    try:
        async with transaction(db):
            count = (await db.execute(stmt)).scalar_one_or_none()
        return count or 0
    except (CompileError, NotSupportedError) as e:
        logger.debug("Atomic view increment unavailable, falling back: %s", e)

    async with transaction(db):
        result = await db.execute(
            select(Portfolio).where(Portfolio.username == username).options(
                *_load_options(SchemaCapabilities(), with_children=False)
            )
        )
        portfolio = result.scalar_one_or_none()
        if portfolio is None:
            return 0
        portfolio.view_count = (portfolio.view_count or 0) + 1
        count = portfolio.view_count
    return count


async def create_contact_message(db: AsyncSession, payload: ContactMessageIn) -> ContactMessage:
    if any(is_blank(v) for v in (payload.name, payload.email, payload.message, payload.portfolio_username)):
        raise ValidationFailed("Missing required fields")
    if not validate_email(payload.email):
        raise ValidationFailed("Invalid email format")

    result = await db.execute(
        select(Portfolio.id).where(Portfolio.username == payload.portfolio_username.strip())
    )
    portfolio_id = result.scalar_one_or_none()
    if portfolio_id is None:
        raise NotFoundError("Portfolio not found")

    message = ContactMessage(
        portfolio_id=portfolio_id,
        sender_name=payload.name.strip(),
        sender_email=payload.email.strip(),
        message=payload.message.strip(),
    )
    try:
        async with transaction(db):
            db.add(message)
            await db.flush()
    except SQLAlchemyError as e:
        logger.error("Contact message insert failed", extra={"error": str(e)[:200]})
        raise PersistenceError("Failed to send message") from e
    logger.info("Contact message stored", extra={"username": payload.portfolio_username})
    return message


async def list_public_portfolios(db: AsyncSession) -> list[PortfolioCard]:
    result = await db.execute(
        select(Portfolio)
        .where(Portfolio.is_public.is_(True))
        .options(*_load_options(SchemaCapabilities(), with_children=False))
        .order_by(Portfolio.created_at.desc())
    )
    return [PortfolioCard.model_validate(p) for p in result.scalars().all()]


async def list_public_projects(db: AsyncSession) -> list[ProjectCard]:
    result = await db.execute(
        select(Project, Portfolio)
        .join(Portfolio, Project.portfolio_id == Portfolio.id)
        .where(Portfolio.is_public.is_(True))
        .options(noload(Project.portfolio))
        .order_by(Portfolio.created_at.desc(), Project.order_index)
    )
    return [
        ProjectCard(
            id=project.id,
            name=project.name,
            impact_stat=project.impact_stat,
            cover_image_url=project.cover_image_url,
            description=project.description,
            tech_stack=list(project.tech_stack or []),
            github_url=project.github_url,
            demo_url=project.demo_url,
            owner_username=owner.username,
            owner_full_name=owner.full_name,
            owner_job_title=owner.job_title,
            owner_profile_photo_url=owner.profile_photo_url,
            owner_view_count=owner.view_count,
            owner_created_at=owner.created_at,
        )
        for project, owner in result.all()
    ]
