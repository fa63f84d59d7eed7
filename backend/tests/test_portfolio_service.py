"""Service tests against an in-memory SQLite database."""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import CompileError, IntegrityError

from buildfolio.database.connection import SchemaCapabilities
from buildfolio.models import ContactMessage, Experience, Portfolio, Project
from buildfolio.schemas.portfolio import ContactMessageIn, PortfolioCreate, PortfolioUpdate
from buildfolio.services import portfolio_service
from buildfolio.services.errors import (
    AccessDenied,
    AuthenticationRequired,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationFailed,
)
from buildfolio.utils.security import AuthIdentity
from conftest import portfolio_payload

OWNER = AuthIdentity(user_id="u1", email="alex@example.com")


async def _create(db, capabilities=SchemaCapabilities(), **overrides):
    payload = PortfolioCreate.model_validate(portfolio_payload(**overrides))
    return await portfolio_service.create_portfolio(db, payload, capabilities)


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def test_create_drops_empty_children_and_reindexes(db, capabilities):
    await _create(db, capabilities)
    portfolio = await portfolio_service.get_public_portfolio(db, "alex-rivera", capabilities)
    assert [(e.company, e.order_index) for e in portfolio.experiences] == [("Acme", 0)]
    assert [(p.name, p.order_index, p.is_featured) for p in portfolio.projects] == [
        ("Ledger", 0, True)
    ]
    assert [s.name for s in portfolio.skills] == ["Python", "PostgreSQL"]


async def test_create_keeps_submitted_order(db, capabilities):
    experiences = [{"company": name, "role": "Eng"} for name in ("C", "A", "B")]
    await _create(db, capabilities, experiences=experiences)
    portfolio = await portfolio_service.get_public_portfolio(db, "alex-rivera", capabilities)
    assert [e.company for e in portfolio.experiences] == ["C", "A", "B"]
    assert [e.order_index for e in portfolio.experiences] == [0, 1, 2]


async def test_create_clears_end_date_for_current_role(db, capabilities):
    experiences = [{"company": "Acme", "end_date": "2024", "is_current": True}]
    await _create(db, capabilities, experiences=experiences)
    portfolio = await portfolio_service.get_public_portfolio(db, "alex-rivera", capabilities)
    assert portfolio.experiences[0].end_date == ""


async def test_create_normalizes_legacy_template(db, capabilities):
    portfolio = await _create(db, capabilities, template="pastel")
    assert portfolio.template == "professional"


async def test_duplicate_email_names_existing_portfolio(db, capabilities):
    await _create(db, capabilities)
    with pytest.raises(ConflictError) as exc:
        await _create(db, capabilities, username="someone-else", email="ALEX@example.com")
    assert exc.value.message == (
        "You already have a portfolio (@alex-rivera). You can only have one portfolio. "
        "Please edit your existing portfolio instead."
    )


async def test_duplicate_username_conflicts(db, capabilities):
    await _create(db, capabilities)
    with pytest.raises(ConflictError) as exc:
        await _create(db, capabilities, email="sam@example.com")
    assert exc.value.message == (
        'The username "@alex-rivera" is already taken. Please choose a different one.'
    )


@pytest.mark.parametrize("username", ["admin", "ab", "Bad Name"])
async def test_existing_owner_conflict_outranks_bad_username(db, capabilities, username):
    await _create(db, capabilities)
    with pytest.raises(ConflictError, match=r"You already have a portfolio \(@alex-rivera\)"):
        await _create(db, capabilities, username=username)


async def test_emails_are_stored_lowercased(db, capabilities):
    portfolio = await _create(db, capabilities, email="  Alex@Example.COM ")
    assert portfolio.email == "alex@example.com"


async def test_update_rejects_email_of_another_portfolio(db, capabilities):
    await _create(db, capabilities)
    await _create(db, capabilities, username="sam-lee", email="sam@example.com")
    sam = AuthIdentity(user_id="u2", email="sam@example.com")
    with pytest.raises(ConflictError, match=r"@alex-rivera"):
        await portfolio_service.update_portfolio(
            db, "sam-lee", PortfolioUpdate(email="ALEX@example.com"), capabilities, identity=sam
        )
    owners = await db.execute(
        select(Portfolio.username).where(func.lower(Portfolio.email) == "alex@example.com")
    )
    assert owners.scalars().all() == ["alex-rivera"]


async def test_update_may_keep_own_email_in_other_case(db, capabilities):
    await _create(db, capabilities)
    result = await portfolio_service.update_portfolio(
        db, "alex-rivera", PortfolioUpdate(email="ALEX@example.com"), capabilities, identity=OWNER
    )
    assert result.email == "alex@example.com"


async def test_email_unique_index_ignores_case(db, capabilities):
    await _create(db, capabilities)
    db.add(
        Portfolio(
            username="sam-lee", full_name="Sam", job_title="Eng", email="ALEX@Example.com"
        )
    )
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()
    assert await _count(db, Portfolio) == 1


@pytest.mark.parametrize("username", ["ab", "Alex", "admin"])
async def test_bad_usernames_rejected_before_write(db, capabilities, username):
    with pytest.raises(ValidationFailed):
        await _create(db, capabilities, username=username)
    assert await _count(db, Portfolio) == 0


async def test_unique_constraint_is_source_of_truth(db, capabilities):
    await _create(db, capabilities)
    # Simulate losing a race: the pre-check says free, the insert says taken
    exists = AsyncMock(side_effect=[False, True])
    with patch.object(portfolio_service, "username_exists", exists):
        with pytest.raises(ConflictError, match="already taken"):
            await _create(db, capabilities, email="sam@example.com")
    assert await _count(db, Portfolio) == 1


async def test_child_failure_rolls_back_everything(db, capabilities):
    # JSON column cannot serialize this, so the insert fails after the parent row
    broken = [Project(name="Ledger", order_index=0, tech_stack=object())]
    with patch.object(portfolio_service, "_project_rows", return_value=broken):
        with pytest.raises(PersistenceError):
            await _create(db, capabilities)
    assert await _count(db, Portfolio) == 0
    assert await _count(db, Experience) == 0


async def test_too_many_projects_rejected(db, capabilities):
    projects = [{"name": f"P{i}"} for i in range(11)]
    with pytest.raises(ValidationFailed, match="at most 10 projects"):
        await _create(db, capabilities, projects=projects)


async def test_invalid_project_url_reports_issue(db, capabilities):
    with pytest.raises(ValidationFailed) as exc:
        await _create(db, capabilities, projects=[{"name": "X", "github_url": "not a url"}])
    assert exc.value.details[0]["loc"][:3] == ["projects", 0, "github_url"]


async def test_experiences_skipped_when_table_unavailable(db):
    no_experiences = SchemaCapabilities(experiences=False)
    await _create(db, no_experiences)
    assert await _count(db, Experience) == 0
    portfolio = await portfolio_service.get_public_portfolio(db, "alex-rivera", no_experiences)
    assert portfolio.experiences == []
    assert len(portfolio.projects) == 1


async def test_update_replaces_children_idempotently(db, capabilities):
    await _create(db, capabilities)
    update = PortfolioUpdate.model_validate(
        {
            "tagline": "New tagline",
            "template": "pastel",
            "experiences": [{"company": "Globex", "role": "Lead"}],
            "projects": [{"name": "One"}, {"name": "Two", "is_featured": True}],
        }
    )
    for _ in range(2):
        result = await portfolio_service.update_portfolio(
            db, "alex-rivera", update, capabilities, identity=OWNER
        )
    assert result.tagline == "New tagline"
    assert result.template == "professional"
    assert [e.company for e in result.experiences] == ["Globex"]
    assert [p.name for p in result.projects] == ["One", "Two"]
    assert await _count(db, Experience) == 1
    assert await _count(db, Project) == 2


async def test_update_leaves_absent_collections_alone(db, capabilities):
    await _create(db, capabilities)
    result = await portfolio_service.update_portfolio(
        db, "alex-rivera", PortfolioUpdate(location="Porto"), capabilities, identity=OWNER
    )
    assert result.location == "Porto"
    assert result.full_name == "Alex Rivera"
    assert [p.name for p in result.projects] == ["Ledger"]


async def test_update_requires_owner(db, capabilities):
    await _create(db, capabilities)
    body = PortfolioUpdate(location="Porto")
    with pytest.raises(AuthenticationRequired):
        await portfolio_service.update_portfolio(db, "alex-rivera", body, capabilities)
    stranger = AuthIdentity(user_id="u2", email="sam@example.com")
    with pytest.raises(AccessDenied):
        await portfolio_service.update_portfolio(
            db, "alex-rivera", body, capabilities, identity=stranger
        )
    result = await portfolio_service.update_portfolio(
        db, "alex-rivera", body, capabilities, require_owner=False
    )
    assert result.location == "Porto"


async def test_update_unknown_portfolio_is_404(db, capabilities):
    with pytest.raises(NotFoundError):
        await portfolio_service.update_portfolio(
            db, "nobody", PortfolioUpdate(), capabilities, identity=OWNER
        )


async def test_private_portfolio_hidden_from_public_read(db, capabilities):
    await _create(db, capabilities, is_public=False)
    with pytest.raises(NotFoundError):
        await portfolio_service.get_public_portfolio(db, "alex-rivera", capabilities)
    owner_view = await portfolio_service.get_portfolio_for_owner(db, "alex-rivera", capabilities)
    assert owner_view.is_public is False


async def test_list_portfolios_for_email(db, capabilities):
    await _create(db, capabilities)
    summaries = await portfolio_service.list_portfolios_for_email(db, "Alex@Example.com")
    assert [s.username for s in summaries] == ["alex-rivera"]
    assert await portfolio_service.list_portfolios_for_email(db, "sam@example.com") == []


async def test_username_availability(db, capabilities):
    await _create(db, capabilities)
    assert await portfolio_service.check_username_availability(db, "alex-rivera") == (
        False, "Username is already taken"
    )
    assert await portfolio_service.check_username_availability(db, "admin") == (
        False, "This username is reserved"
    )
    assert await portfolio_service.check_username_availability(db, "sam-lee") == (True, None)


async def test_suggest_username_avoids_taken(db, capabilities):
    await _create(db, capabilities)
    suggestion = await portfolio_service.suggest_username(db, "Alex Rivera")
    assert suggestion.startswith("alex-rivera-")
    assert await portfolio_service.suggest_username(db, "Sam Lee") == "sam-lee"


async def test_view_count_increments(db, capabilities):
    await _create(db, capabilities)
    assert await portfolio_service.increment_view_count(db, "alex-rivera") == 1
    assert await portfolio_service.increment_view_count(db, "alex-rivera") == 2
    assert await portfolio_service.increment_view_count(db, "nobody") == 0


async def test_view_count_falls_back_without_returning(db, capabilities):
    await _create(db, capabilities)
    real_execute = db.execute
    calls = []

    async def execute(statement, *args, **kwargs):
        calls.append(statement)
        if len(calls) == 1:
            raise CompileError("RETURNING is not supported")
        return await real_execute(statement, *args, **kwargs)

    with patch.object(db, "execute", side_effect=execute):
        assert await portfolio_service.increment_view_count(db, "alex-rivera") == 1
    assert await portfolio_service.increment_view_count(db, "alex-rivera") == 2


async def test_view_ping_does_not_touch_updated_at(db, capabilities):
    await _create(db, capabilities)
    db.expire_all()
    before = (await portfolio_service.get_public_portfolio(db, "alex-rivera", capabilities)).updated_at
    await portfolio_service.increment_view_count(db, "alex-rivera")
    db.expire_all()
    after = (await portfolio_service.get_public_portfolio(db, "alex-rivera", capabilities)).updated_at
    assert after == before


async def test_contact_message_validation(db, capabilities):
    await _create(db, capabilities)
    with pytest.raises(ValidationFailed, match="Missing required fields"):
        await portfolio_service.create_contact_message(
            db, ContactMessageIn(name="Sam", email="sam@example.com", message="")
        )
    with pytest.raises(ValidationFailed, match="Invalid email format"):
        await portfolio_service.create_contact_message(
            db,
            ContactMessageIn(
                name="Sam", email="sam@", message="Hi", portfolio_username="alex-rivera"
            ),
        )
    with pytest.raises(NotFoundError, match="Portfolio not found"):
        await portfolio_service.create_contact_message(
            db,
            ContactMessageIn(
                name="Sam", email="sam@example.com", message="Hi", portfolio_username="nobody"
            ),
        )


async def test_contact_message_stored_for_portfolio(db, capabilities):
    created = await _create(db, capabilities)
    message = await portfolio_service.create_contact_message(
        db,
        ContactMessageIn(
            name=" Sam ", email="sam@example.com", message="Let's talk", portfolio_username="alex-rivera"
        ),
    )
    assert message.portfolio_id == created.id
    assert message.sender_name == "Sam"
    assert message.is_read is False
    assert await _count(db, ContactMessage) == 1


async def test_public_listings(db, capabilities):
    await _create(db, capabilities)
    await _create(db, capabilities, username="hidden-one", email="h@example.com", is_public=False)
    cards = await portfolio_service.list_public_portfolios(db)
    assert [c.username for c in cards] == ["alex-rivera"]
    projects = await portfolio_service.list_public_projects(db)
    assert [(p.name, p.owner_username) for p in projects] == [("Ledger", "alex-rivera")]
