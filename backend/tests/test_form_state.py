"""Unit tests for the portfolio form state and step validation."""
from datetime import datetime, timezone

import pytest
from buildfolio.schemas.portfolio import PortfolioOut
from buildfolio.services.form_state import (
    EditAccessDenied,
    FormStateError,
    PendingFile,
    PortfolioForm,
    build_submission,
    hydrate_for_edit,
    validate_step,
)
from buildfolio.utils.security import AuthIdentity


def _filled_form(**overrides) -> PortfolioForm:
    form = PortfolioForm(
        full_name="Alex Rivera",
        job_title="Backend Engineer",
        bio="Builds things.",
        email="alex@example.com",
        username="alex-rivera",
    )
    form.update_fields(**overrides)
    return form


def _stored_portfolio(**overrides) -> PortfolioOut:
    data = {
        "id": "7b1d2f9e-1111-4c1a-9c55-0a1b2c3d4e5f",
        "username": "alex-rivera",
        "full_name": "Alex Rivera",
        "tagline": "",
        "job_title": "Backend Engineer",
        "location": "Lisbon",
        "bio": "Builds things.",
        "email": "Alex@Example.com",
        "profile_photo_url": "https://cdn.test/profile-photos/1-me.jpg",
        "linkedin_url": None,
        "github_username": None,
        "resume_url": None,
        "availability_status": "freelance",
        "open_to_work": False,
        "skills": [{"name": "Python", "category": "Languages"}],
        "template": "pastel",
        "is_public": True,
        "view_count": 3,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 2, 1, tzinfo=timezone.utc),
        "experiences": [
            {
                "id": "e1", "company": "Acme", "role": "Eng", "location": "",
                "start_date": "2020", "end_date": "", "is_current": True,
                "description": "", "order_index": 0,
            }
        ],
        "projects": [
            {
                "id": "p1", "name": "Ledger", "impact_stat": None,
                "cover_image_url": "https://cdn.test/project-images/1-c.jpg",
                "carousel_images": ["https://cdn.test/project-images/2-g.jpg"],
                "description": "", "tech_stack": ["Python"], "github_url": "",
                "demo_url": "", "is_featured": True, "order_index": 0,
            }
        ],
    }
    data.update(overrides)
    return PortfolioOut.model_validate(data)


def test_update_fields_rejects_unknown_names():
    form = PortfolioForm()
    form.update_fields(full_name="Alex", template="pastel")
    assert form.full_name == "Alex"
    assert form.template == "professional"
    with pytest.raises(FormStateError):
        form.update_fields(nickname="al")
    with pytest.raises(FormStateError):
        form.update_fields(projects=[])


def test_experience_limit_is_ten():
    form = PortfolioForm()
    for _ in range(10):
        assert form.add_experience() is not None
    assert form.add_experience() is None
    assert len(form.experiences) == 10


def test_project_limit_is_ten():
    form = PortfolioForm()
    for _ in range(10):
        form.add_project()
    assert form.add_project() is None
    assert len(form.projects) == 10


def test_first_project_is_featured():
    form = PortfolioForm()
    first = form.add_project()
    second = form.add_project()
    assert first.is_featured is True
    assert second.is_featured is False


def test_removing_featured_project_promotes_first_remaining():
    form = PortfolioForm()
    a, b, c = form.add_project(), form.add_project(), form.add_project()
    form.set_featured_project(b.id)
    form.remove_project(b.id)
    featured = [p for p in form.projects if p.is_featured]
    assert featured == [a]
    assert [p.id for p in form.projects] == [a.id, c.id]


def test_set_featured_keeps_exactly_one():
    form = PortfolioForm()
    a, b = form.add_project(), form.add_project()
    form.update_project(b.id, is_featured=True, name="B")
    assert [p.is_featured for p in form.projects] == [False, True]
    assert b.name == "B"
    with pytest.raises(FormStateError):
        form.set_featured_project("missing")


def test_reorder_is_remove_then_insert():
    form = PortfolioForm()
    entries = [form.add_experience() for _ in range(4)]
    form.reorder_experiences(0, 2)
    assert [e.id for e in form.experiences] == [
        entries[1].id, entries[2].id, entries[0].id, entries[3].id
    ]
    with pytest.raises(FormStateError):
        form.reorder_experiences(9, 0)


def test_update_experience_by_id():
    form = PortfolioForm()
    entry = form.add_experience()
    form.update_experience(entry.id, company="Acme", is_current=True)
    assert form.experiences[0].company == "Acme"
    with pytest.raises(FormStateError):
        form.update_experience(entry.id, salary=1)
    form.remove_experience(entry.id)
    assert form.experiences == []


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"full_name": "  "}, "Full name is required"),
        ({"job_title": ""}, "Job title is required"),
        ({"bio": ""}, "Bio is required"),
        ({"email": ""}, "Email is required"),
        ({"email": "alex@example"}, "Invalid email format"),
        ({"bio": " ".join(["w"] * 401)}, "Bio must be 400 words or less"),
    ],
)
def test_personal_step_rules(overrides, message):
    assert validate_step(_filled_form(**overrides), 1) == message


def test_bio_of_exactly_400_words_passes():
    assert validate_step(_filled_form(bio=" ".join(["w"] * 400)), 1) is None


def test_middle_steps_never_block():
    form = PortfolioForm()
    assert all(validate_step(form, step) is None for step in (2, 3, 4))
    with pytest.raises(FormStateError):
        validate_step(form, 6)


def test_publish_step_username_rules():
    assert validate_step(_filled_form(username="ab"), 5) == (
        "Please enter a username (at least 3 characters)"
    )
    assert validate_step(_filled_form(username="Alex"), 5) == (
        "Username can only contain lowercase letters, numbers, and hyphens"
    )
    assert validate_step(_filled_form(username="abc"), 5) is None
    edit = _filled_form(username="")
    edit.edit_username = "alex-rivera"
    assert validate_step(edit, 5) is None


def test_advance_and_back_move_cursor_within_bounds():
    form = _filled_form(full_name="")
    assert form.advance() == "Full name is required"
    assert form.current_step == 1
    form.update_fields(full_name="Alex")
    for _ in range(6):
        assert form.advance() is None
    assert form.current_step == 5
    for _ in range(6):
        form.back()
    assert form.current_step == 1


def test_hydrate_requires_login():
    with pytest.raises(EditAccessDenied) as exc:
        hydrate_for_edit(_stored_portfolio(), None)
    assert exc.value.redirect_to == "/login"
    assert exc.value.status_code == 401


def test_hydrate_rejects_other_users():
    other = AuthIdentity(user_id="u2", email="sam@example.com")
    with pytest.raises(EditAccessDenied) as exc:
        hydrate_for_edit(_stored_portfolio(), other)
    assert exc.value.redirect_to == "/alex-rivera"


def test_hydrate_for_owner_matches_email_case_insensitively():
    owner = AuthIdentity(user_id="u1", email="alex@EXAMPLE.com")
    form = hydrate_for_edit(_stored_portfolio(), owner)
    assert form.is_edit_mode
    assert form.current_step == 1
    assert form.template == "professional"
    assert form.experiences[0].company == "Acme"
    assert form.projects[0].carousel_image_urls == ["https://cdn.test/project-images/2-g.jpg"]
    assert form.skills == [{"name": "Python", "category": "Languages"}]


def test_build_submission_filters_and_reindexes_experiences():
    form = _filled_form()
    blank = form.add_experience()
    current = form.add_experience()
    form.update_experience(current.id, company="Acme", end_date="2023", is_current=True)
    payload = build_submission(form, "", "", [])
    assert blank.is_blank()
    assert payload["experiences"] == [
        {
            "company": "Acme", "role": "", "location": "", "start_date": "",
            "end_date": "", "is_current": True, "description": "", "order_index": 0,
        }
    ]
    assert payload["username"] == "alex-rivera"


def test_build_submission_omits_username_in_edit_mode():
    form = _filled_form()
    form.edit_username = "alex-rivera"
    assert "username" not in build_submission(form, "", "", [])


def test_to_dict_reports_pending_files_by_name():
    form = _filled_form()
    form.update_fields(profile_photo=PendingFile("me.png", b"png"))
    project = form.add_project()
    form.update_project(project.id, cover_image=PendingFile("cover.png", b"x"))
    data = form.to_dict()
    assert data["profile_photo"] == "me.png"
    assert data["projects"][0]["cover_image"] == "cover.png"
    assert data["projects"][0]["carousel_images"] == [None, None, None]
