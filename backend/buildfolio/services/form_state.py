"""
Portfolio authoring state: one typed aggregate for all five form steps,
a step cursor, list editing helpers and pure per-step validators.

Steps:
    1 personal info, 2 skills, 3 experience, 4 projects, 5 template/publish
"""
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional

from buildfolio.schemas.portfolio import MAX_EXPERIENCES, MAX_PROJECTS, PortfolioOut, normalize_template
from buildfolio.utils.security import AuthIdentity
from buildfolio.utils.validators import (
    MAX_BIO_WORDS,
    USERNAME_MIN_LENGTH,
    USERNAME_PATTERN,
    count_words,
    validate_email,
)

FIRST_STEP = 1
LAST_STEP = 5
GALLERY_SLOTS = 3


class FormStateError(Exception):
    """Raised on an operation the form cannot apply (unknown field or id)."""

    pass


class EditAccessDenied(Exception):
    """Caller may not edit this portfolio. redirect_to says where to send them."""

    def __init__(self, message: str, redirect_to: str, status_code: int = 403):
        super().__init__(message)
        self.message = message
        self.redirect_to = redirect_to
        self.status_code = status_code


@dataclass
class PendingFile:
    """A local file selected in the form and not uploaded yet."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class FormExperience:
    id: str = field(default_factory=_new_id)
    company: str = ""
    role: str = ""
    location: str = ""
    start_date: str = ""
    end_date: str = ""
    is_current: bool = False
    description: str = ""

    def is_blank(self) -> bool:
        return not (self.company.strip() or self.role.strip() or self.description.strip())


@dataclass
class FormProject:
    id: str = field(default_factory=_new_id)
    name: str = ""
    impact_stat: str = ""
    cover_image: Optional[PendingFile] = None
    cover_image_url: str = ""
    carousel_images: list[Optional[PendingFile]] = field(
        default_factory=lambda: [None] * GALLERY_SLOTS
    )
    carousel_image_urls: list[str] = field(default_factory=list)
    description: str = ""
    tech_stack: list[str] = field(default_factory=list)
    github_url: str = ""
    demo_url: str = ""
    is_featured: bool = False

    def is_active(self) -> bool:
        """Anything filled in at all; active projects are submitted."""
        return bool(
            self.name.strip()
            or self.description.strip()
            or self.cover_image
            or self.cover_image_url
            or self.tech_stack
            or self.github_url.strip()
            or self.demo_url.strip()
        )


_LIST_FIELDS = frozenset(("experiences", "projects"))
_STATE_FIELDS = frozenset(("current_step", "edit_username"))


@dataclass
class PortfolioForm:
    # Step 1: personal info
    full_name: str = ""
    tagline: str = ""
    job_title: str = ""
    location: str = ""
    bio: str = ""
    email: str = ""
    profile_photo: Optional[PendingFile] = None
    profile_photo_url: str = ""
    linkedin_url: str = ""
    github_username: str = ""
    resume: Optional[PendingFile] = None
    resume_url: str = ""
    availability_status: str = "open_fulltime"
    open_to_work: bool = True
    # Step 2
    skills: list[dict[str, str]] = field(default_factory=list)
    # Step 3
    experiences: list[FormExperience] = field(default_factory=list)
    # Step 4
    projects: list[FormProject] = field(default_factory=list)
    # Step 5
    template: str = "minimal"
    is_public: bool = True
    username: str = ""

    current_step: int = FIRST_STEP
    # Set when editing an existing portfolio; username is then fixed
    edit_username: Optional[str] = None

    @property
    def is_edit_mode(self) -> bool:
        return self.edit_username is not None

    # ------------------------------------------------------------------
    # Scalar fields
    # ------------------------------------------------------------------

    def update_fields(self, **partial: Any) -> None:
        """Merge scalar/skill fields. Lists of entries have their own helpers."""
        names = {f.name for f in fields(self)} - _LIST_FIELDS - _STATE_FIELDS
        unknown = set(partial) - names
        if unknown:
            raise FormStateError(f"Unknown form field(s): {', '.join(sorted(unknown))}")
        if "template" in partial:
            partial["template"] = normalize_template(partial["template"])
        for name, value in partial.items():
            setattr(self, name, value)

    # ------------------------------------------------------------------
    # Experiences
    # ------------------------------------------------------------------

    def add_experience(self) -> Optional[FormExperience]:
        if len(self.experiences) >= MAX_EXPERIENCES:
            return None
        entry = FormExperience()
        self.experiences.append(entry)
        return entry

    def remove_experience(self, entry_id: str) -> None:
        self.experiences = [e for e in self.experiences if e.id != entry_id]

    def update_experience(self, entry_id: str, **partial: Any) -> FormExperience:
        entry = _find(self.experiences, entry_id)
        _merge(entry, partial)
        return entry

    def reorder_experiences(self, start_index: int, end_index: int) -> None:
        _move(self.experiences, start_index, end_index)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def add_project(self) -> Optional[FormProject]:
        if len(self.projects) >= MAX_PROJECTS:
            return None
        entry = FormProject(is_featured=not self.projects)
        self.projects.append(entry)
        return entry

    def remove_project(self, entry_id: str) -> None:
        remaining = [p for p in self.projects if p.id != entry_id]
        if remaining and not any(p.is_featured for p in remaining):
            remaining[0].is_featured = True
        self.projects = remaining

    def update_project(self, entry_id: str, **partial: Any) -> FormProject:
        entry = _find(self.projects, entry_id)
        featured = partial.pop("is_featured", None)
        _merge(entry, partial)
        if featured:
            self.set_featured_project(entry_id)
        elif featured is False:
            entry.is_featured = False
        return entry

    def set_featured_project(self, entry_id: str) -> None:
        _find(self.projects, entry_id)
        for project in self.projects:
            project.is_featured = project.id == entry_id

    def reorder_projects(self, start_index: int, end_index: int) -> None:
        _move(self.projects, start_index, end_index)

    # ------------------------------------------------------------------
    # Step cursor
    # ------------------------------------------------------------------

    def advance(self) -> Optional[str]:
        """Move to the next step if the current one passes. Returns the blocking message."""
        error = validate_step(self, self.current_step)
        if error:
            return error
        self.current_step = min(self.current_step + 1, LAST_STEP)
        return None

    def back(self) -> None:
        self.current_step = max(self.current_step - 1, FIRST_STEP)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe snapshot. Pending files are reported by name only."""
        data = asdict(self)
        data["profile_photo"] = _file_name(self.profile_photo)
        data["resume"] = _file_name(self.resume)
        for raw, project in zip(data["projects"], self.projects):
            raw["cover_image"] = _file_name(project.cover_image)
            raw["carousel_images"] = [_file_name(f) for f in project.carousel_images]
        return data


def _file_name(pending: Optional[PendingFile]) -> Optional[str]:
    return pending.filename if pending else None


def _find(entries: list, entry_id: str):
    for entry in entries:
        if entry.id == entry_id:
            return entry
    raise FormStateError(f"No entry with id {entry_id}")


def _merge(entry: Any, partial: dict[str, Any]) -> None:
    allowed = {f.name for f in fields(entry)} - {"id"}
    unknown = set(partial) - allowed
    if unknown:
        raise FormStateError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    for name, value in partial.items():
        setattr(entry, name, value)


def _move(entries: list, start_index: int, end_index: int) -> None:
    """Remove at start_index, insert at end_index (not a swap)."""
    if not 0 <= start_index < len(entries):
        raise FormStateError(f"Index {start_index} out of range")
    item = entries.pop(start_index)
    entries.insert(end_index, item)


# ---------------------------------------------------------------------------
# Step validation (pure)
# ---------------------------------------------------------------------------

def validate_personal(form: PortfolioForm) -> Optional[str]:
    if not form.full_name.strip():
        return "Full name is required"
    if not form.job_title.strip():
        return "Job title is required"
    if not form.bio.strip():
        return "Bio is required"
    if count_words(form.bio) > MAX_BIO_WORDS:
        return f"Bio must be {MAX_BIO_WORDS} words or less"
    if not form.email.strip():
        return "Email is required"
    if not validate_email(form.email):
        return "Invalid email format"
    return None


def validate_publish(form: PortfolioForm) -> Optional[str]:
    # Username is fixed once a portfolio exists
    if form.is_edit_mode:
        return None
    if not form.username or len(form.username) < USERNAME_MIN_LENGTH:
        return "Please enter a username (at least 3 characters)"
    if not USERNAME_PATTERN.match(form.username):
        return "Username can only contain lowercase letters, numbers, and hyphens"
    return None


def _no_blocking_rules(form: PortfolioForm) -> Optional[str]:
    return None


STEP_VALIDATORS = {
    1: validate_personal,
    2: _no_blocking_rules,
    3: _no_blocking_rules,
    4: _no_blocking_rules,
    5: validate_publish,
}


def validate_step(form: PortfolioForm, step: int) -> Optional[str]:
    try:
        validator = STEP_VALIDATORS[step]
    except KeyError:
        raise FormStateError(f"Unknown step {step}") from None
    return validator(form)


# ---------------------------------------------------------------------------
# Edit mode
# ---------------------------------------------------------------------------

def hydrate_for_edit(portfolio: PortfolioOut, identity: Optional[AuthIdentity]) -> PortfolioForm:
    """
    Load an existing portfolio into a fresh form for its owner.
    Ownership is a case-insensitive match of the portfolio email against the
    authenticated identity's email. Nothing is loaded for anyone else.
    """
    if identity is None or not identity.normalized_email:
        raise EditAccessDenied(
            "Please log in to edit this portfolio.", redirect_to="/login", status_code=401
        )
    if (portfolio.email or "").strip().lower() != identity.normalized_email:
        raise EditAccessDenied(
            "You can only edit your own portfolio.", redirect_to=f"/{portfolio.username}"
        )

    return PortfolioForm(
        full_name=portfolio.full_name or "",
        tagline=portfolio.tagline or "",
        job_title=portfolio.job_title or "",
        location=portfolio.location or "",
        bio=portfolio.bio or "",
        email=portfolio.email or "",
        profile_photo_url=portfolio.profile_photo_url or "",
        linkedin_url=portfolio.linkedin_url or "",
        github_username=portfolio.github_username or "",
        resume_url=portfolio.resume_url or "",
        availability_status=portfolio.availability_status,
        open_to_work=portfolio.open_to_work,
        skills=[skill.model_dump() for skill in portfolio.skills],
        experiences=[
            FormExperience(
                id=exp.id,
                company=exp.company,
                role=exp.role,
                location=exp.location,
                start_date=exp.start_date,
                end_date=exp.end_date,
                is_current=exp.is_current,
                description=exp.description,
            )
            for exp in portfolio.experiences
        ],
        projects=[
            FormProject(
                id=project.id,
                name=project.name,
                impact_stat=project.impact_stat or "",
                cover_image_url=project.cover_image_url,
                carousel_image_urls=list(project.carousel_images),
                description=project.description,
                tech_stack=list(project.tech_stack),
                github_url=project.github_url,
                demo_url=project.demo_url,
                is_featured=project.is_featured,
            )
            for project in portfolio.projects
        ],
        template=normalize_template(portfolio.template),
        is_public=portfolio.is_public,
        username=portfolio.username,
        current_step=FIRST_STEP,
        edit_username=portfolio.username,
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def experiences_payload(form: PortfolioForm) -> list[dict[str, Any]]:
    """Non-blank experiences, re-indexed; current roles carry no end date."""
    active = [e for e in form.experiences if not e.is_blank()]
    return [
        {
            "company": exp.company,
            "role": exp.role,
            "location": exp.location,
            "start_date": exp.start_date,
            "end_date": "" if exp.is_current else exp.end_date,
            "is_current": exp.is_current,
            "description": exp.description,
            "order_index": index,
        }
        for index, exp in enumerate(active)
    ]


def build_submission(
    form: PortfolioForm,
    profile_photo_url: str,
    resume_url: str,
    projects: list[dict[str, Any]],
) -> dict[str, Any]:
    """Body for POST /portfolio (or PATCH in edit mode) once media URLs are known."""
    payload: dict[str, Any] = {
        "full_name": form.full_name,
        "tagline": form.tagline,
        "job_title": form.job_title,
        "location": form.location,
        "bio": form.bio,
        "email": form.email,
        "profile_photo_url": profile_photo_url,
        "linkedin_url": form.linkedin_url,
        "github_username": form.github_username,
        "resume_url": resume_url,
        "availability_status": form.availability_status,
        "open_to_work": form.open_to_work,
        "skills": list(form.skills),
        "template": normalize_template(form.template),
        "is_public": form.is_public,
        "experiences": experiences_payload(form),
        "projects": projects,
    }
    if not form.is_edit_mode:
        payload["username"] = form.username
    return payload
