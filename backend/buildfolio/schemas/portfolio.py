"""
Pydantic payloads for the portfolio aggregate: request validation and response shapes.
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from buildfolio.utils.validators import (
    MAX_DESCRIPTION_CHARS,
    validate_bio,
    validate_email,
)

AvailabilityStatus = Literal["open_fulltime", "freelance", "not_looking"]
TemplateType = Literal["minimal", "professional"]
SkillCategory = Literal["Languages", "Tools", "Frameworks", "Other"]

LEGACY_TEMPLATES = {"pastel": "professional"}
MAX_SKILLS = 30
MAX_EXPERIENCES = 10
MAX_PROJECTS = 10

_http_url = TypeAdapter(AnyHttpUrl)


def normalize_template(value: Any) -> Any:
    """Map retired template names onto their replacement."""
    if isinstance(value, str):
        return LEGACY_TEMPLATES.get(value, value)
    return value


def _check_optional_url(value: Optional[str], label: str) -> Optional[str]:
    if value is None or value == "":
        return value
    try:
        _http_url.validate_python(value)
    except ValueError:
        raise ValueError(f"Invalid {label} URL")
    return value


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


class Skill(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    category: SkillCategory


# ---------------------------------------------------------------------------
# Child entries (validated after empty entries are filtered out)
# ---------------------------------------------------------------------------

class ExperienceIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    company: str = Field(default="", max_length=100)
    role: str = Field(default="", max_length=100)
    location: str = Field(default="", max_length=100)
    start_date: str = Field(default="", max_length=50)
    end_date: str = Field(default="", max_length=50)
    is_current: bool = False
    description: str = Field(default="", max_length=MAX_DESCRIPTION_CHARS)
    order_index: int = Field(default=0, ge=0)

    @field_validator(
        "company", "role", "location", "start_date", "end_date", "description", mode="before"
    )
    @classmethod
    def default_blank(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("is_current", mode="before")
    @classmethod
    def default_false(cls, v: Any) -> Any:
        return False if v is None else v


class ProjectIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="", max_length=100)
    impact_stat: Optional[str] = Field(default=None, max_length=100)
    cover_image_url: str = ""
    carousel_images: list[str] = Field(default_factory=list)
    description: str = Field(default="", max_length=MAX_DESCRIPTION_CHARS)
    tech_stack: list[str] = Field(default_factory=list)
    github_url: str = ""
    demo_url: str = ""
    is_featured: bool = False
    order_index: int = Field(default=0, ge=0)

    @field_validator("name", "cover_image_url", "description", "github_url", "demo_url", mode="before")
    @classmethod
    def default_blank(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("carousel_images", "tech_stack", mode="before")
    @classmethod
    def default_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("is_featured", mode="before")
    @classmethod
    def default_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("github_url")
    @classmethod
    def check_github_url(cls, v: str) -> str:
        return _check_optional_url(v, "GitHub")

    @field_validator("demo_url")
    @classmethod
    def check_demo_url(cls, v: str) -> str:
        return _check_optional_url(v, "demo")


# ---------------------------------------------------------------------------
# Portfolio requests
# ---------------------------------------------------------------------------

class PortfolioFields(BaseModel):
    """Scalar fields shared by create and update."""

    model_config = ConfigDict(extra="ignore")

    full_name: str = Field(..., min_length=1, max_length=100)
    tagline: str = Field(default="", max_length=100)
    job_title: str = Field(..., min_length=1, max_length=100)
    location: str = Field(default="", max_length=100)
    bio: str = ""
    email: str = Field(..., max_length=255)
    profile_photo_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_username: Optional[str] = Field(default=None, max_length=50)
    resume_url: Optional[str] = None
    availability_status: AvailabilityStatus = "open_fulltime"
    open_to_work: bool = True
    skills: list[Skill] = Field(default_factory=list, max_length=MAX_SKILLS)
    template: TemplateType = "minimal"
    is_public: bool = True

    @field_validator("template", mode="before")
    @classmethod
    def remap_legacy_template(cls, v: Any) -> Any:
        return normalize_template(v)

    @field_validator("bio")
    @classmethod
    def check_bio(cls, v: str) -> str:
        ok, msg = validate_bio(v)
        if not ok:
            raise ValueError(msg)
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not validate_email(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("linkedin_url")
    @classmethod
    def check_linkedin_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_optional_url(v, "LinkedIn")


class PortfolioCreate(PortfolioFields):
    username: str = Field(..., max_length=50)
    # Raw entries: empty ones are dropped before per-entry validation
    experiences: list[dict[str, Any]] = Field(default_factory=list)
    projects: list[dict[str, Any]] = Field(default_factory=list)


class PortfolioUpdate(PortfolioFields):
    """Partial update. Username is not accepted on this path."""

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    job_title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    tagline: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = None
    availability_status: Optional[AvailabilityStatus] = None
    open_to_work: Optional[bool] = None
    skills: Optional[list[Skill]] = Field(default=None, max_length=MAX_SKILLS)
    template: Optional[TemplateType] = None
    is_public: Optional[bool] = None
    experiences: Optional[list[dict[str, Any]]] = None
    projects: Optional[list[dict[str, Any]]] = None

    @field_validator("bio")
    @classmethod
    def check_bio(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        ok, msg = validate_bio(v)
        if not ok:
            raise ValueError(msg)
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not validate_email(v):
            raise ValueError("Invalid email address")
        return v


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ExperienceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company: str
    role: str
    location: str
    start_date: str
    end_date: str
    is_current: bool
    description: str
    order_index: int

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    impact_stat: Optional[str] = None
    cover_image_url: str
    carousel_images: list[str]
    description: str
    tech_stack: list[str]
    github_url: str
    demo_url: str
    is_featured: bool
    order_index: int

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)


class PortfolioOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: str
    tagline: str
    job_title: str
    location: str
    bio: str
    email: str
    profile_photo_url: Optional[str]
    linkedin_url: Optional[str]
    github_username: Optional[str]
    resume_url: Optional[str]
    availability_status: AvailabilityStatus
    open_to_work: bool
    skills: list[Skill]
    template: TemplateType
    is_public: bool
    view_count: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    experiences: list[ExperienceOut] = Field(default_factory=list)
    projects: list[ProjectOut] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("template", mode="before")
    @classmethod
    def remap_legacy_template(cls, v: Any) -> Any:
        return normalize_template(v)


class PortfolioSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: str
    job_title: str
    is_public: bool
    updated_at: Optional[datetime]

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)


class ContactMessageIn(BaseModel):
    name: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=255)
    message: str = Field(default="", max_length=2000)
    portfolio_username: str = Field(default="", max_length=50)


# ---------------------------------------------------------------------------
# Directory cards
# ---------------------------------------------------------------------------

class PortfolioCard(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: str
    tagline: str
    job_title: str
    location: str
    bio: str
    profile_photo_url: Optional[str]
    availability_status: AvailabilityStatus
    open_to_work: bool
    skills: list[Skill]
    view_count: int
    created_at: Optional[datetime]

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)


class ProjectCard(BaseModel):
    """A public project with just enough of its owner to link back."""

    id: str
    name: str
    impact_stat: Optional[str] = None
    cover_image_url: str
    description: str
    tech_stack: list[str]
    github_url: str
    demo_url: str
    owner_username: str
    owner_full_name: str
    owner_job_title: str
    owner_profile_photo_url: Optional[str] = None
    owner_view_count: int = 0
    owner_created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)
