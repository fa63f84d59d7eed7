"""
Input validation shared by the API, services and form steps.
"""
import re

# Email: RFC-lite, one "@" and a dot in the domain, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Username: lowercase letters, digits and hyphens only
USERNAME_PATTERN = re.compile(r"^[a-z0-9-]+$")
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

MAX_BIO_WORDS = 400
MAX_DESCRIPTION_CHARS = 800

# Routes and system names a portfolio URL must never shadow
RESERVED_USERNAMES = frozenset(
    (
        "admin", "api", "auth", "login", "logout", "signup", "register",
        "explore", "search", "user", "users", "portfolio", "portfolios",
        "settings", "profile", "dashboard", "app", "www", "mail", "ftp",
        "localhost", "test", "demo", "support", "help", "about", "contact",
        "terms", "privacy", "legal", "blog", "news", "careers", "jobs",
        "api-docs", "documentation", "docs", "status", "health", "ping",
        "robots", "sitemap", "favicon", "assets", "static", "public",
        "create", "edit", "delete", "new", "success", "cancel",
    )
)


def validate_email(email: str) -> bool:
    """Return True if email format is valid."""
    if not email or len(email) > 255:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def count_words(value: str | None) -> int:
    """Number of whitespace-delimited words."""
    if not value:
        return 0
    return len(value.split())


def validate_bio(bio: str | None) -> tuple[bool, str]:
    if count_words(bio) > MAX_BIO_WORDS:
        return False, f"Bio must be {MAX_BIO_WORDS} words or less"
    return True, ""


def validate_username(username: str | None) -> tuple[bool, str]:
    """
    Check a user-chosen username. Returns (ok, message).
    Rules, in order: present, pattern, length 3-30, not reserved.
    """
    if not username:
        return False, "Username is required"
    if not USERNAME_PATTERN.match(username):
        return False, "Username can only contain lowercase letters, numbers, and hyphens"
    if len(username) < USERNAME_MIN_LENGTH or len(username) > USERNAME_MAX_LENGTH:
        return False, (
            f"Username must be between {USERNAME_MIN_LENGTH} "
            f"and {USERNAME_MAX_LENGTH} characters"
        )
    if username.lower() in RESERVED_USERNAMES:
        return False, "This username is reserved"
    return True, ""


def is_blank(value: object) -> bool:
    """True unless value is a string with non-whitespace content."""
    return not (isinstance(value, str) and value.strip())

