"""
Username derivation and checking.

Two policies exist on purpose:
- generate_unique_username auto-suffixes on collision. Used only to *suggest*
  a username from a display name.
- validate_username (utils.validators) hard-rejects. Used wherever a
  user-chosen username is stored or checked for availability.
"""
import random
import re
import time
from collections.abc import Collection
from typing import Callable

from buildfolio.utils.validators import (
    RESERVED_USERNAMES,
    USERNAME_MAX_LENGTH,
    validate_username,
)

MAX_SUFFIX_ATTEMPTS = 100
FALLBACK_BASE = "my-portfolio"

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def slugify(name: str) -> str:
    """
    Lowercase, drop anything but letters, digits, whitespace and hyphens,
    turn whitespace runs into single hyphens and trim hyphens at the ends.

    >>> slugify("Alex Rivera!!")
    'alex-rivera'
    """
    value = (name or "").lower().strip().replace("_", " ")
    value = _NON_SLUG_CHARS.sub("", value)
    value = _WHITESPACE.sub("-", value)
    value = _HYPHENS.sub("-", value)
    return value.strip("-")


def base_username(full_name: str) -> str:
    base = slugify(full_name)[: USERNAME_MAX_LENGTH - 4].strip("-")
    if not base:
        return FALLBACK_BASE
    if len(base) < 3 or base in RESERVED_USERNAMES:
        base = f"{base}-portfolio"
    return base


def generate_unique_username(
    full_name: str,
    existing_usernames: Collection[str] = (),
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """
    Slug of full_name, suffixed with a random 3-digit number while it
    collides with existing_usernames. After MAX_SUFFIX_ATTEMPTS collisions the
    suffix becomes the current unix time in milliseconds.
    """
    rng = rng or random.Random()
    base = base_username(full_name)
    taken = set(existing_usernames)
    username = base
    attempts = 0
    while username in taken:
        attempts += 1
        if attempts > MAX_SUFFIX_ATTEMPTS:
            stamp = str(int(clock() * 1000))
            head = base[: USERNAME_MAX_LENGTH - len(stamp) - 1].strip("-")
            username = f"{head}-{stamp}"
            break
        username = f"{base}-{rng.randint(100, 999)}"
    return username


def username_error(username: str | None) -> str | None:
    """Message for the first rule the username breaks, or None if usable."""
    ok, msg = validate_username(username)
    return None if ok else msg
