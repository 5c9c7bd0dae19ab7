"""String helpers: random names and URL slugs."""
import re
import secrets

from .errors import EmptyInput

# URL and filename safe, 64 symbols
RANDOM_STRING_SOURCE = (
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "0123456789"
    "_-"
)

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def random_string(n: int) -> str:
    """Return ``n`` characters drawn from RANDOM_STRING_SOURCE with a CSPRNG."""
    if n < 0:
        raise ValueError("n must not be negative")
    return "".join(secrets.choice(RANDOM_STRING_SOURCE) for _ in range(n))


def slugify(s: str) -> str:
    """Lowercase ``s`` and collapse every run of non-alphanumerics into ``-``.

    >>> slugify("Now is the time for all GOOD men! + fish & such 123")
    'now-is-the-time-for-all-good-men-fish-such-123'
    """
    if not s:
        raise EmptyInput()

    slug = _NON_SLUG.sub("-", s.lower()).strip("-")
    if not slug:
        raise EmptyInput("after removing characters, slug is zero length")
    return slug
