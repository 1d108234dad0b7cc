import re
import secrets
import string
from datetime import datetime, timedelta

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def format_date(value: str | None, fmt: str = DATE_FORMAT, adjust_hours: int | None = None) -> str | None:
    """Parse a vendor timestamp and render it as ``YYYY-MM-DD HH:MM:SS``.

    Empty values give ``None``. A trailing ``Z`` is accepted as UTC.
    """
    if not value:
        return None

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)

    if adjust_hours is not None:
        parsed += timedelta(hours=adjust_hours)

    return parsed.strftime(fmt)


def now_plus_seconds(seconds: int | float) -> str:
    return (datetime.now() + timedelta(seconds=float(seconds))).strftime(DATE_FORMAT)


def is_numeric(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMERIC.match(value))


def limit_text(value: str, limit: int, end: str = "...") -> str:
    if len(value) <= limit:
        return value
    return value[:limit].rstrip() + end


def generate_password(
    length: int = 15,
    letters: bool = True,
    digits: bool = True,
    symbols: bool = False,
) -> str:
    """Random password drawing at least one character from every enabled class."""
    pools = []
    if letters:
        pools += [string.ascii_lowercase, string.ascii_uppercase]
    if digits:
        pools.append(string.digits)
    if symbols:
        pools.append("!@#$%^&*()-_=+")
    if not pools:
        raise ValueError("At least one character class is required")

    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(alphabet) for _ in range(max(length - len(chars), 0))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars[:length])


def slugify(value: str, separator: str = "-") -> str:
    """Lowercase ``value`` and collapse every run of non-alphanumerics into ``separator``."""
    slug = re.sub(r"[^a-z0-9]+", separator, value.lower())
    return slug.strip(separator)


def ucfirst(value: str) -> str:
    return value[:1].upper() + value[1:]
